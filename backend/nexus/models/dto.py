"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class SourceCreateRequest(BaseModel):
    url: str = Field(description="Archive URL (dat://<key>) or bare archive key")


class SourceResponse(BaseModel):
    url: str
    writable: bool
    title: str | None = None


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    removed: int


class FollowersResponse(BaseModel):
    count: int
    followers: list[dict[str, Any]]


class VoteTally(BaseModel):
    up: int
    down: int
    value: int
    upVoters: list[str]
    currentUsersVote: int


class ErrorResponse(BaseModel):
    detail: str
    missing_parameter: bool = False


__all__ = [
    "SourceCreateRequest",
    "SourceResponse",
    "DeleteResponse",
    "FollowersResponse",
    "VoteTally",
    "ErrorResponse",
]
