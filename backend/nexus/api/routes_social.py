"""Read-only routes over the social index."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from nexus.api.dependencies import get_nexus
from nexus.models.dto import FollowersResponse, VoteTally
from nexus.social import Nexus

router = APIRouter()


@router.get("/profiles", summary="Fetch an archive's profile")
async def get_profile(
    archive: str = Query(..., description="Archive URL"),
    nexus: Nexus = Depends(get_nexus),
) -> dict[str, Any]:
    profile = await nexus.get_profile(archive)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.get("/followers", response_model=FollowersResponse, summary="List an archive's followers")
async def list_followers(
    archive: str = Query(..., description="Archive URL"),
    nexus: Nexus = Depends(get_nexus),
) -> FollowersResponse:
    followers = await nexus.list_followers(archive)
    return FollowersResponse(count=len(followers), followers=followers)


@router.get("/bookmarks", summary="List bookmarks")
async def list_bookmarks(
    author: list[str] | None = Query(None),
    tag: list[str] | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=0),
    reverse: bool = False,
    fetch_author: bool = False,
    nexus: Nexus = Depends(get_nexus),
) -> list[dict[str, Any]]:
    return await nexus.list_bookmarks(
        author=author,
        tag=tag,
        offset=offset,
        limit=limit,
        reverse=reverse,
        fetch_author=fetch_author,
    )


@router.get("/bookmarks/tags", summary="Count bookmarks per tag")
async def count_bookmark_tags(nexus: Nexus = Depends(get_nexus)) -> dict[str, int]:
    return await nexus.count_bookmark_tags()


@router.get("/posts", summary="List posts")
async def list_posts(
    author: str | None = None,
    after: float | None = None,
    before: float | None = None,
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=0),
    reverse: bool = False,
    fetch_author: bool = False,
    count_votes: bool = False,
    fetch_replies: bool = False,
    nexus: Nexus = Depends(get_nexus),
) -> list[dict[str, Any]]:
    return await nexus.list_posts(
        author=author,
        after=after,
        before=before,
        offset=offset,
        limit=limit,
        reverse=reverse,
        fetch_author=fetch_author,
        count_votes=count_votes,
        fetch_replies=fetch_replies,
    )


@router.get("/posts/thread", summary="Fetch a post with its replies")
async def get_thread(
    url: str = Query(..., description="Post record URL"),
    nexus: Nexus = Depends(get_nexus),
) -> dict[str, Any]:
    post = await nexus.get_post(url)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("/votes", response_model=VoteTally, summary="Tally votes on a subject")
async def count_votes(
    subject: str = Query(..., description="Subject URL"),
    nexus: Nexus = Depends(get_nexus),
) -> VoteTally:
    return VoteTally(**await nexus.count_votes_for(subject))


@router.get("/published-archives", summary="List published archives")
async def list_published_archives(
    author: str | None = None,
    type: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=0),
    reverse: bool = False,
    fetch_author: bool = False,
    count_votes: bool = False,
    nexus: Nexus = Depends(get_nexus),
) -> list[dict[str, Any]]:
    return await nexus.list_published_archives(
        author=author,
        type=type,
        offset=offset,
        limit=limit,
        reverse=reverse,
        fetch_author=fetch_author,
        count_votes=count_votes,
    )


__all__ = ["router"]
