"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from nexus.core.config import Settings, get_settings
from nexus.social import Nexus

_NEXUS: Nexus | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


async def get_nexus() -> Nexus:
    global _NEXUS
    if _NEXUS is None:
        _NEXUS = await Nexus.open(settings=get_app_settings())
    return _NEXUS


async def close_nexus() -> None:
    global _NEXUS
    if _NEXUS is not None:
        await _NEXUS.close()
        _NEXUS = None


__all__ = ["get_app_settings", "get_nexus", "close_nexus"]
