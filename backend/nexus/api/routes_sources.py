"""Source membership and administrative routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from nexus.api.dependencies import get_nexus
from nexus.archive.base import Archive
from nexus.core.errors import ArchiveNotFoundError
from nexus.core.metrics import metrics_response
from nexus.models.dto import DeleteResponse, SourceCreateRequest, SourceResponse
from nexus.social import Nexus

router = APIRouter()


@router.get("/sources", response_model=list[SourceResponse], summary="List indexed archives")
async def list_sources(nexus: Nexus = Depends(get_nexus)) -> list[SourceResponse]:
    return [await _to_source(archive) for archive in nexus.list_archives()]


@router.post("/sources", response_model=SourceResponse, summary="Index an archive")
async def add_source(request: SourceCreateRequest, nexus: Nexus = Depends(get_nexus)) -> SourceResponse:
    try:
        archive = await nexus.engine.add_source(request.url)
    except ArchiveNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return await _to_source(archive)


@router.delete("/sources", response_model=DeleteResponse, summary="Stop indexing an archive")
async def delete_source(
    url: str = Query(..., description="Archive URL"),
    nexus: Nexus = Depends(get_nexus),
) -> DeleteResponse:
    removed = await nexus.remove_archive(url)
    return DeleteResponse(status="ok" if removed else "noop", removed=int(removed))


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


async def _to_source(archive: Archive) -> SourceResponse:
    info = await archive.get_info()
    return SourceResponse(url=archive.url, writable=archive.writable, title=info.title)


__all__ = ["router"]
