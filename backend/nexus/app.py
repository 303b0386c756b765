"""FastAPI application setup for Nexus."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nexus.api.dependencies import close_nexus, get_app_settings, get_nexus
from nexus.api.routes_social import router as social_router
from nexus.api.routes_sources import router as sources_router
from nexus.core.errors import (
    ArchiveNotWritableError,
    NexusError,
    QueryError,
    ValidationError,
)
from nexus.core.logging import configure_logging, get_logger
from nexus.core.metrics import REQUEST_COUNT
from nexus.models.dto import ErrorResponse

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Nexus",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5180",
        "http://localhost:5180",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sources_router, prefix="", tags=["sources"])
app.include_router(social_router, prefix="", tags=["social"])


@app.middleware("http")
async def count_requests(request: Request, call_next):
    response = await call_next(request)
    REQUEST_COUNT.labels(endpoint=request.url.path, method=request.method, status=str(response.status_code)).inc()
    return response


@app.exception_handler(NexusError)
async def nexus_error_handler(request: Request, exc: NexusError) -> JSONResponse:
    if isinstance(exc, (ValidationError, QueryError)):
        status = 400
    elif isinstance(exc, ArchiveNotWritableError):
        status = 403
    elif isinstance(exc, LookupError):
        status = 404
    else:
        status = 500
        logger.error("Unhandled nexus error on %s: %s", request.url.path, exc)
    payload = ErrorResponse(detail=str(exc), missing_parameter=getattr(exc, "missing_parameter", False))
    return JSONResponse(status_code=status, content=payload.model_dump())


@app.on_event("startup")
async def startup() -> None:
    """Open the index (and the configured home archive) on startup."""
    settings = get_app_settings()
    configure_logging(settings.log_level, use_json=settings.log_json)
    await get_nexus()


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_nexus()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
