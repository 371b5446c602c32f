"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Request

from errors import CatalogQueryError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready(request: Request) -> dict:
    """Lightweight readiness check with no external calls."""
    return {"status": "ok", "service": "catalog-api", "commit": request.app.state.settings.git_sha}


@router.get("/health")
async def health(request: Request) -> dict:
    """Deep health check that verifies the catalog database answers."""
    state = request.app.state
    result = {
        "status": "ok",
        "service": "catalog-api",
        "commit": state.settings.git_sha,
        "database": "not_tested",
        "cache_entries": len(state.response_cache.store),
        "cache_sweeper": "running" if state.response_cache.sweeper.running else "stopped",
    }

    try:
        await state.catalog.ping()
        result["database"] = "connected"
    except CatalogQueryError as e:
        logger.exception("Catalog health check failed")
        result["status"] = "degraded"
        result["database"] = "error"
        result["database_error"] = str(e)

    return result
