"""Health check endpoint.

Liveness only: the sync engine keeps no local state, so there is nothing
to check beyond the process answering and its clients being built.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from src.crm_sync.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check with sync engine initialization status."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "sync_engine": "ready" if getattr(request.app.state, "orchestrator", None) else "unavailable",
    }
