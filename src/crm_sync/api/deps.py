"""FastAPI dependency injection for the sync engine.

The engine's client handles are built once in the application lifespan and
stored on app.state; these dependencies hand them to endpoint functions.
Tests replace them with app.dependency_overrides.
"""

from __future__ import annotations

import asyncio

from fastapi import HTTPException, Request, status

from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.orchestrator import SyncOrchestrator


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} is not initialized",
        )
    return value


async def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Catalog migration orchestrator bound to the source account."""
    return _state_attr(request, "orchestrator")


async def get_mirror(request: Request) -> MirrorSync:
    """Mirror sync bound to the source and mirror accounts."""
    return _state_attr(request, "mirror")


async def get_sync_lock(request: Request) -> asyncio.Lock:
    """Process-wide lock serializing full sync runs."""
    return _state_attr(request, "sync_lock")
