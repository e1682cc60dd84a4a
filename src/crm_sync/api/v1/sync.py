"""Sync trigger endpoints.

POST /sync/migrate runs the full catalog migration into the source account;
POST /sync/mirror aligns the mirror account with the source account. Runs
are serialized per process: a trigger while another run is in progress
gets 409 instead of racing on the same natural keys.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.crm_sync.api.deps import get_mirror, get_orchestrator, get_sync_lock
from src.crm_sync.sync.errors import CatalogFetchError, SourceFetchError
from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.orchestrator import SyncOrchestrator
from src.crm_sync.sync.schemas import MirrorSyncSummary, SyncSummary

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


def _ensure_idle(lock: asyncio.Lock) -> None:
    if lock.locked():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A sync run is already in progress",
        )


@router.post("/migrate", response_model=SyncSummary)
async def run_migration(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    lock: asyncio.Lock = Depends(get_sync_lock),
) -> SyncSummary:
    """Migrate the selected catalog records into the source CRM account."""
    _ensure_idle(lock)
    async with lock:
        try:
            return await orchestrator.run_full_sync()
        except CatalogFetchError as exc:
            logger.error("api.migration_failed", error=str(exc))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(exc),
            ) from exc


@router.post("/mirror", response_model=MirrorSyncSummary)
async def run_mirror(
    mirror: MirrorSync = Depends(get_mirror),
    lock: asyncio.Lock = Depends(get_sync_lock),
) -> MirrorSyncSummary:
    """Align the mirror CRM account with the source account."""
    _ensure_idle(lock)
    async with lock:
        try:
            return await mirror.run_mirror_sync()
        except SourceFetchError as exc:
            logger.error("api.mirror_failed", error=str(exc))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(exc),
            ) from exc
