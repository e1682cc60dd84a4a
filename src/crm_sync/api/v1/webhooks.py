"""Webhook endpoints for single-record changes pushed to the mirror account.

Each request body is a flat property payload (as HubSpot workflow webhooks
send it). The record is upserted into the mirror without a full scan.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from src.crm_sync.api.deps import get_mirror
from src.crm_sync.sync.errors import PayloadValidationError, UpsertFailedError
from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.schemas import EntityType

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


async def _apply(mirror: MirrorSync, entity_type: EntityType, payload: dict[str, Any]):
    try:
        result = await mirror.apply_one_record_change(entity_type, payload)
    except (PayloadValidationError, UpsertFailedError) as exc:
        logger.warning("webhook.rejected", entity_type=entity_type.value, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(exc)},
        )
    return {"status": result}


@router.post("/contacts")
async def contact_webhook(
    payload: dict[str, Any] = Body(...),
    mirror: MirrorSync = Depends(get_mirror),
):
    """Create or update one contact in the mirror account."""
    return await _apply(mirror, EntityType.CONTACT, payload)


@router.post("/companies")
async def company_webhook(
    payload: dict[str, Any] = Body(...),
    mirror: MirrorSync = Depends(get_mirror),
):
    """Create or update one company in the mirror account."""
    return await _apply(mirror, EntityType.COMPANY, payload)
