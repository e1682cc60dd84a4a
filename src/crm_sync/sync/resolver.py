"""Upsert engine: find-or-create a destination record by natural key.

Algorithm:
1. Search the destination for an exact match on the natural key (limit 1).
2. One result: update it, return created=False. Duplicates already present
   in the destination are not merged; the first result is canonical.
3. No result: create, return created=True.

If the existence-check search fails non-retryably and fallback_to_create is
enabled, the record is created unconditionally instead of failing. This can
create a duplicate when the search failed for a reason other than the
search endpoint being unavailable; disable it to fail the record instead.
"""

from __future__ import annotations

import structlog

from src.crm_sync.sync.adapter import CRMAdapter
from src.crm_sync.sync.errors import NonRetryableError, RemoteCallError, UpsertFailedError
from src.crm_sync.sync.retry import ResilientClient
from src.crm_sync.sync.schemas import (
    DestinationIdentity,
    EntityType,
    NaturalKey,
    ResolvedRecord,
)

logger = structlog.get_logger(__name__)


class Resolver:
    """Resolves mapped properties to a DestinationIdentity in one CRM account.

    Args:
        crm: Destination CRM adapter.
        remote: ResilientClient wrapping every call to crm.
        fallback_to_create: Create when the search fails non-retryably.
    """

    def __init__(
        self,
        crm: CRMAdapter,
        remote: ResilientClient,
        *,
        fallback_to_create: bool = True,
    ) -> None:
        self._crm = crm
        self._remote = remote
        self._fallback_to_create = fallback_to_create

    async def resolve(
        self,
        properties: dict[str, str],
        natural_key: NaturalKey,
        entity_type: EntityType,
    ) -> ResolvedRecord:
        """Upsert properties keyed by natural_key.

        Raises:
            UpsertFailedError: The record could not be found-or-created.
        """
        try:
            existing = await self._find_existing(natural_key, entity_type)

            if existing is not None:
                record = await self._remote.invoke(
                    self._crm.update,
                    entity_type,
                    existing,
                    properties,
                    description=f"{entity_type.value}.update",
                )
                created = False
            else:
                record = await self._remote.invoke(
                    self._crm.create,
                    entity_type,
                    properties,
                    description=f"{entity_type.value}.create",
                )
                created = True
        except RemoteCallError as exc:
            raise UpsertFailedError(entity_type.value, natural_key.value, exc) from exc

        record_id = record.get("id") or existing
        if not record_id:
            raise UpsertFailedError(
                entity_type.value,
                natural_key.value,
                ValueError(f"{entity_type.value}.create response carried no record id"),
            )

        identity = DestinationIdentity(
            entity_type=entity_type,
            id=str(record_id),
            natural_key=natural_key,
        )
        logger.info(
            "resolver.record_resolved",
            account=self._crm.name,
            entity_type=entity_type.value,
            key_property=natural_key.property_name,
            key_value=natural_key.value,
            record_id=identity.id,
            created=created,
        )
        return ResolvedRecord(identity=identity, created=created)

    async def _find_existing(
        self, natural_key: NaturalKey, entity_type: EntityType
    ) -> str | None:
        """Return the id of the canonical existing record, or None."""
        try:
            results = await self._remote.invoke(
                self._crm.search,
                entity_type,
                natural_key.property_name,
                natural_key.value,
                limit=1,
                properties=[natural_key.property_name],
                description=f"{entity_type.value}.search",
            )
        except NonRetryableError as exc:
            if not self._fallback_to_create:
                raise
            logger.warning(
                "resolver.search_failed_creating",
                account=self._crm.name,
                entity_type=entity_type.value,
                key_value=natural_key.value,
                status_code=exc.status_code,
                error=str(exc),
            )
            return None

        if not results:
            return None
        return str(results[0]["id"])
