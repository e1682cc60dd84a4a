"""Source-to-mirror alignment between two CRM accounts.

run_mirror_sync() pages every company and then every contact of the source
account and upserts them into the mirror account through the same Resolver
used by the catalog migration (companies by name, contacts by
character_id). A contact's associated source company is re-linked in the
mirror; a company not resolved earlier in the run is read from the source
by id and upserted on demand.

apply_one_record_change() is the webhook path: one payload, one upsert, no
scan of the source account.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any, Literal

import structlog

from src.crm_sync.core.monitoring import sync_records_total, sync_run_duration_seconds
from src.crm_sync.sync.adapter import CRMAdapter
from src.crm_sync.sync.associations import AssociationBuilder
from src.crm_sync.sync.cache import IdentityCache
from src.crm_sync.sync.errors import (
    AssociationFailedError,
    RemoteCallError,
    SourceFetchError,
    SyncError,
)
from src.crm_sync.sync.mapping import (
    COMPANY_KEY_PROPERTY,
    COMPANY_PROPERTIES,
    CONTACT_KEY_PROPERTY,
    CONTACT_PROPERTIES,
    company_payload_to_properties,
    contact_payload_to_properties,
)
from src.crm_sync.sync.resolver import Resolver
from src.crm_sync.sync.retry import ResilientClient
from src.crm_sync.sync.schemas import (
    AssociationOutcome,
    DestinationIdentity,
    EntityType,
    MirrorSyncSummary,
    NaturalKey,
    ResolvedRecord,
)

logger = structlog.get_logger(__name__)

_RUN = "mirror"

PAGE_SIZE = 100


class MirrorSync:
    """Keeps a mirror CRM account aligned with a source account.

    Args:
        source: Adapter for the source account (read only).
        source_remote: ResilientClient wrapping reads from the source account.
        resolver: Upsert engine bound to the mirror account.
        associations: Association builder bound to the mirror account.
    """

    def __init__(
        self,
        source: CRMAdapter,
        source_remote: ResilientClient,
        resolver: Resolver,
        associations: AssociationBuilder,
    ) -> None:
        self._source = source
        self._source_remote = source_remote
        self._resolver = resolver
        self._associations = associations

    async def apply_one_record_change(
        self, entity_type: EntityType, payload: dict[str, Any]
    ) -> Literal["created", "updated"]:
        """Upsert a single webhook payload into the mirror account.

        Raises:
            PayloadValidationError: Required fields are missing.
            UpsertFailedError: The mirror upsert failed.
        """
        resolved = await self._upsert(entity_type, payload)
        result: Literal["created", "updated"] = "created" if resolved.created else "updated"
        sync_records_total.labels(run="webhook", entity=entity_type.value, outcome=result).inc()
        return result

    async def _upsert(self, entity_type: EntityType, payload: dict[str, Any]) -> ResolvedRecord:
        if entity_type is EntityType.CONTACT:
            properties = contact_payload_to_properties(payload)
            key_property = CONTACT_KEY_PROPERTY
        else:
            properties = company_payload_to_properties(payload)
            key_property = COMPANY_KEY_PROPERTY

        return await self._resolver.resolve(
            properties,
            NaturalKey(property_name=key_property, value=properties[key_property]),
            entity_type,
        )

    async def _iter_source(
        self, entity_type: EntityType, properties: list[str]
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every record of the source account, page by page.

        Raises:
            SourceFetchError: A page could not be read.
        """
        after: str | None = None
        while True:
            try:
                page = await self._source_remote.invoke(
                    self._source.list_page,
                    entity_type,
                    properties,
                    after=after,
                    limit=PAGE_SIZE,
                    description=f"{entity_type.value}.list_page",
                )
            except RemoteCallError as exc:
                raise SourceFetchError(
                    f"Could not read {entity_type.value} from source account: {exc}"
                ) from exc

            logger.info(
                "mirror.page_fetched",
                entity_type=entity_type.value,
                after=after,
                page_size=len(page.results),
            )
            for record in page.results:
                yield record

            after = page.next_after
            if not after:
                break

    async def _source_company_id(self, contact_id: str) -> str | None:
        """First company associated with a source contact, None if none or unreadable."""
        try:
            company_ids = await self._source_remote.invoke(
                self._source.list_associated_ids,
                EntityType.CONTACT,
                contact_id,
                EntityType.COMPANY,
                description="associations.list",
            )
        except RemoteCallError as exc:
            logger.warning(
                "mirror.association_lookup_failed",
                contact_id=contact_id,
                error=str(exc),
            )
            return None
        return company_ids[0] if company_ids else None

    async def _mirrored_company(
        self,
        source_company_id: str | None,
        cache: IdentityCache,
        summary: MirrorSyncSummary,
    ) -> DestinationIdentity | None:
        """Mirror identity of a source company, resolving it on a cache miss.

        A miss happens when the company failed earlier in the run or was
        added to the source account after the companies were paged. The
        company is then read from the source by id and upserted by name.
        """
        if source_company_id is None:
            return None
        identity = cache.get(EntityType.COMPANY, source_company_id)
        if identity is not None:
            return identity

        try:
            record = await self._source_remote.invoke(
                self._source.get,
                EntityType.COMPANY,
                source_company_id,
                COMPANY_PROPERTIES,
                description="companies.get",
            )
        except RemoteCallError as exc:
            logger.warning(
                "mirror.company_lookup_failed",
                source_id=source_company_id,
                error=str(exc),
            )
            return None

        try:
            resolved = await self._upsert(EntityType.COMPANY, record.get("properties") or {})
        except SyncError as exc:
            logger.error("mirror.company_failed", source_id=source_company_id, error=str(exc))
            return None

        cache.put(EntityType.COMPANY, source_company_id, resolved.identity)
        summary.companies_synced += 1
        sync_records_total.labels(run=_RUN, entity="company", outcome="synced").inc()
        logger.info("mirror.company_resolved_late", source_id=source_company_id)
        return resolved.identity

    async def run_mirror_sync(self) -> MirrorSyncSummary:
        """Align the mirror account with every company and contact of the source.

        Raises:
            SourceFetchError: A page of the source account could not be read.
        """
        start_time = time.perf_counter()
        summary = MirrorSyncSummary()
        cache = IdentityCache()

        logger.info("mirror.sync_started")

        try:
            await self._mirror_companies(cache, summary)
            await self._mirror_contacts(cache, summary)
        except SourceFetchError:
            sync_run_duration_seconds.labels(run=_RUN, status="failed").observe(
                time.perf_counter() - start_time
            )
            logger.error("mirror.sync_failed", exc_info=True, **summary.model_dump())
            raise

        sync_run_duration_seconds.labels(run=_RUN, status="done").observe(
            time.perf_counter() - start_time
        )
        logger.info("mirror.sync_complete", **summary.model_dump())
        return summary

    async def _mirror_companies(self, cache: IdentityCache, summary: MirrorSyncSummary) -> None:
        async for company in self._iter_source(EntityType.COMPANY, COMPANY_PROPERTIES):
            try:
                resolved = await self._upsert(EntityType.COMPANY, company.get("properties") or {})
            except SyncError as exc:
                summary.companies_failed += 1
                sync_records_total.labels(run=_RUN, entity="company", outcome="failed").inc()
                logger.error(
                    "mirror.company_failed",
                    source_id=company.get("id"),
                    error=str(exc),
                )
                continue

            cache.put(EntityType.COMPANY, str(company["id"]), resolved.identity)
            summary.companies_synced += 1
            sync_records_total.labels(run=_RUN, entity="company", outcome="synced").inc()

    async def _mirror_contacts(self, cache: IdentityCache, summary: MirrorSyncSummary) -> None:
        async for contact in self._iter_source(EntityType.CONTACT, CONTACT_PROPERTIES):
            properties = contact.get("properties") or {}
            try:
                resolved = await self._upsert(EntityType.CONTACT, properties)
            except SyncError as exc:
                summary.contacts_failed += 1
                sync_records_total.labels(run=_RUN, entity="contact", outcome="failed").inc()
                logger.error(
                    "mirror.contact_failed",
                    source_id=contact.get("id"),
                    character_id=properties.get("character_id"),
                    error=str(exc),
                )
                continue

            summary.contacts_synced += 1
            sync_records_total.labels(run=_RUN, entity="contact", outcome="synced").inc()

            source_company_id = await self._source_company_id(str(contact["id"]))
            company = await self._mirrored_company(source_company_id, cache, summary)
            try:
                outcome = await self._associations.associate(
                    resolved.identity, company, relation_link=source_company_id
                )
            except AssociationFailedError as exc:
                summary.associations_failed += 1
                logger.error(
                    "mirror.association_failed",
                    contact_id=resolved.identity.id,
                    error=str(exc),
                )
                continue

            if outcome is AssociationOutcome.CREATED:
                summary.associations_created += 1
            else:
                summary.associations_skipped += 1
