"""Catalog-to-CRM migration orchestrator.

Sequences a full run in three phases over one IdentityCache:

1. Companies: every distinct origin location referenced by the selected
   characters is fetched, mapped and resolved exactly once.
2. Contacts: every selected character is mapped and resolved by its
   stable character_id.
3. Associations: each resolved contact is linked to its origin company
   looked up in the cache by the same relation link used in phase 1.

Only failure to obtain the initial set of catalog records is fatal. Every
per-record failure is logged, counted, and skipped; the run always ends
with a SyncSummary otherwise.
"""

from __future__ import annotations

import time

import structlog

from src.crm_sync.core.monitoring import sync_records_total, sync_run_duration_seconds
from src.crm_sync.sync.associations import AssociationBuilder
from src.crm_sync.sync.cache import IdentityCache
from src.crm_sync.sync.catalog import CatalogReader
from src.crm_sync.sync.errors import AssociationFailedError, CatalogFetchError, SyncError
from src.crm_sync.sync.mapping import (
    COMPANY_KEY_PROPERTY,
    CONTACT_KEY_PROPERTY,
    DEFAULT_EMAIL_DOMAIN,
    character_to_contact_properties,
    location_to_company_properties,
)
from src.crm_sync.sync.resolver import Resolver
from src.crm_sync.sync.schemas import (
    AssociationOutcome,
    CatalogCharacter,
    DestinationIdentity,
    EntityType,
    NaturalKey,
    SyncPhase,
    SyncSummary,
)
from src.crm_sync.sync.selection import RecordPredicate

logger = structlog.get_logger(__name__)

_RUN = "migration"


class SyncOrchestrator:
    """Runs the full catalog migration into one CRM account.

    Args:
        reader: Catalog reader for characters and their origin locations.
        resolver: Upsert engine bound to the destination account.
        associations: Association builder bound to the destination account.
        predicate: Record selection applied after all pages are read.
        email_domain: Domain for synthetic contact emails.
    """

    def __init__(
        self,
        reader: CatalogReader,
        resolver: Resolver,
        associations: AssociationBuilder,
        predicate: RecordPredicate | None = None,
        email_domain: str = DEFAULT_EMAIL_DOMAIN,
    ) -> None:
        self._reader = reader
        self._resolver = resolver
        self._associations = associations
        self._predicate = predicate
        self._email_domain = email_domain
        self.phase = SyncPhase.IDLE

    async def run_full_sync(self) -> SyncSummary:
        """Migrate the selected catalog records.

        Returns:
            SyncSummary with per-phase counters.

        Raises:
            CatalogFetchError: The records to migrate could not be obtained.
        """
        start_time = time.perf_counter()
        summary = SyncSummary()
        cache = IdentityCache()
        self.phase = SyncPhase.IDLE

        logger.info("sync.migration_started")

        try:
            records = [record async for record in self._reader.iter_records(self._predicate)]
        except CatalogFetchError:
            self.phase = SyncPhase.FAILED
            summary.phase = self.phase
            sync_run_duration_seconds.labels(run=_RUN, status="failed").observe(
                time.perf_counter() - start_time
            )
            logger.error("sync.migration_failed", reason="catalog fetch failed", exc_info=True)
            raise

        logger.info("sync.records_selected", record_count=len(records))

        self.phase = SyncPhase.FETCHING_COMPANIES
        await self._sync_companies(records, cache, summary)

        self.phase = SyncPhase.FETCHING_CONTACTS
        resolved_contacts = await self._sync_contacts(records, summary)

        self.phase = SyncPhase.ASSOCIATING
        await self._sync_associations(resolved_contacts, cache, summary)

        self.phase = SyncPhase.DONE
        summary.phase = self.phase
        sync_run_duration_seconds.labels(run=_RUN, status="done").observe(
            time.perf_counter() - start_time
        )
        logger.info("sync.migration_complete", **summary.model_dump(mode="json"))
        return summary

    async def _sync_companies(
        self,
        records: list[CatalogCharacter],
        cache: IdentityCache,
        summary: SyncSummary,
    ) -> None:
        """Resolve each distinct origin location once, filling the cache."""
        # dict preserves first-seen order
        location_urls = list(
            dict.fromkeys(record.origin_url for record in records if record.origin_url)
        )
        logger.info("sync.companies_phase", unique_locations=len(location_urls))

        for url in location_urls:
            try:
                location = await self._reader.get_location(url)
                properties = location_to_company_properties(location)
                resolved = await self._resolver.resolve(
                    properties,
                    NaturalKey(property_name=COMPANY_KEY_PROPERTY, value=properties["name"]),
                    EntityType.COMPANY,
                )
            except SyncError as exc:
                summary.companies_failed += 1
                sync_records_total.labels(run=_RUN, entity="company", outcome="failed").inc()
                logger.error("sync.company_failed", location_url=url, error=str(exc))
                continue

            cache.put(EntityType.COMPANY, url, resolved.identity)
            outcome = "created" if resolved.created else "updated"
            sync_records_total.labels(run=_RUN, entity="company", outcome=outcome).inc()

        summary.companies_processed = cache.count(EntityType.COMPANY)

    async def _sync_contacts(
        self,
        records: list[CatalogCharacter],
        summary: SyncSummary,
    ) -> list[tuple[CatalogCharacter, DestinationIdentity]]:
        """Resolve every selected character; failures are counted, never raised."""
        resolved_contacts: list[tuple[CatalogCharacter, DestinationIdentity]] = []

        for record in records:
            properties = character_to_contact_properties(record, self._email_domain)
            try:
                resolved = await self._resolver.resolve(
                    properties,
                    NaturalKey(
                        property_name=CONTACT_KEY_PROPERTY,
                        value=properties[CONTACT_KEY_PROPERTY],
                    ),
                    EntityType.CONTACT,
                )
            except SyncError as exc:
                summary.contacts_failed += 1
                sync_records_total.labels(run=_RUN, entity="contact", outcome="failed").inc()
                logger.error(
                    "sync.contact_failed",
                    character_id=record.id,
                    character_name=record.name,
                    error=str(exc),
                )
                continue

            if resolved.created:
                summary.contacts_created += 1
                outcome = "created"
            else:
                summary.contacts_updated += 1
                outcome = "updated"
            sync_records_total.labels(run=_RUN, entity="contact", outcome=outcome).inc()
            resolved_contacts.append((record, resolved.identity))

        return resolved_contacts

    async def _sync_associations(
        self,
        resolved_contacts: list[tuple[CatalogCharacter, DestinationIdentity]],
        cache: IdentityCache,
        summary: SyncSummary,
    ) -> None:
        for record, contact in resolved_contacts:
            url = record.origin_url
            company = cache.get(EntityType.COMPANY, url)
            try:
                outcome = await self._associations.associate(
                    contact, company, relation_link=url
                )
            except AssociationFailedError as exc:
                summary.associations_failed += 1
                sync_records_total.labels(run=_RUN, entity="association", outcome="failed").inc()
                logger.error(
                    "sync.association_failed",
                    character_id=record.id,
                    contact_id=contact.id,
                    error=str(exc),
                )
                continue

            if outcome is AssociationOutcome.CREATED:
                summary.associations_created += 1
            else:
                summary.associations_skipped += 1
            sync_records_total.labels(run=_RUN, entity="association", outcome=outcome.value).inc()
