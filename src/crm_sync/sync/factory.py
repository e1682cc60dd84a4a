"""Builds the sync engine from settings.

Client handles are constructed once here, one per HubSpot account plus one
catalog client, and passed explicitly into the components that use them.
Used by the FastAPI lifespan and by scripts/run_sync.py.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from src.crm_sync.config import Settings
from src.crm_sync.sync.associations import AssociationBuilder
from src.crm_sync.sync.catalog import CatalogReader, RickAndMortyClient
from src.crm_sync.sync.hubspot import HubSpotAdapter
from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.orchestrator import SyncOrchestrator
from src.crm_sync.sync.resolver import Resolver
from src.crm_sync.sync.retry import ResilientClient
from src.crm_sync.sync.selection import migration_predicate

logger = structlog.get_logger(__name__)


@dataclass
class SyncServices:
    """Everything the entry points need, plus the clients to close on shutdown."""

    orchestrator: SyncOrchestrator
    mirror: MirrorSync
    catalog: RickAndMortyClient
    source: HubSpotAdapter
    target: HubSpotAdapter

    async def aclose(self) -> None:
        await self.catalog.aclose()
        await self.source.aclose()
        await self.target.aclose()


def build_sync_services(
    settings: Settings,
    *,
    catalog_transport: httpx.AsyncBaseTransport | None = None,
    hubspot_transport: httpx.AsyncBaseTransport | None = None,
) -> SyncServices:
    """Wire catalog, source account and mirror account into the two sync flows."""
    catalog = RickAndMortyClient(
        settings.CATALOG_BASE_URL,
        timeout=settings.CATALOG_TIMEOUT,
        transport=catalog_transport,
    )
    source = HubSpotAdapter(
        settings.HUBSPOT_SOURCE_TOKEN,
        name="source",
        base_url=settings.HUBSPOT_BASE_URL,
        timeout=settings.HUBSPOT_TIMEOUT,
        transport=hubspot_transport,
    )
    target = HubSpotAdapter(
        settings.HUBSPOT_MIRROR_TOKEN,
        name="mirror",
        base_url=settings.HUBSPOT_BASE_URL,
        timeout=settings.HUBSPOT_TIMEOUT,
        transport=hubspot_transport,
    )

    catalog_remote = ResilientClient.from_settings(settings, "catalog")
    source_remote = ResilientClient.from_settings(settings, "hubspot_source")
    mirror_remote = ResilientClient.from_settings(settings, "hubspot_mirror")

    orchestrator = SyncOrchestrator(
        reader=CatalogReader(catalog, catalog_remote),
        resolver=Resolver(
            source,
            source_remote,
            fallback_to_create=settings.SEARCH_FAILURE_FALLBACK_CREATE,
        ),
        associations=AssociationBuilder(source, source_remote),
        predicate=migration_predicate(settings.CATALOG_MAX_ID),
        email_domain=settings.EMAIL_DOMAIN,
    )
    mirror = MirrorSync(
        source=source,
        source_remote=source_remote,
        resolver=Resolver(
            target,
            mirror_remote,
            fallback_to_create=settings.SEARCH_FAILURE_FALLBACK_CREATE,
        ),
        associations=AssociationBuilder(target, mirror_remote),
    )

    if not settings.HUBSPOT_SOURCE_TOKEN:
        logger.warning("sync.source_token_missing")
    if not settings.HUBSPOT_MIRROR_TOKEN:
        logger.warning("sync.mirror_token_missing")

    return SyncServices(
        orchestrator=orchestrator,
        mirror=mirror,
        catalog=catalog,
        source=source,
        target=target,
    )
