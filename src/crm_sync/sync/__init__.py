"""Synchronization engine -- catalog migration and CRM account mirroring.

Components, leaves first:
- ResilientClient: bounded retry with rate-limit aware backoff for every remote call
- CatalogReader: paginates the catalog, applies a client-side selection predicate
- mapping: pure record -> CRM property transformations
- Resolver: upsert-by-natural-key against one CRM account
- AssociationBuilder: idempotent contact -> company links
- SyncOrchestrator: three-phase catalog migration (companies, contacts, associations)
- MirrorSync: source account -> mirror account alignment and webhook upserts

CRM accounts are reached through CRMAdapter implementations (HubSpotAdapter).
"""

from src.crm_sync.sync.adapter import CRMAdapter
from src.crm_sync.sync.associations import AssociationBuilder
from src.crm_sync.sync.cache import IdentityCache
from src.crm_sync.sync.catalog import CatalogReader, RickAndMortyClient
from src.crm_sync.sync.hubspot import HubSpotAdapter
from src.crm_sync.sync.mirror import MirrorSync
from src.crm_sync.sync.orchestrator import SyncOrchestrator
from src.crm_sync.sync.resolver import Resolver
from src.crm_sync.sync.retry import ResilientClient

__all__ = [
    "CRMAdapter",
    "HubSpotAdapter",
    "RickAndMortyClient",
    "ResilientClient",
    "CatalogReader",
    "IdentityCache",
    "Resolver",
    "AssociationBuilder",
    "SyncOrchestrator",
    "MirrorSync",
]
