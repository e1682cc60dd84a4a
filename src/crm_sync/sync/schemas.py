"""Pydantic schemas for catalog records, destination identities and sync results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class EntityType(str, Enum):
    """CRM object types handled by the sync engine (HubSpot object paths)."""

    CONTACT = "contacts"
    COMPANY = "companies"


class SyncPhase(str, Enum):
    """Lifecycle of a single migration run."""

    IDLE = "idle"
    FETCHING_COMPANIES = "fetching_companies"
    FETCHING_CONTACTS = "fetching_contacts"
    ASSOCIATING = "associating"
    DONE = "done"
    FAILED = "failed"


class AssociationOutcome(str, Enum):
    """Result of an association attempt that did not raise."""

    CREATED = "created"
    SKIPPED = "skipped"


# ── Catalog Records ─────────────────────────────────────────────────────────


class CatalogLink(BaseModel):
    """Reference from one catalog record to another (e.g. a character's origin)."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    url: str = ""


class CatalogCharacter(BaseModel):
    """Immutable snapshot of a catalog character. Never persisted."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    status: str = ""
    species: str = ""
    type: str = ""
    gender: str = ""
    origin: CatalogLink | None = None
    location: CatalogLink | None = None
    url: str = ""

    @property
    def origin_url(self) -> str | None:
        """Relation link to the origin location, or None when the catalog has none."""
        if self.origin is None or not self.origin.url:
            return None
        return self.origin.url


class CatalogLocation(BaseModel):
    """Immutable snapshot of a catalog location."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    type: str = ""
    dimension: str = ""
    url: str = ""


class CatalogPage(BaseModel):
    """One page of the catalog listing plus its continuation cursor."""

    records: list[CatalogCharacter] = Field(default_factory=list)
    next_cursor: str | None = None
    total_count: int = 0


# ── Destination Records ─────────────────────────────────────────────────────


class NaturalKey(BaseModel):
    """Property used to decide whether a destination record already exists."""

    model_config = ConfigDict(frozen=True)

    property_name: str
    value: str


class DestinationIdentity(BaseModel):
    """Destination-assigned record id plus the natural key used to find it."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    id: str
    natural_key: NaturalKey


class ResolvedRecord(BaseModel):
    """Outcome of a resolve: the identity and whether it was newly created."""

    identity: DestinationIdentity
    created: bool


class AssociationDescriptor(BaseModel):
    """HubSpot v4 association type between two object kinds."""

    model_config = ConfigDict(frozen=True)

    category: str = "HUBSPOT_DEFINED"
    type_id: int = 1

    def to_payload(self) -> list[dict[str, Any]]:
        return [{"associationCategory": self.category, "associationTypeId": self.type_id}]


# Primary contact -> company association defined by HubSpot
CONTACT_TO_COMPANY = AssociationDescriptor(category="HUBSPOT_DEFINED", type_id=1)


class CRMPage(BaseModel):
    """One page of records read from a CRM account."""

    results: list[dict[str, Any]] = Field(default_factory=list)
    next_after: str | None = None


# ── Sync Results ────────────────────────────────────────────────────────────


class SyncSummary(BaseModel):
    """Counters produced by a full catalog migration run."""

    contacts_created: int = 0
    contacts_updated: int = 0
    contacts_failed: int = 0
    companies_processed: int = 0
    companies_failed: int = 0
    associations_created: int = 0
    associations_skipped: int = 0
    associations_failed: int = 0
    phase: SyncPhase = SyncPhase.IDLE


class MirrorSyncSummary(BaseModel):
    """Counters produced by a source-to-mirror alignment run."""

    contacts_synced: int = 0
    contacts_failed: int = 0
    companies_synced: int = 0
    companies_failed: int = 0
    associations_created: int = 0
    associations_skipped: int = 0
    associations_failed: int = 0
