"""CRM adapter abstract base class -- the destination collaborator interface.

Every CRM account the engine writes to or reads from (the HubSpot source
account, the HubSpot mirror account, in-memory doubles in tests) implements
this ABC. Methods perform exactly one remote call and raise the transport's
errors unchanged; retry policy lives in ResilientClient, not here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.crm_sync.sync.schemas import AssociationDescriptor, CRMPage, EntityType


class CRMAdapter(ABC):
    """Abstract interface for CRM object operations.

    Methods:
        search: Exact-match search on one property, capped at limit results.
        create: Create a record, return it (must contain "id").
        update: Update a record's properties by id, return it.
        get: Fetch one record by id.
        create_association: Link two records with a typed association.
        list_page: Read one page of records with an "after" cursor.
        list_associated_ids: Ids of records of to_type linked to a record.
    """

    name: str = "crm"

    @abstractmethod
    async def search(
        self,
        entity_type: EntityType,
        property_name: str,
        value: str,
        *,
        limit: int = 1,
        properties: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return records whose property_name equals value exactly."""
        ...

    @abstractmethod
    async def create(self, entity_type: EntityType, properties: dict[str, str]) -> dict[str, Any]:
        """Create a record, return it."""
        ...

    @abstractmethod
    async def update(
        self, entity_type: EntityType, record_id: str, properties: dict[str, str]
    ) -> dict[str, Any]:
        """Update a record by id, return it."""
        ...

    @abstractmethod
    async def get(
        self, entity_type: EntityType, record_id: str, properties: list[str] | None = None
    ) -> dict[str, Any]:
        """Fetch a record by id."""
        ...

    @abstractmethod
    async def create_association(
        self,
        from_type: EntityType,
        from_id: str,
        to_type: EntityType,
        to_id: str,
        descriptor: AssociationDescriptor,
    ) -> None:
        """Create (or re-create, idempotently) a typed association."""
        ...

    @abstractmethod
    async def list_page(
        self,
        entity_type: EntityType,
        properties: list[str],
        *,
        after: str | None = None,
        limit: int = 100,
    ) -> CRMPage:
        """Read one page of records."""
        ...

    @abstractmethod
    async def list_associated_ids(
        self, from_type: EntityType, from_id: str, to_type: EntityType
    ) -> list[str]:
        """Return ids of to_type records associated with a record."""
        ...
