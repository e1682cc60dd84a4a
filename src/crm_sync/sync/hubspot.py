"""HubSpot CRM adapter -- REST implementation of CRMAdapter over httpx.

One HubSpotAdapter is constructed per HubSpot account (source, mirror) and
passed explicitly to the components that use it. Each method issues one
request and raises httpx.HTTPStatusError on a non-2xx response so that
ResilientClient can classify it.

Endpoints:
- CRM objects v3: search, create, update, get, list
- Associations v4: PUT (idempotent) and list
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.crm_sync.sync.adapter import CRMAdapter
from src.crm_sync.sync.schemas import AssociationDescriptor, CRMPage, EntityType

logger = structlog.get_logger(__name__)


class HubSpotAdapter(CRMAdapter):
    """Async HubSpot client for one account.

    Args:
        token: Private app access token for the account.
        name: Label for logs (e.g. "source", "mirror").
        base_url: HubSpot API root.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        token: str,
        *,
        name: str = "hubspot",
        base_url: str = "https://api.hubapi.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(
        self,
        entity_type: EntityType,
        property_name: str,
        value: str,
        *,
        limit: int = 1,
        properties: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {
            "filterGroups": [
                {"filters": [{"propertyName": property_name, "operator": "EQ", "value": value}]}
            ],
            "limit": limit,
        }
        if properties:
            body["properties"] = properties

        response = await self._client.post(
            f"/crm/v3/objects/{entity_type.value}/search", json=body
        )
        response.raise_for_status()
        results = response.json().get("results", [])
        logger.debug(
            "hubspot.search",
            account=self.name,
            entity_type=entity_type.value,
            property_name=property_name,
            result_count=len(results),
        )
        return results

    async def create(self, entity_type: EntityType, properties: dict[str, str]) -> dict[str, Any]:
        response = await self._client.post(
            f"/crm/v3/objects/{entity_type.value}", json={"properties": properties}
        )
        response.raise_for_status()
        data = response.json()
        logger.info(
            "hubspot.record_created",
            account=self.name,
            entity_type=entity_type.value,
            record_id=data.get("id"),
        )
        return data

    async def update(
        self, entity_type: EntityType, record_id: str, properties: dict[str, str]
    ) -> dict[str, Any]:
        response = await self._client.patch(
            f"/crm/v3/objects/{entity_type.value}/{record_id}",
            json={"properties": properties},
        )
        response.raise_for_status()
        logger.info(
            "hubspot.record_updated",
            account=self.name,
            entity_type=entity_type.value,
            record_id=record_id,
        )
        return response.json()

    async def get(
        self, entity_type: EntityType, record_id: str, properties: list[str] | None = None
    ) -> dict[str, Any]:
        params = {"properties": ",".join(properties)} if properties else None
        response = await self._client.get(
            f"/crm/v3/objects/{entity_type.value}/{record_id}", params=params
        )
        response.raise_for_status()
        return response.json()

    async def create_association(
        self,
        from_type: EntityType,
        from_id: str,
        to_type: EntityType,
        to_id: str,
        descriptor: AssociationDescriptor,
    ) -> None:
        response = await self._client.put(
            f"/crm/v4/objects/{from_type.value}/{from_id}/associations/{to_type.value}/{to_id}",
            json=descriptor.to_payload(),
        )
        response.raise_for_status()
        logger.info(
            "hubspot.association_created",
            account=self.name,
            from_type=from_type.value,
            from_id=from_id,
            to_type=to_type.value,
            to_id=to_id,
            association_type_id=descriptor.type_id,
        )

    async def list_page(
        self,
        entity_type: EntityType,
        properties: list[str],
        *,
        after: str | None = None,
        limit: int = 100,
    ) -> CRMPage:
        params: dict[str, Any] = {"limit": limit, "properties": ",".join(properties)}
        if after:
            params["after"] = after

        response = await self._client.get(f"/crm/v3/objects/{entity_type.value}", params=params)
        response.raise_for_status()
        data = response.json()
        next_after = ((data.get("paging") or {}).get("next") or {}).get("after")
        return CRMPage(results=data.get("results", []), next_after=next_after)

    async def list_associated_ids(
        self, from_type: EntityType, from_id: str, to_type: EntityType
    ) -> list[str]:
        response = await self._client.get(
            f"/crm/v4/objects/{from_type.value}/{from_id}/associations/{to_type.value}"
        )
        response.raise_for_status()
        return [str(item["toObjectId"]) for item in response.json().get("results", [])]
