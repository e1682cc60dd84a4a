"""Wiring test: build_sync_services() against mocked catalog and HubSpot transports."""

from __future__ import annotations

import itertools
import json

import httpx

from src.crm_sync.config import Settings
from src.crm_sync.sync.factory import build_sync_services
from src.crm_sync.sync.schemas import EntityType, SyncPhase

CATALOG_URL = "https://rickandmortyapi.com/api"


def _catalog_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/location/1"):
        return httpx.Response(
            200,
            json={
                "id": 1,
                "name": "Earth (C-137)",
                "type": "Planet",
                "dimension": "Dimension C-137",
                "url": f"{CATALOG_URL}/location/1",
            },
        )
    return httpx.Response(
        200,
        json={
            "info": {"count": 4, "pages": 1, "next": None},
            "results": [
                {
                    "id": i,
                    "name": name,
                    "status": "Alive",
                    "species": "Human",
                    "gender": "Male",
                    "origin": {"name": "Earth (C-137)", "url": f"{CATALOG_URL}/location/1"},
                    "url": f"{CATALOG_URL}/character/{i}",
                }
                for i, name in enumerate(
                    ["Rick Sanchez", "Morty Smith", "Summer Smith", "Beth Smith"], start=1
                )
            ],
        },
    )


class _HubSpotHandler:
    """Empty HubSpot account: searches find nothing, creates hand out ids."""

    def __init__(self) -> None:
        self._ids = itertools.count(5001)
        self.requests: list[tuple[str, str]] = []
        self.tokens: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        self.tokens.add(request.headers["Authorization"])
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"total": 0, "results": []})
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(
                201, json={"id": str(next(self._ids)), "properties": body["properties"]}
            )
        return httpx.Response(200, json={})


class TestBuildSyncServices:
    async def test_migration_runs_end_to_end(self):
        settings = Settings(
            HUBSPOT_SOURCE_TOKEN="source-token",
            HUBSPOT_MIRROR_TOKEN="mirror-token",
            CATALOG_MAX_ID=3,
        )
        hubspot = _HubSpotHandler()
        services = build_sync_services(
            settings,
            catalog_transport=httpx.MockTransport(_catalog_handler),
            hubspot_transport=httpx.MockTransport(hubspot),
        )

        summary = await services.orchestrator.run_full_sync()
        await services.aclose()

        assert summary.phase is SyncPhase.DONE
        # ids 1, 2, 3 selected; 4 is over CATALOG_MAX_ID and not prime
        assert summary.contacts_created == 3
        assert summary.companies_processed == 1
        assert summary.associations_created == 3
        assert hubspot.tokens == {"Bearer source-token"}
        puts = [path for method, path in hubspot.requests if method == "PUT"]
        assert puts == [
            "/crm/v4/objects/contacts/5002/associations/companies/5001",
            "/crm/v4/objects/contacts/5003/associations/companies/5001",
            "/crm/v4/objects/contacts/5004/associations/companies/5001",
        ]

    async def test_mirror_writes_with_mirror_token(self):
        settings = Settings(HUBSPOT_SOURCE_TOKEN="source-token", HUBSPOT_MIRROR_TOKEN="mirror-token")
        hubspot = _HubSpotHandler()
        services = build_sync_services(
            settings,
            catalog_transport=httpx.MockTransport(_catalog_handler),
            hubspot_transport=httpx.MockTransport(hubspot),
        )

        result = await services.mirror.apply_one_record_change(
            EntityType.COMPANY, {"name": "Earth (C-137)"}
        )
        await services.aclose()

        assert result == "created"
        assert hubspot.tokens == {"Bearer mirror-token"}
