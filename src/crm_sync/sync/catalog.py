"""Catalog access: Rick and Morty API client and the paginating CatalogReader.

RickAndMortyClient performs single requests (one page, one record, one
relation link). CatalogReader drives it through a ResilientClient, follows
the continuation cursor until it is absent, and only then applies the
selection predicate, since predicates depend on global id rather than on
page-local data.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import structlog

from src.crm_sync.sync.errors import CatalogFetchError, RemoteCallError
from src.crm_sync.sync.retry import ResilientClient
from src.crm_sync.sync.schemas import CatalogCharacter, CatalogLocation, CatalogPage
from src.crm_sync.sync.selection import RecordPredicate

logger = structlog.get_logger(__name__)


class RickAndMortyClient:
    """Async client for the read-only Rick and Morty catalog.

    Args:
        base_url: API root, e.g. https://rickandmortyapi.com/api.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str = "https://rickandmortyapi.com/api",
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_page(self, cursor: str | None = None) -> CatalogPage:
        """Fetch one page of characters.

        Args:
            cursor: Continuation URL from a previous page, None for the first page.
        """
        url = cursor or f"{self._base_url}/character"
        response = await self._client.get(url)
        response.raise_for_status()
        data = response.json()
        info = data.get("info") or {}
        return CatalogPage(
            records=[CatalogCharacter.model_validate(item) for item in data.get("results", [])],
            next_cursor=info.get("next") or None,
            total_count=info.get("count", 0),
        )

    async def get_by_id(self, character_id: int) -> CatalogCharacter:
        response = await self._client.get(f"{self._base_url}/character/{character_id}")
        response.raise_for_status()
        return CatalogCharacter.model_validate(response.json())

    async def get_by_url(self, url: str) -> CatalogLocation:
        """Follow a relation link (e.g. a character's origin URL)."""
        response = await self._client.get(url)
        response.raise_for_status()
        return CatalogLocation.model_validate(response.json())


class CatalogReader:
    """Lazy, restartable sequence of catalog characters.

    Each call to iter_records() starts again from the first page. Pages are
    fetched sequentially; there is no prefetching.

    Args:
        catalog: Catalog collaborator.
        remote: ResilientClient wrapping every page request.
    """

    def __init__(self, catalog: RickAndMortyClient, remote: ResilientClient) -> None:
        self._catalog = catalog
        self._remote = remote

    async def fetch_all(self) -> list[CatalogCharacter]:
        """Read every page, following the continuation cursor until absent.

        Raises:
            CatalogFetchError: A page could not be obtained.
        """
        records: list[CatalogCharacter] = []
        cursor: str | None = None
        page_number = 0

        while True:
            page_number += 1
            try:
                page = await self._remote.invoke(
                    self._catalog.list_page, cursor, description="catalog.list_page"
                )
            except RemoteCallError as exc:
                raise CatalogFetchError(
                    f"Catalog page {page_number} could not be fetched: {exc}"
                ) from exc

            records.extend(page.records)
            logger.debug(
                "catalog.page_fetched",
                page=page_number,
                page_size=len(page.records),
                total_count=page.total_count,
            )

            cursor = page.next_cursor
            if not cursor:
                break

        logger.info("catalog.pages_exhausted", pages=page_number, record_count=len(records))
        return records

    async def iter_records(
        self, predicate: RecordPredicate | None = None
    ) -> AsyncIterator[CatalogCharacter]:
        """Yield catalog records in catalog order, filtered by predicate."""
        records = await self.fetch_all()
        for record in records:
            if predicate is None or predicate(record):
                yield record

    async def get_location(self, url: str) -> CatalogLocation:
        """Resolve a relation link through the resilient client."""
        return await self._remote.invoke(
            self._catalog.get_by_url, url, description="catalog.get_location"
        )
