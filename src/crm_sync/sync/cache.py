"""Run-scoped identity cache.

Maps a natural key (or a catalog relation URL) to the DestinationIdentity
resolved for it during one sync run. An orchestrator creates a fresh cache
per run and passes it to each phase; it is never shared between runs.
"""

from __future__ import annotations

from src.crm_sync.sync.schemas import DestinationIdentity, EntityType


class IdentityCache:
    """Mapping of (entity type, key) to DestinationIdentity."""

    def __init__(self) -> None:
        self._entries: dict[tuple[EntityType, str], DestinationIdentity] = {}

    def put(self, entity_type: EntityType, key: str, identity: DestinationIdentity) -> None:
        self._entries[(entity_type, key)] = identity

    def get(self, entity_type: EntityType, key: str | None) -> DestinationIdentity | None:
        if key is None:
            return None
        return self._entries.get((entity_type, key))

    def __contains__(self, item: tuple[EntityType, str]) -> bool:
        return item in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def count(self, entity_type: EntityType) -> int:
        """Number of cached identities of one entity type."""
        return sum(1 for kind, _ in self._entries if kind is entity_type)
