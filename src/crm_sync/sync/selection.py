"""Record selection predicates evaluated client side against catalog ids."""

from __future__ import annotations

from collections.abc import Callable

from src.crm_sync.sync.schemas import CatalogCharacter

RecordPredicate = Callable[[CatalogCharacter], bool]


def is_prime(number: int) -> bool:
    """Primality test using 6k +/- 1 trial division."""
    if number <= 1:
        return False
    if number <= 3:
        return True
    if number % 2 == 0 or number % 3 == 0:
        return False

    i = 5
    while i * i <= number:
        if number % i == 0 or number % (i + 2) == 0:
            return False
        i += 6
    return True


def is_migration_candidate(record_id: int, max_id: int | None = None) -> bool:
    """Headline migration selection: id 1 plus every prime id, up to max_id."""
    if max_id is not None and record_id > max_id:
        return False
    return record_id == 1 or is_prime(record_id)


def migration_predicate(max_id: int | None = None) -> RecordPredicate:
    """Build the record predicate used by the full catalog migration."""

    def predicate(record: CatalogCharacter) -> bool:
        return is_migration_candidate(record.id, max_id)

    return predicate
