"""Shared fixtures for sync engine tests.

Provides:
- A recording sleep so retry backoff never actually waits
- A ResilientClient wired to that sleep
- An in-memory CRM account and a paged fake catalog

No fixture touches the network.
"""

from __future__ import annotations

import pytest

from src.crm_sync.sync.retry import ResilientClient
from tests.doubles import InMemoryCRM, RecordingSleep


@pytest.fixture
def sleep() -> RecordingSleep:
    """Sleep stand-in recording each backoff delay."""
    return RecordingSleep()


@pytest.fixture
def remote(sleep) -> ResilientClient:
    """ResilientClient with the production schedule (3 attempts, 2s base) and no real waits."""
    return ResilientClient("test", max_attempts=3, initial_delay=2.0, sleep=sleep)


@pytest.fixture
def crm() -> InMemoryCRM:
    """Empty in-memory CRM account."""
    return InMemoryCRM()
