"""Unit tests for ResilientClient retry, backoff and error classification.

Uses a recording sleep so no test waits; remote operations are AsyncMocks
whose side effects simulate HubSpot responses.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import ValidationError

from src.crm_sync.sync.errors import ErrorKind, NonRetryableError, RetriesExhaustedError
from src.crm_sync.sync.retry import ResilientClient, classify_error, retry_after_seconds
from src.crm_sync.sync.schemas import CatalogLocation
from tests.doubles import RecordingSleep, http_error


# ── Classification ───────────────────────────────────────────────────────────


class TestClassifyError:
    """HTTP and transport failures map to the right ErrorKind."""

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_rate_limit_and_server_errors_are_transient(self, status_code):
        assert classify_error(http_error(status_code)) is ErrorKind.TRANSIENT

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 409, 422])
    def test_client_errors_are_non_retryable(self, status_code):
        assert classify_error(http_error(status_code)) is ErrorKind.NON_RETRYABLE

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ReadTimeout("timed out"),
            httpx.ConnectTimeout("timed out"),
            httpx.ConnectError("connection refused"),
            httpx.RemoteProtocolError("connection aborted"),
        ],
    )
    def test_timeouts_and_connection_failures_are_transient(self, exc):
        assert classify_error(exc) is ErrorKind.TRANSIENT

    def test_unrelated_exception_is_non_retryable(self):
        assert classify_error(ValueError("bad")) is ErrorKind.NON_RETRYABLE

    def test_retry_after_parsed_from_rate_limit_response(self):
        assert retry_after_seconds(http_error(429, headers={"Retry-After": "5"})) == 5.0

    def test_retry_after_ignored_when_unparseable(self):
        exc = http_error(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})
        assert retry_after_seconds(exc) is None

    def test_retry_after_ignored_on_server_errors(self):
        assert retry_after_seconds(http_error(503, headers={"Retry-After": "5"})) is None


# ── Invoke ───────────────────────────────────────────────────────────────────


class TestResilientClientInvoke:
    """invoke() returns results unchanged and retries only transient failures."""

    async def test_success_returns_response_unchanged(self, remote, sleep):
        response = {"id": "101", "properties": {"name": "Earth"}}
        operation = AsyncMock(return_value=response)

        result = await remote.invoke(operation, "companies", description="companies.create")

        assert result is response
        operation.assert_awaited_once_with("companies")
        assert sleep.delays == []

    async def test_kwargs_are_forwarded(self, remote):
        operation = AsyncMock(return_value=[])

        await remote.invoke(operation, "contacts", "email", "x@y.com", limit=1, description="search")

        operation.assert_awaited_once_with("contacts", "email", "x@y.com", limit=1)

    async def test_transient_failures_are_retried_until_success(self, remote, sleep):
        operation = AsyncMock(side_effect=[http_error(503), http_error(502), {"id": "1"}])

        result = await remote.invoke(operation, description="contacts.create")

        assert result == {"id": "1"}
        assert operation.await_count == 3
        assert sleep.delays == [2.0, 4.0]

    async def test_rate_limit_uses_server_retry_after_hint(self, remote, sleep):
        operation = AsyncMock(
            side_effect=[http_error(429, headers={"Retry-After": "7"}), {"id": "1"}]
        )

        await remote.invoke(operation, description="contacts.search")

        assert sleep.delays == [7.0]

    async def test_rate_limit_without_hint_uses_exponential_delay(self, remote, sleep):
        operation = AsyncMock(side_effect=[http_error(429), http_error(429), {"id": "1"}])

        await remote.invoke(operation, description="contacts.search")

        assert sleep.delays == [2.0, 4.0]

    async def test_timeouts_and_aborts_are_retried(self, remote, sleep):
        operation = AsyncMock(
            side_effect=[
                httpx.ReadTimeout("timed out"),
                httpx.RemoteProtocolError("connection aborted"),
                "ok",
            ]
        )

        assert await remote.invoke(operation, description="associations.create") == "ok"
        assert len(sleep.delays) == 2

    @pytest.mark.parametrize("status_code", [400, 404, 409])
    async def test_non_retryable_error_is_raised_after_one_attempt(
        self, remote, sleep, status_code
    ):
        body = {"status": "error", "message": "Property values were not valid"}
        operation = AsyncMock(side_effect=http_error(status_code, body=body))

        with pytest.raises(NonRetryableError) as exc_info:
            await remote.invoke(operation, description="contacts.create")

        assert operation.await_count == 1
        assert sleep.delays == []
        error = exc_info.value
        assert error.kind is ErrorKind.NON_RETRYABLE
        assert error.status_code == status_code
        assert error.details == body
        assert error.attempts == 1
        assert isinstance(error.__cause__, httpx.HTTPStatusError)

    async def test_retries_exhausted_after_max_attempts(self, remote, sleep):
        operation = AsyncMock(side_effect=http_error(503))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await remote.invoke(operation, description="companies.update")

        assert operation.await_count == 3
        error = exc_info.value
        assert error.kind is ErrorKind.RETRIES_EXHAUSTED
        assert error.attempts == 3
        assert error.status_code == 503
        assert error.operation == "companies.update"
        assert isinstance(error.__cause__, httpx.HTTPStatusError)

    async def test_non_retryable_after_transient_stops_immediately(self, remote, sleep):
        operation = AsyncMock(side_effect=[http_error(500), http_error(400), {"id": "1"}])

        with pytest.raises(NonRetryableError) as exc_info:
            await remote.invoke(operation, description="contacts.update")

        assert operation.await_count == 2
        assert exc_info.value.attempts == 2
        assert sleep.delays == [2.0]

    async def test_undecodable_body_is_non_retryable(self, remote, sleep):
        async def html_page():
            return httpx.Response(200, text="<html>maintenance</html>").json()

        with pytest.raises(NonRetryableError) as exc_info:
            await remote.invoke(html_page, description="catalog.list_page")

        assert exc_info.value.status_code is None
        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert sleep.delays == []

    async def test_schema_validation_failure_is_non_retryable(self, remote, sleep):
        operation = AsyncMock(side_effect=lambda: CatalogLocation.model_validate({"name": 42}))

        with pytest.raises(NonRetryableError) as exc_info:
            await remote.invoke(operation, description="catalog.get_location")

        assert operation.await_count == 1
        assert isinstance(exc_info.value.__cause__, ValidationError)
        assert sleep.delays == []

    async def test_missing_response_key_is_non_retryable(self, remote):
        operation = AsyncMock(side_effect=KeyError("toObjectId"))

        with pytest.raises(NonRetryableError):
            await remote.invoke(operation, description="associations.list")

        assert operation.await_count == 1


# ── Backoff Schedule ─────────────────────────────────────────────────────────


class TestBackoffSchedule:
    """The delay schedule is exponential, non-decreasing and bounded."""

    async def test_consecutive_transient_failures_produce_non_decreasing_delays(self):
        sleep = RecordingSleep()
        client = ResilientClient("test", max_attempts=4, initial_delay=2.0, sleep=sleep)
        operation = AsyncMock(side_effect=[http_error(500)] * 3 + [{"id": "1"}])

        await client.invoke(operation, description="contacts.create")

        assert sleep.delays == [2.0, 4.0, 8.0]
        assert all(later >= earlier for earlier, later in zip(sleep.delays, sleep.delays[1:]))

    async def test_max_delay_caps_exponential_delay(self):
        sleep = RecordingSleep()
        client = ResilientClient(
            "test", max_attempts=4, initial_delay=2.0, max_delay=3.0, sleep=sleep
        )
        operation = AsyncMock(side_effect=[http_error(500)] * 3 + ["ok"])

        await client.invoke(operation, description="contacts.create")

        assert sleep.delays == [2.0, 3.0, 3.0]

    async def test_single_attempt_never_sleeps(self):
        sleep = RecordingSleep()
        client = ResilientClient("test", max_attempts=1, sleep=sleep)
        operation = AsyncMock(side_effect=http_error(503))

        with pytest.raises(RetriesExhaustedError):
            await client.invoke(operation, description="contacts.create")

        assert sleep.delays == []

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            ResilientClient("test", max_attempts=0)
