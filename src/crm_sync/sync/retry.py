"""Resilient remote client -- bounded retry with rate-limit aware backoff.

Every outbound call (HubSpot search/create/update/associate, catalog page
reads) goes through ResilientClient.invoke(). The retry loop is a tenacity
AsyncRetrying loop bounded by stop_after_attempt; the wait strategy and the
sleep function are separate objects so the schedule can be tested without
real delays.

Classification:
- HTTP 429: wait for the server's Retry-After hint, else exponential backoff
- HTTP 5xx, timeouts, connection errors: exponential backoff
- Any other HTTP failure (400, 404, 409, ...): raised immediately, no retry
- Undecodable or malformed response bodies: raised immediately, no retry
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from src.crm_sync.core.monitoring import remote_calls_total
from src.crm_sync.sync.errors import (
    ErrorKind,
    NonRetryableError,
    RemoteCallError,
    RetriesExhaustedError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429

_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

# Raised while decoding a 2xx body: JSONDecodeError, pydantic validation,
# missing keys in the payload
_MALFORMED_RESPONSE_ERRORS = (ValueError, ValidationError, KeyError)

_NON_RETRYABLE_ERRORS = (httpx.HTTPError, *_MALFORMED_RESPONSE_ERRORS)


# ── Classification ──────────────────────────────────────────────────────────


def classify_error(exc: BaseException) -> ErrorKind:
    """Decide whether a failed call may be retried."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == RATE_LIMIT_STATUS or status >= 500:
            return ErrorKind.TRANSIENT
        return ErrorKind.NON_RETRYABLE
    if isinstance(exc, _TRANSIENT_TRANSPORT_ERRORS):
        return ErrorKind.TRANSIENT
    return ErrorKind.NON_RETRYABLE


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT


def retry_after_seconds(exc: BaseException | None) -> float | None:
    """Extract a Retry-After hint (in seconds) from a rate-limited response."""
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    if exc.response.status_code != RATE_LIMIT_STATUS:
        return None
    raw = exc.response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _status_of(exc: BaseException | None) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def _error_details(exc: BaseException | None) -> Any:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            return exc.response.json()
        except ValueError:
            return exc.response.text
    if exc is None:
        return None
    return str(exc) or type(exc).__name__


# ── Wait Strategy ───────────────────────────────────────────────────────────


class wait_retry_after_or_exponential(wait_base):
    """Wait for the server's Retry-After hint, else initial_delay * 2**attempt.

    attempt is zero-based: the delay after the first failure is initial_delay,
    after the second 2 * initial_delay, and so on. max_delay caps only the
    computed exponential delay, never an explicit server hint.
    """

    def __init__(self, initial_delay: float = 2.0, max_delay: float | None = None) -> None:
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = retry_after_seconds(exc)
        if hint is not None:
            return hint

        delay = self.initial_delay * (2 ** (retry_state.attempt_number - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


# ── Client ──────────────────────────────────────────────────────────────────


class ResilientClient:
    """Invokes remote operations with bounded, rate-limit aware retries.

    Args:
        name: Label used in logs and metrics (e.g. "hubspot_source", "catalog").
        max_attempts: Total attempts including the first one.
        initial_delay: Base backoff delay in seconds.
        max_delay: Optional cap on computed exponential delays.
        sleep: Async sleep function. Defaults to asyncio.sleep.
    """

    def __init__(
        self,
        name: str = "remote",
        *,
        max_attempts: int = 3,
        initial_delay: float = 2.0,
        max_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.name = name
        self.max_attempts = max_attempts
        self.wait = wait_retry_after_or_exponential(initial_delay, max_delay)
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Any, name: str) -> ResilientClient:
        return cls(
            name,
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_delay=settings.RETRY_INITIAL_DELAY,
        )

    def _retrying(self, operation: str) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception(is_transient),
            sleep=self._sleep,
            before_sleep=partial(self._log_retry, operation),
        )

    async def invoke(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        description: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Run operation(*args, **kwargs), retrying transient failures.

        Returns:
            The operation's result, unchanged.

        Raises:
            NonRetryableError: The call failed with a non-retryable HTTP error
                or returned a body that could not be decoded.
            RetriesExhaustedError: Every attempt failed transiently.
        """
        op_name = description or getattr(operation, "__name__", repr(operation))
        attempt_number = 0

        try:
            async for attempt in self._retrying(op_name):
                attempt_number = attempt.retry_state.attempt_number
                with attempt:
                    result = await operation(*args, **kwargs)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            error: RemoteCallError = RetriesExhaustedError(
                op_name,
                status_code=_status_of(last),
                details=_error_details(last),
                attempts=attempt_number,
            )
            self._log_failure(error)
            raise error from last
        except _NON_RETRYABLE_ERRORS as exc:
            error = NonRetryableError(
                op_name,
                status_code=_status_of(exc),
                details=_error_details(exc),
                attempts=attempt_number,
            )
            self._log_failure(error)
            raise error from exc

        remote_calls_total.labels(client=self.name, outcome="success").inc()
        logger.info(
            "remote.call_succeeded",
            client=self.name,
            operation=op_name,
            attempt=attempt_number,
        )
        return result

    def _log_retry(self, operation: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        remote_calls_total.labels(client=self.name, outcome="retry").inc()
        logger.warning(
            "remote.retry_scheduled",
            client=self.name,
            operation=operation,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            delay_seconds=delay,
            status_code=_status_of(exc),
            rate_limited=_status_of(exc) == RATE_LIMIT_STATUS,
            error=str(exc),
        )

    def _log_failure(self, error: RemoteCallError) -> None:
        remote_calls_total.labels(client=self.name, outcome=error.kind.value).inc()
        logger.error(
            "remote.call_failed",
            client=self.name,
            operation=error.operation,
            attempt=error.attempts,
            kind=error.kind.value,
            status_code=error.status_code,
            details=error.details,
        )
