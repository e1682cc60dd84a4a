"""Error taxonomy for the sync engine.

Remote failures are classified into transient (retried with backoff) and
non-retryable (surfaced immediately). Everything the orchestrator may catch
at a per-record boundary derives from SyncError.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""

    TRANSIENT = "transient"
    NON_RETRYABLE = "non_retryable"
    RETRIES_EXHAUSTED = "retries_exhausted"


class SyncError(Exception):
    """Base class for all sync engine errors."""


class RemoteCallError(SyncError):
    """A remote call failed.

    Attributes:
        kind: Why the call failed (non-retryable or retries exhausted).
        operation: Human-readable name of the remote operation.
        status_code: HTTP status of the last response, if any.
        details: Response body (parsed JSON when possible) or error message.
    """

    kind: ErrorKind = ErrorKind.NON_RETRYABLE

    def __init__(
        self,
        operation: str,
        *,
        status_code: int | None = None,
        details: Any = None,
        attempts: int = 1,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.details = details
        self.attempts = attempts
        super().__init__(str(self))

    def __str__(self) -> str:
        status = self.status_code if self.status_code is not None else "network error"
        return (
            f"{self.operation} failed [{self.kind.value}] "
            f"after {self.attempts} attempt(s), status={status}: {self.details}"
        )


class NonRetryableError(RemoteCallError):
    """Validation error, not-found, conflict, or auth failure. Never retried."""

    kind = ErrorKind.NON_RETRYABLE


class RetriesExhaustedError(RemoteCallError):
    """A transient failure persisted through every allowed attempt."""

    kind = ErrorKind.RETRIES_EXHAUSTED


class UpsertFailedError(SyncError):
    """The resolver could not find-or-create a destination record."""

    def __init__(self, entity_type: str, key_value: str, cause: Exception) -> None:
        self.entity_type = entity_type
        self.key_value = key_value
        self.cause = cause
        super().__init__(f"Upsert of {entity_type} '{key_value}' failed: {cause}")


class AssociationFailedError(SyncError):
    """Creating a contact-to-company association failed remotely."""

    def __init__(self, from_id: str, to_id: str, cause: Exception) -> None:
        self.from_id = from_id
        self.to_id = to_id
        self.cause = cause
        super().__init__(f"Association {from_id} -> {to_id} failed: {cause}")


class CatalogFetchError(SyncError):
    """The set of catalog records to migrate could not be obtained. Fatal to a run."""


class SourceFetchError(SyncError):
    """A page of the source CRM account could not be read. Fatal to a mirror run."""


class PayloadValidationError(SyncError, ValueError):
    """A webhook or mirror payload is missing required fields."""
