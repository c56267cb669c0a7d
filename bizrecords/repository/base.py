"""Base record service interface.

Defines the contract the repositories depend on, independent of the backing
implementation (the remote HTTP service, the in-memory store, etc.).

All methods are asynchronous and return the service's raw response
envelopes; normalising those envelopes is the repository's job.

Envelope shapes
- read: ``{"success": bool, "data": ..., "message": str}``
- write: ``{"success": bool, "results": [{"success", "data", "errors",
  "message"}], "message": str}``
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class RecordService(ABC):
    """Abstract base class for remote tabular record services.

    Implementations address records by table name and integer ``Id`` and must
    report failures either through the envelope (``success: False``) or by
    raising one of the ``RecordServiceError`` subclasses below.
    """

    @abstractmethod
    async def fetch_records(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Fetch records.

        ``params`` carries ``fields``, and optionally ``where``, ``orderBy``
        and ``pagingInfo``.
        """
        pass

    @abstractmethod
    async def get_record_by_id(
        self,
        table: str,
        record_id: int,
        params: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Fetch a single record by ``Id``."""
        pass

    @abstractmethod
    async def create_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create the records listed under ``params["records"]``."""
        pass

    @abstractmethod
    async def update_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Update the records listed under ``params["records"]`` (each with ``Id``)."""
        pass

    @abstractmethod
    async def delete_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Delete the records whose ids are listed under ``params["RecordIds"]``."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the record service is reachable."""
        pass

    async def close(self) -> None:
        """Release transport resources. No-op unless the backend holds any."""
        return None

    async def __aenter__(self) -> "RecordService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class RecordServiceError(Exception):
    """Base exception for record operations.

    Attributes
    - message: Human-readable description, safe to show to a user
    - remote_message: Original text reported by the remote service, if any
    - kind: Stable taxonomy name for callers that branch on failure type
    """

    kind = "RecordServiceError"

    def __init__(self, message: str, remote_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.remote_message = remote_message if remote_message is not None else message


class InvalidArgumentError(RecordServiceError):
    """Required identifier missing or not a positive integer."""

    kind = "InvalidArgument"


class RecordNotFoundError(RecordServiceError):
    """The remote service reports no such record."""

    kind = "NotFound"


class ValidationFailedError(RecordServiceError):
    """A create or update was rejected for the submitted record.

    ``field_errors`` maps field labels to messages when the remote service
    (or the required-field check) supplies them.
    """

    kind = "ValidationFailed"

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, str]] = None,
        remote_message: Optional[str] = None
    ):
        super().__init__(message, remote_message)
        self.field_errors = dict(field_errors or {})


class RemoteUnavailableError(RecordServiceError):
    """Transport failure or a malformed / unsuccessful remote response."""

    kind = "RemoteUnavailable"

    def __init__(
        self,
        message: str,
        remote_message: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, remote_message)
        self.status_code = status_code


class CascadeDeleteError(RemoteUnavailableError):
    """Bulk delete of child records did not remove every listed record."""

    def __init__(
        self,
        message: str,
        deleted_ids: Optional[list] = None,
        failed_ids: Optional[list] = None,
        remote_message: Optional[str] = None
    ):
        super().__init__(message, remote_message)
        self.deleted_ids = list(deleted_ids or [])
        self.failed_ids = list(failed_ids or [])
