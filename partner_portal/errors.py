from __future__ import annotations

from typing import Any


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class PreconditionFailed(ApiError):
    """An update or delete targeted an identifier with no primary record."""

    def __init__(self, *, entity_type: str, entity_id: str) -> None:
        super().__init__(
            code="ENTITY_NOT_FOUND",
            message=f"{entity_type} {entity_id} does not exist",
            error_class="precondition",
            retryable=False,
            http_status=412,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class PartialWriteFailure(ApiError):
    """Some commands of a write batch failed; the indexes may have drifted."""

    def __init__(
        self,
        *,
        entity_type: str,
        entity_id: str,
        failed: list[dict[str, Any]],
    ) -> None:
        super().__init__(
            code="STORE_PARTIAL_WRITE",
            message=f"partial write for {entity_type} {entity_id}: {len(failed)} command(s) failed",
            error_class="transient",
            retryable=True,
            http_status=503,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.failed = failed


class KVCommandError(Exception):
    """A single store command was rejected (wrong type, bad argument)."""


class StoreUnavailable(ApiError):
    """The store did not answer (timeout, refused connection); writes may be partially applied."""

    def __init__(self, message: str = "store unavailable") -> None:
        super().__init__(
            code="STORE_UNAVAILABLE",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=503,
        )
