"""Exceptions raised by the butler core.

Transport failures keep the HTTP status so callers can tell a missing job
(404) from an auth problem or an outage.  Operation-level errors wrap the
transport failure with the job path and build number they were working on.
"""

from __future__ import annotations


class ButlerError(Exception):
    """Base exception for all butler operations."""


class InvalidPathError(ButlerError, ValueError):
    """Raised when a logical job path has an empty segment."""

    def __init__(self, value: str, reason: str = "empty path segment") -> None:
        self.value = value
        super().__init__(f"Invalid job path {value!r}: {reason}")


class TransportError(ButlerError):
    """Raised when a request to Jenkins fails (network or HTTP status)."""

    def __init__(self, message: str, status_code: int | None = None, path: str = "") -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class NotFoundError(TransportError):
    """Raised on HTTP 404 responses."""

    def __init__(self, path: str = "") -> None:
        super().__init__(f"Not found (404): {path}", status_code=404, path=path)


class ProtocolViolation(ButlerError):
    """Raised when a Jenkins response breaks an invariant the core relies on."""


class OperationError(ButlerError):
    """A failure of a core operation, carrying the job/build it concerned."""

    operation = "operation"

    def __init__(self, job_path: str, build_number: int | None = None, detail: str = "") -> None:
        self.job_path = job_path
        self.build_number = build_number
        target = f"job '{job_path}'"
        if build_number is not None:
            target = f"build #{build_number} of {target}"
        message = f"{self.operation} failed for {target}"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @property
    def status_code(self) -> int | None:
        cause = self.__cause__
        return cause.status_code if isinstance(cause, TransportError) else None

    @property
    def not_found(self) -> bool:
        return isinstance(self.__cause__, NotFoundError)


class BuildQueryError(OperationError):
    operation = "Build query"


class StageResolutionError(OperationError):
    operation = "Stage resolution"


class JobQueryError(OperationError):
    operation = "Job query"


class BuildActionError(OperationError):
    operation = "Build action"


class LogRetrievalError(OperationError):
    operation = "Log retrieval"
