"""Error models and exception classes for pipekit."""

from enum import Enum
from typing import List, Optional


class ErrorType(str, Enum):
    """Error type enumeration."""

    USAGE = "usage"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    SUPERVISOR = "supervisor"
    INTERNAL = "internal"


# Custom Exception Classes


class PipekitException(Exception):
    """Base exception for pipekit."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL,
        details: Optional[List[str]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to a structured log/event payload."""
        payload = {"error": self.message, "error_type": self.error_type.value}
        if self.details:
            payload["details"] = list(self.details)
        return payload


class UsageError(PipekitException):
    """Invalid arguments: empty command, bad direction tag, non-callable work."""

    def __init__(self, message: str = "Invalid usage", **kwargs):
        super().__init__(message=message, error_type=ErrorType.USAGE, **kwargs)


class ResourceExhaustedError(PipekitException):
    """A pipe or a child process could not be created."""

    def __init__(self, resource: str, cause: Optional[OSError] = None, **kwargs):
        message = f"Failed to create {resource}"
        if cause is not None:
            message = f"{message}: {cause.strerror or cause}"
        self.resource = resource
        self.errno = cause.errno if cause is not None else None
        super().__init__(
            message=message, error_type=ErrorType.RESOURCE_EXHAUSTED, **kwargs
        )


class ChildCollectedError(PipekitException):
    """A child handle was collected more than once."""

    def __init__(self, pid: int, **kwargs):
        self.pid = pid
        super().__init__(
            message=f"Child {pid} has already been collected",
            error_type=ErrorType.INTERNAL,
            **kwargs,
        )


class UnrecognizedStatusError(PipekitException):
    """A wait status that is neither a normal exit nor a signal termination."""

    def __init__(self, status: int, **kwargs):
        self.status = status
        super().__init__(
            message=f"Unrecognized wait status: {status:#x}",
            error_type=ErrorType.SUPERVISOR,
            **kwargs,
        )
