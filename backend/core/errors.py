"""Error taxonomy shared by every initialization stage."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class InitializationError(Exception):
    """Base class for failures that end an initialization operation."""

    code = "initialization_error"


class NotFoundError(InitializationError):
    """Raised when a tenant, workspace or connection descriptor is missing."""

    code = "not_found"


class ValidationError(InitializationError):
    """Raised when request options are malformed."""

    code = "validation_error"


class ExternalCallFailure(InitializationError):
    """Wraps an error raised by a database or storage collaborator."""

    code = "external_call_failure"

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class FileReadError(InitializationError):
    """Raised when an uploaded file cannot be read at all."""

    code = "file_read_error"

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"cannot read {filename}: {reason}")


class LedgerTransitionError(RuntimeError):
    """Raised on an attempt to change a terminal log entry."""


class PartialParseFailure(ValueError):
    """A single malformed row. The file parser records it and carries on."""


@contextmanager
def external_call(operation: str) -> Iterator[None]:
    """Translate collaborator exceptions into :class:`ExternalCallFailure`."""

    try:
        yield
    except InitializationError:
        raise
    except Exception as exc:
        raise ExternalCallFailure(operation, exc) from exc
