"""
Exception hierarchy for snapshot export and import.

Everything below ``MirrorError`` except ``StructuralError`` is an expected
per-resource failure: it is caught at the resource boundary and turned into an
outcome. ``StructuralError`` stops the run.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Categories used when reporting per-resource failures."""

    TRANSPORT = "transport"
    DECODE = "decode"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    INTERNAL = "internal"


class MirrorError(Exception):
    """Base class for mirror errors."""

    category = ErrorCategory.INTERNAL

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class TransportError(MirrorError):
    """The remote call did not complete (connection failure, timeout, HTTP error)."""

    category = ErrorCategory.TRANSPORT

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class DecodeError(MirrorError):
    """The response was not the expected structured shape."""

    category = ErrorCategory.DECODE


class ResourceNotFoundError(MirrorError):
    """The resource or collection does not exist on the remote side."""

    category = ErrorCategory.NOT_FOUND


class SnapshotValidationError(MirrorError):
    """Local snapshot or mapping input is malformed."""

    category = ErrorCategory.VALIDATION


class StructuralError(MirrorError):
    """A condition that makes the rest of the run meaningless."""

    category = ErrorCategory.VALIDATION


def categorize(error: Exception) -> ErrorCategory:
    """Return the reporting category for an arbitrary exception."""
    if isinstance(error, MirrorError):
        return error.category
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorCategory.DECODE
    if isinstance(error, OSError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL
