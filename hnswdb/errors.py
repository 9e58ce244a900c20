"""
Exception hierarchy for hnswdb.

Every error raised by the library derives from HnswError. The value-shaped
errors also derive from ValueError (and NotFoundError from LookupError) so
callers that only know the builtin exceptions keep working.
"""

from typing import Any, Optional


class HnswError(Exception):
    """Base class for all hnswdb errors."""


class ConfigurationError(HnswError, ValueError):
    """Invalid build parameters or a malformed/missing descriptor field."""


class DimensionMismatchError(HnswError, ValueError):
    """A vector's length disagrees with the index dimensionality."""

    def __init__(self, expected: int, actual: int, subject: Any = None) -> None:
        self.expected = expected
        self.actual = actual
        self.subject = subject
        message = f"Vector dimension {actual} doesn't match index dimension {expected}"
        if subject is not None:
            message += f" (subject={subject!r})"
        super().__init__(message)


class InvalidVectorError(HnswError, ValueError):
    """A vector is not one-dimensional or holds non-finite components."""

    def __init__(self, reason: str, subject: Any = None) -> None:
        self.subject = subject
        if subject is not None:
            reason = f"{reason} (subject={subject!r})"
        super().__init__(reason)


class InvalidRangeError(HnswError, ValueError):
    """Quantization was requested with max <= min."""


class NotFoundError(HnswError, LookupError):
    """A subject key or a descriptor file does not exist."""

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message like KeyError does
        return str(self.args[0]) if self.args else ""


class DuplicateSubjectError(HnswError, ValueError):
    """A subject is already present in the index."""

    def __init__(self, subject: Any, message: Optional[str] = None) -> None:
        self.subject = subject
        super().__init__(message or f"Subject {subject!r} already exists in the index")
