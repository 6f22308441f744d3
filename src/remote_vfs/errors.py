"""Error taxonomy shared by names, nodes, backends and content adapters."""

from __future__ import annotations


class VfsError(Exception):
    """Base class for all remote file system errors."""


class MalformedNameError(VfsError):
    """Raised when an address cannot be parsed into a Name."""

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Malformed name {raw!r}: {reason}")
        self.raw = raw
        self.reason = reason


class NotFoundError(VfsError):
    """Raised when an operation needs an object that does not exist.

    Metadata probes never raise this; they return a ``NotFound`` result.
    """

    def __init__(self, operation: str, key: str) -> None:
        super().__init__(f"{operation}: no such object {key!r}")
        self.operation = operation
        self.key = key


class BackendUnavailableError(VfsError):
    """Raised when the backend fails for a reason other than a missing object."""

    def __init__(self, operation: str, key: str, message: str) -> None:
        super().__init__(f"{operation} failed for {key!r}: {message}")
        self.operation = operation
        self.key = key
        self.message = message


class InvalidPositionError(VfsError):
    """Raised when seeking to a negative position."""

    def __init__(self, pos: int) -> None:
        super().__init__(f"Invalid random access position: {pos}")
        self.pos = pos


class UnsupportedOperationError(VfsError):
    """Raised for capabilities a backend or the core intentionally does not provide."""
