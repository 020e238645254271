"""jsonstash exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each storage failure mode raises a specific error type for debuggability.
"""

from __future__ import annotations


class JsonStashError(Exception):
    """Base exception for all jsonstash failures."""


class JsonStashConfigError(JsonStashError):
    """Raised for invalid runtime configuration."""


class InvalidKeyError(JsonStashError):
    """Raised when a record key or child name fails validation."""


class InvalidChildKindError(JsonStashError):
    """Raised when a namespace child kind is neither model nor schema."""


class NotInitializedError(JsonStashError):
    """Raised when a collection or namespace index failed to load."""


class StorageIOError(JsonStashError):
    """Raised when reading, writing or deleting a storage file fails."""


class InvalidBulkInputError(JsonStashError):
    """Raised when a bulk-set payload is not a mapping of entries."""
