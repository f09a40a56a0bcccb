from __future__ import annotations

from typing import Any, Dict, Optional


class StorageError(Exception):
    """Raised when the storage driver or a transaction fails."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class CodecError(StorageError):
    """Raised when a stored blob cannot be encoded or decoded."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}", {"field": field})
        self.field = field


class ConstraintViolation(StorageError):
    """Raised when a storage-layer uniqueness or FK constraint is violated."""


class DuplicateRecord(ConstraintViolation):
    """A record with the same name is already stored."""


class MissingDependency(ConstraintViolation):
    """A referenced record (e.g. the node's environment) does not exist."""


__all__ = [
    "StorageError",
    "CodecError",
    "ConstraintViolation",
    "DuplicateRecord",
    "MissingDependency",
]
