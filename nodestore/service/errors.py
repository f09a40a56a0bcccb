from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code the calling layer can return to clients:
    - validation_error (400)
    - not_found (404)
    - conflict (409)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class InvalidField(ValidationError):
    """The request body carries a key nodes do not have."""


class InvalidFieldValue(ValidationError):
    """A known field is missing, mistyped or fails its format rule."""


class NameMismatch(ValidationError):
    """The body names a different node than the one being updated."""


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class DependencyNotFound(NotFoundError):
    """A resource the request refers to (e.g. an environment) does not exist."""


class ConflictError(ServiceError):
    """Resource conflict, e.g., duplicate creation (409)."""
    status_code = 409
    error_code = "conflict"


class AlreadyExists(ConflictError):
    pass


__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidField",
    "InvalidFieldValue",
    "NameMismatch",
    "NotFoundError",
    "DependencyNotFound",
    "ConflictError",
    "AlreadyExists",
]
