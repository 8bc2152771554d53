"""
ELM CDR Custom Exceptions

This module defines all custom exceptions used throughout the service.
Exceptions are organized by layer/responsibility.
"""

from typing import Any


class ElmCdrError(Exception):
    """Base exception for all ELM CDR errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# LIBRARY STORE ERRORS
# =============================================================================


class LibraryStoreError(ElmCdrError):
    """Base error for library store operations."""

    pass


class LibraryNotFoundError(LibraryStoreError):
    """Requested library (or library version) is not in the store."""

    def __init__(self, library_id: str, version: str | None = None):
        super().__init__(
            f"Library not found: {library_id} {version or '(latest)'}",
            {"library_id": library_id, "version": version},
        )
        self.library_id = library_id
        self.version = version


class LibraryRegistrationError(LibraryStoreError):
    """ELM document cannot be registered (missing identifier)."""

    def __init__(self, message: str, library_id: str | None = None):
        super().__init__(message, {"library_id": library_id})


# =============================================================================
# VALIDATION SERVICE ERRORS
# =============================================================================


class ValidationServiceError(ElmCdrError):
    """Base error for calls to the remote ELM validation service."""

    def __init__(self, message: str, endpoint: str | None = None):
        super().__init__(message, {"endpoint": endpoint})
        self.endpoint = endpoint


class ValidatorUnavailableError(ValidationServiceError):
    """Validation service could not be reached in time.

    Callers treat this as a degraded success rather than a failure.
    """

    pass


class ValidatorTimeoutError(ValidatorUnavailableError):
    """Validation call exceeded its timeout."""

    def __init__(self, endpoint: str, timeout: float):
        super().__init__(f"timeout of {timeout * 1000:.0f}ms exceeded", endpoint)
        self.timeout = timeout


class ValidatorConnectionRefusedError(ValidatorUnavailableError):
    """Validation service refused the connection."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(f"connection refused: {reason}", endpoint)


class ValidatorResponseError(ValidationServiceError):
    """Validation service answered, but not with a usable verdict."""

    def __init__(
        self,
        message: str,
        endpoint: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message, endpoint)
        self.details.update({"status_code": status_code})
        self.status_code = status_code
        self.body = body
