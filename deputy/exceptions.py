"""Custom exceptions raised by the Deputy CLI."""

from __future__ import annotations

from typing import Any, Optional


class DeputyError(Exception):
    """Base exception for all deputy-cli specific failures."""


class AuthenticationError(DeputyError):
    """Raised when an API token is missing or rejected by the server."""


class APIError(DeputyError):
    """Raised when the Deputy API returns a non-successful response."""

    def __init__(self, message: str, status_code: int, response: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response

    def __str__(self) -> str:  # pragma: no cover - repr helper
        return f"{self.status_code}: {self.message}"


class ValidationError(DeputyError):
    """Raised when a user-supplied install, region or token is malformed."""


class RateLimitError(DeputyError):
    """Raised when a client has used up its attempts for the current window."""


class ConfigurationError(DeputyError):
    """Raised when environment configuration is invalid or incomplete."""


class StorageError(DeputyError):
    """Raised when a credential backend fails to read or write."""


class BackendUnavailableError(StorageError):
    """Raised when a requested keyring backend cannot be opened."""


class CredentialsNotFoundError(StorageError):
    """Raised when no credentials are stored."""

    def __init__(self, message: str = "credentials not found"):
        super().__init__(message)


class KeyNotFoundError(DeputyError):
    """Raised by a secret backend when the requested key does not exist."""


class SetupCancelledError(DeputyError):
    """Raised when the browser setup ends without delivering a result."""

    def __init__(self, message: str = "setup cancelled"):
        super().__init__(message)
