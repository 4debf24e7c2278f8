"""Deputy CLI - command-line client for the Deputy workforce-management API."""

from importlib.metadata import PackageNotFoundError, version

from .client import DeputyClient
from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    CredentialsNotFoundError,
    DeputyError,
    SetupCancelledError,
    StorageError,
)
from .secrets import Credentials, KeychainStore

__all__ = [
    "DeputyClient",
    "Credentials",
    "KeychainStore",
    "DeputyError",
    "AuthenticationError",
    "APIError",
    "ConfigurationError",
    "CredentialsNotFoundError",
    "SetupCancelledError",
    "StorageError",
]

try:
    __version__ = version("deputy-cli")
except PackageNotFoundError:
    __version__ = "0.1.0"
