"""Credential record and secret storage."""

from __future__ import annotations

from typing import Callable

from ..exceptions import CredentialsNotFoundError
from .credentials import Credentials
from .store import KeychainStore, KeyringOptions, Store, keyring_options_from_env


def resolve_credentials(store_factory: Callable[[], Store] = KeychainStore.open) -> Credentials:
    """Resolve the active credentials.

    Order: DEPUTY_* environment variables > credential store. The store is
    only opened when the environment has no token.

    Raises:
        CredentialsNotFoundError: If neither source has credentials.
    """
    env_creds = Credentials.from_env()
    if env_creds is not None:
        return env_creds
    return store_factory().get()


__all__ = [
    "Credentials",
    "CredentialsNotFoundError",
    "KeychainStore",
    "KeyringOptions",
    "Store",
    "keyring_options_from_env",
    "resolve_credentials",
]
