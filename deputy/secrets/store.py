"""Credential store and keyring backend selection.

The store keeps exactly one credential record under a fixed profile key. The
backend behind it is chosen once, at construction, from the environment:

- an explicit ``DEPUTY_KEYRING_BACKEND`` is opened directly;
- headless Linux (no D-Bus session) goes straight to the encrypted file,
  since probing Secret Service without a session bus hangs or fails slowly;
- otherwise the native keyring is tried, bounded by a timeout on Linux, with
  the encrypted file as the only fallback.
"""

from __future__ import annotations

import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..config import KEYCHAIN_SERVICE, credentials_dir
from ..exceptions import (
    BackendUnavailableError,
    ConfigurationError,
    CredentialsNotFoundError,
    KeyNotFoundError,
    StorageError,
)
from .backends import (
    KEYRING_BACKEND_CLASSES,
    EncryptedFileBackend,
    KeyctlBackend,
    KeyringAdapter,
    PassBackend,
    PasswordFunc,
    SecretBackend,
    fixed_password,
    open_keyring_backend,
    terminal_prompt,
)
from .credentials import Credentials

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_KEY = "default"

KEYRING_BACKEND_ENV = "DEPUTY_KEYRING_BACKEND"
KEYRING_PASSWORD_ENV = "DEPUTY_KEYRING_PASSWORD"
DBUS_SESSION_ADDRESS_ENV = "DBUS_SESSION_BUS_ADDRESS"

BACKEND_AUTO = "auto"
BACKEND_FILE = "file"
VALID_BACKENDS = (
    BACKEND_AUTO,
    BACKEND_FILE,
    "keychain",
    "secret-service",
    "kwallet",
    "keyctl",
    "pass",
    "wincred",
)
_BACKEND_ALIASES = {"secretservice": "secret-service"}

# Bounded wait for the native keyring on Linux auto mode; <= 0 disables it.
KEYRING_OPEN_TIMEOUT = 5.0


class Store(Protocol):
    """Anything that can get, set and delete the active credentials."""

    def get(self) -> Credentials: ...

    def set(self, creds: Credentials) -> None: ...

    def delete(self) -> None: ...


class KeychainStore:
    """Credential store over a :class:`SecretBackend`."""

    def __init__(self, backend: SecretBackend) -> None:
        self.backend = backend

    @classmethod
    def open(cls, options: KeyringOptions | None = None) -> KeychainStore:
        """Select and open a backend from ``options`` (default: the environment)."""
        if options is None:
            options = keyring_options_from_env()
        return cls(open_backend(options))

    def get(self) -> Credentials:
        try:
            data = self.backend.get(DEFAULT_PROFILE_KEY)
        except KeyNotFoundError:
            raise CredentialsNotFoundError() from None
        return Credentials.unmarshal(data)

    def set(self, creds: Credentials) -> None:
        self.backend.set(DEFAULT_PROFILE_KEY, creds.marshal())

    def delete(self) -> None:
        try:
            self.backend.remove(DEFAULT_PROFILE_KEY)
        except KeyNotFoundError:
            raise CredentialsNotFoundError() from None


@dataclass(frozen=True)
class KeyringOptions:
    """Environment inputs to backend selection."""

    platform: str
    backend: str
    dbus_address: str
    credentials_dir: Path
    password: str
    stdin_is_tty: bool


def keyring_options_from_env() -> KeyringOptions:
    """Read backend selection inputs from the process environment."""
    backend = parse_keyring_backend(os.environ.get(KEYRING_BACKEND_ENV, ""))

    stdin_is_tty = False
    if sys.stdin is not None:
        try:
            stdin_is_tty = sys.stdin.isatty()
        except (ValueError, OSError):
            stdin_is_tty = False

    return KeyringOptions(
        platform=sys.platform,
        backend=backend,
        dbus_address=os.environ.get(DBUS_SESSION_ADDRESS_ENV, "").strip(),
        credentials_dir=credentials_dir(),
        password=os.environ.get(KEYRING_PASSWORD_ENV, ""),
        stdin_is_tty=stdin_is_tty,
    )


def parse_keyring_backend(raw: str) -> str:
    """Normalise a backend name; empty means ``auto``.

    Raises:
        ConfigurationError: If the name is not a known backend.
    """
    backend = raw.strip().lower()
    if not backend:
        return BACKEND_AUTO
    backend = _BACKEND_ALIASES.get(backend, backend)
    if backend not in VALID_BACKENDS:
        raise ConfigurationError(
            f"invalid {KEYRING_BACKEND_ENV} {raw!r} (expected one of: {', '.join(VALID_BACKENDS)})"
        )
    return backend


def is_linux(platform: str) -> bool:
    return platform.startswith("linux")


def should_force_file_backend(platform: str, backend: str, dbus_address: str) -> bool:
    return is_linux(platform) and backend == BACKEND_AUTO and not dbus_address.strip()


def should_try_linux_file_fallback(platform: str, backend: str) -> bool:
    return is_linux(platform) and backend == BACKEND_AUTO


def open_backend(options: KeyringOptions) -> SecretBackend:
    """Pick and open the secret backend described by ``options``.

    Raises:
        ConfigurationError: If the file backend needs a password it cannot get.
        StorageError: If no usable backend could be opened.
    """
    if should_force_file_backend(options.platform, options.backend, options.dbus_address):
        logger.debug("no desktop session bus; using encrypted file keyring")
        return open_file_backend(options)

    if options.backend != BACKEND_AUTO:
        if options.backend == BACKEND_FILE:
            return open_file_backend(options)
        return _open_named(options.backend)

    try:
        return _open_with_optional_timeout(options)
    except StorageError as err:
        if not should_try_linux_file_fallback(options.platform, options.backend):
            raise
        logger.debug("system keyring unavailable (%s); falling back to encrypted file", err)
        try:
            return open_file_backend(options)
        except (StorageError, ConfigurationError) as file_err:
            raise StorageError(
                f"failed to open system keyring: {err}; file backend fallback failed: {file_err}"
            ) from file_err


def _open_named(name: str) -> SecretBackend:
    if name in KEYRING_BACKEND_CLASSES:
        return open_keyring_backend(name, KEYCHAIN_SERVICE)
    if name == "keyctl":
        return KeyctlBackend(KEYCHAIN_SERVICE)
    if name == "pass":
        return PassBackend(KEYCHAIN_SERVICE)
    raise BackendUnavailableError(f"unknown keyring backend {name!r}")


def _open_native(service: str) -> SecretBackend:
    """Resolve python-keyring's preferred backend and probe it once."""
    import keyring
    from keyring.backends import chainer, fail

    try:
        ring = keyring.get_keyring()
        if isinstance(ring, fail.Keyring):
            raise BackendUnavailableError("no system keyring available")
        if isinstance(ring, chainer.ChainerBackend) and not ring.backends:
            raise BackendUnavailableError("no system keyring available")
        # A hung Secret Service only shows itself on first use.
        ring.get_password(service, DEFAULT_PROFILE_KEY)
    except BackendUnavailableError:
        raise
    except Exception as e:
        raise BackendUnavailableError(f"failed to open system keyring: {e}") from e

    return KeyringAdapter(ring, service, "native")


def _open_with_optional_timeout(options: KeyringOptions) -> SecretBackend:
    if is_linux(options.platform) and options.backend == BACKEND_AUTO and KEYRING_OPEN_TIMEOUT > 0:
        return _open_native_with_timeout(KEYCHAIN_SERVICE, KEYRING_OPEN_TIMEOUT)
    return _open_native(KEYCHAIN_SERVICE)


def _open_native_with_timeout(service: str, timeout: float) -> SecretBackend:
    done: queue.Queue[tuple[SecretBackend | None, BaseException | None]] = queue.Queue(maxsize=1)

    def _worker() -> None:
        try:
            done.put((_open_native(service), None))
        except Exception as e:
            done.put((None, e))

    threading.Thread(target=_worker, name="keyring-open", daemon=True).start()

    try:
        ring, err = done.get(timeout=timeout)
    except queue.Empty:
        raise BackendUnavailableError(f"timed out opening keyring after {timeout:g}s") from None

    if err is not None:
        raise err
    assert ring is not None
    return ring


def open_file_backend(options: KeyringOptions) -> EncryptedFileBackend:
    return EncryptedFileBackend(
        options.credentials_dir,
        file_password_func(options.password, options.stdin_is_tty),
    )


def file_password_func(password: str, stdin_is_tty: bool) -> PasswordFunc:
    """Choose how the file backend gets its password.

    Raises:
        ConfigurationError: If no password is configured and stdin is not a terminal.
    """
    if password.strip():
        return fixed_password(password)
    if stdin_is_tty:
        return terminal_prompt
    raise ConfigurationError(
        f"{KEYRING_PASSWORD_ENV} is required when using file keyring in non-interactive mode"
    )
