"""Secret storage backends for the credential store.

Every backend stores opaque byte blobs under string keys. The OS secret
managers are reached through the ``keyring`` package; the kernel keyring and
``pass`` are driven through their command-line tools; headless machines fall
back to an AES-GCM encrypted file protected by a password.
"""

from __future__ import annotations

import base64
import importlib
import json
import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import BackendUnavailableError, KeyNotFoundError, StorageError

logger = logging.getLogger(__name__)

PasswordFunc = Callable[[str], str]

# python-keyring backend classes, by the names accepted in DEPUTY_KEYRING_BACKEND.
KEYRING_BACKEND_CLASSES = {
    "keychain": ("keyring.backends.macOS", "Keyring"),
    "secret-service": ("keyring.backends.SecretService", "Keyring"),
    "kwallet": ("keyring.backends.kwallet", "DBusKeyring"),
    "wincred": ("keyring.backends.Windows", "WinVaultKeyring"),
}


class SecretBackend(ABC):
    """A place to keep secret blobs: get, set and remove by key."""

    name: str = "unknown"

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the blob stored under ``key``.

        Raises:
            KeyNotFoundError: If nothing is stored under ``key``.
            StorageError: If the backend cannot be read.
        """

    @abstractmethod
    def set(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``.

        Raises:
            KeyNotFoundError: If nothing is stored under ``key``.
        """


# ---------------------------------------------------------------------------
# python-keyring backends (macOS Keychain, Secret Service, KWallet, WinCred)
# ---------------------------------------------------------------------------


class KeyringAdapter(SecretBackend):
    """Adapts a ``keyring`` backend, which stores strings, to blob storage."""

    def __init__(self, ring: Any, service: str, name: str) -> None:
        self._ring = ring
        self._service = service
        self.name = name

    def get(self, key: str) -> bytes:
        from keyring.errors import KeyringError

        try:
            value = self._ring.get_password(self._service, key)
        except KeyringError as e:
            raise StorageError(f"{self.name} keyring read failed: {e}") from e
        if value is None:
            raise KeyNotFoundError(key)
        return value.encode("utf-8")

    def set(self, key: str, data: bytes) -> None:
        from keyring.errors import KeyringError

        try:
            self._ring.set_password(self._service, key, data.decode("utf-8"))
        except KeyringError as e:
            raise StorageError(f"{self.name} keyring write failed: {e}") from e

    def remove(self, key: str) -> None:
        from keyring.errors import KeyringError, PasswordDeleteError

        try:
            self._ring.delete_password(self._service, key)
        except PasswordDeleteError as e:
            raise KeyNotFoundError(key) from e
        except KeyringError as e:
            raise StorageError(f"{self.name} keyring delete failed: {e}") from e


def open_keyring_backend(name: str, service: str) -> KeyringAdapter:
    """Open one specific python-keyring backend by its deputy name.

    Raises:
        BackendUnavailableError: If the backend is unknown or not usable here.
    """
    try:
        module_name, class_name = KEYRING_BACKEND_CLASSES[name]
    except KeyError:
        raise BackendUnavailableError(f"unknown keyring backend {name!r}") from None

    try:
        backend_cls = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise BackendUnavailableError(f"{name} keyring is not supported: {e}") from e

    if not backend_cls.viable:
        raise BackendUnavailableError(f"{name} keyring is not available on this system")

    return KeyringAdapter(backend_cls(), service, name)


# ---------------------------------------------------------------------------
# Command-line backends
# ---------------------------------------------------------------------------


def _run(args: list[str], data: bytes | None = None) -> subprocess.CompletedProcess[bytes]:
    try:
        return subprocess.run(args, input=data, capture_output=True, check=False)
    except OSError as e:
        raise StorageError(f"failed to run {args[0]}: {e}") from e


def _stderr(proc: subprocess.CompletedProcess[bytes]) -> str:
    return proc.stderr.decode("utf-8", errors="replace").strip()


class KeyctlBackend(SecretBackend):
    """Linux kernel keyring, driven through the ``keyctl`` utility."""

    name = "keyctl"

    def __init__(self, service: str, keyring: str = "@u") -> None:
        if shutil.which("keyctl") is None:
            raise BackendUnavailableError("keyctl is not installed")
        self._service = service
        self._keyring = keyring

    def _description(self, key: str) -> str:
        return f"{self._service}:{key}"

    def _search(self, key: str) -> str:
        proc = _run(["keyctl", "search", self._keyring, "user", self._description(key)])
        if proc.returncode != 0:
            raise KeyNotFoundError(key)
        return proc.stdout.decode().strip()

    def get(self, key: str) -> bytes:
        key_id = self._search(key)
        proc = _run(["keyctl", "pipe", key_id])
        if proc.returncode != 0:
            raise StorageError(f"keyctl pipe failed: {_stderr(proc)}")
        return proc.stdout

    def set(self, key: str, data: bytes) -> None:
        proc = _run(["keyctl", "padd", "user", self._description(key), self._keyring], data)
        if proc.returncode != 0:
            raise StorageError(f"keyctl padd failed: {_stderr(proc)}")

    def remove(self, key: str) -> None:
        key_id = self._search(key)
        proc = _run(["keyctl", "unlink", key_id, self._keyring])
        if proc.returncode != 0:
            raise StorageError(f"keyctl unlink failed: {_stderr(proc)}")


class PassBackend(SecretBackend):
    """The standard unix password manager (``pass``)."""

    name = "pass"

    _NOT_FOUND = "is not in the password store"

    def __init__(self, prefix: str) -> None:
        if shutil.which("pass") is None:
            raise BackendUnavailableError("pass is not installed")
        self._prefix = prefix

    def _path(self, key: str) -> str:
        return f"{self._prefix}/{key}"

    def get(self, key: str) -> bytes:
        proc = _run(["pass", "show", self._path(key)])
        if proc.returncode != 0:
            err = _stderr(proc)
            if self._NOT_FOUND in err:
                raise KeyNotFoundError(key)
            raise StorageError(f"pass show failed: {err}")
        return proc.stdout.rstrip(b"\n")

    def set(self, key: str, data: bytes) -> None:
        proc = _run(["pass", "insert", "--multiline", "--force", self._path(key)], data)
        if proc.returncode != 0:
            raise StorageError(f"pass insert failed: {_stderr(proc)}")

    def remove(self, key: str) -> None:
        proc = _run(["pass", "rm", "--force", self._path(key)])
        if proc.returncode != 0:
            err = _stderr(proc)
            if self._NOT_FOUND in err:
                raise KeyNotFoundError(key)
            raise StorageError(f"pass rm failed: {err}")


# ---------------------------------------------------------------------------
# Encrypted file backend
# ---------------------------------------------------------------------------

ENCRYPTION_NAME = "AESGCM"
KDF_NAME = "PBKDF2-HMAC-SHA256"
KDF_ITERATIONS = 200_000
PASSWORD_PROMPT = "Enter passphrase to unlock deputy-cli credentials"


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return kdf.derive(password.encode("utf-8"))


def encrypt_blob(data: bytes, password: str, associated: bytes, iterations: int = KDF_ITERATIONS) -> str:
    """Encrypt ``data`` into a JSON envelope carrying salt, nonce and ciphertext."""
    salt = os.urandom(16)
    nonce = os.urandom(12)
    ciphertext = AESGCM(derive_key(password, salt, iterations)).encrypt(nonce, data, associated)
    return json.dumps(
        {
            "enc": ENCRYPTION_NAME,
            "kdf": KDF_NAME,
            "iter": iterations,
            "salt": base64.b64encode(salt).decode(),
            "nonce": base64.b64encode(nonce).decode(),
            "ct": base64.b64encode(ciphertext).decode(),
        }
    )


def decrypt_blob(envelope: str, password: str, associated: bytes) -> bytes:
    """Reverse :func:`encrypt_blob`.

    Raises:
        StorageError: On a wrong password, tampering or an unknown format.
    """
    try:
        obj = json.loads(envelope)
        if not isinstance(obj, dict) or obj.get("enc") != ENCRYPTION_NAME:
            raise StorageError("unsupported credentials file format")
        salt = base64.b64decode(obj["salt"])
        nonce = base64.b64decode(obj["nonce"])
        ciphertext = base64.b64decode(obj["ct"])
        iterations = int(obj.get("iter", KDF_ITERATIONS))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise StorageError(f"unsupported credentials file format: {e}") from e

    try:
        return AESGCM(derive_key(password, salt, iterations)).decrypt(nonce, ciphertext, associated)
    except InvalidTag:
        raise StorageError("incorrect keyring password or corrupt credentials file") from None


def fixed_password(password: str) -> PasswordFunc:
    """Password function that always answers with ``password``."""

    def _prompt(_message: str) -> str:
        return password

    return _prompt


def terminal_prompt(message: str) -> str:
    """Ask for the file keyring password on the terminal without echoing it."""
    from rich.console import Console
    from rich.prompt import Prompt

    return Prompt.ask(message, password=True, console=Console(stderr=True))


class EncryptedFileBackend(SecretBackend):
    """One password-encrypted file per key inside ``directory``.

    The password is requested on first use and cached for the lifetime of
    the backend.
    """

    name = "file"

    def __init__(self, directory: Path, password_func: PasswordFunc) -> None:
        self._directory = Path(directory)
        self._password_func = password_func
        self._password: str | None = None

    @property
    def directory(self) -> Path:
        return self._directory

    def _unlock(self) -> str:
        if self._password is None:
            password = self._password_func(PASSWORD_PROMPT)
            if not password:
                raise StorageError("file keyring password must not be empty")
            self._password = password
        return self._password

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"invalid key name {key!r}")
        return self._directory / key

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            envelope = path.read_text()
        except FileNotFoundError:
            raise KeyNotFoundError(key) from None
        except OSError as e:
            raise StorageError(f"failed to read {path}: {e}") from e
        return decrypt_blob(envelope, self._unlock(), key.encode())

    def set(self, key: str, data: bytes) -> None:
        """Write atomically: temp file in the same dir, then ``os.replace``.

        - Directory: 0700
        - File: 0600
        """
        path = self._path(key)
        content = encrypt_blob(data, self._unlock(), key.encode())

        self._directory.mkdir(parents=True, exist_ok=True)
        os.chmod(self._directory, 0o700)

        fd, tmp_path = tempfile.mkstemp(dir=self._directory, prefix=".cred_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug("wrote encrypted credentials to %s", path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise KeyNotFoundError(key) from None
        except OSError as e:
            raise StorageError(f"failed to remove {path}: {e}") from e
