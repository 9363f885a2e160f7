"""
SecureStorage: Key/value storage encrypted at rest.

Provides the public API of the encrypted storage layer:
- ``set_item(key, value)``: encrypt and persist a value
- ``get_item(key)``: decrypt and return a value (migrating legacy plaintext)
- ``remove_item(key)`` / ``clear()``: pass-through removal
- ``has_item(key)``: existence check without decrypting

Lifecycle of one stored value: absent → plaintext (legacy) → encrypted.
Plaintext only ever comes from writers that predate encryption; the first
read re-encrypts it in place. There is no way back to plaintext.

Security Note:
    Never log plaintext or ciphertext values. Only log key names and
    operations. The derived key lives in memory for the lifetime of the
    instance and is never persisted.
"""
import asyncio
import logging
from typing import Any, Optional

import orjson
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .backends import FileBackend, MemoryBackend, StorageBackend
from .config import VaultConfig, get_storage_path
from .crypto import encrypt, is_crypto_supported, is_encrypted, open_envelope
from .exceptions import CryptoUnsupportedError, DecryptionError
from .fingerprint import FingerprintKeyDerivation, KeyDerivation

logger = logging.getLogger("toll_ledger.vault")


class SecureStorage:
    """Encrypting wrapper around one storage backend.

    Failures never escape ``set_item``/``get_item``: writes report False,
    reads report None, and the cause is logged. The only error raised to
    callers is ``CryptoUnsupportedError`` at construction time.
    """

    def __init__(
        self,
        backend: StorageBackend,
        derivation: Optional[KeyDerivation] = None,
    ):
        if not self.supported():
            raise CryptoUnsupportedError(
                "Required cryptographic primitives (PBKDF2-SHA256, AES-GCM) "
                "are not available; refusing to store data unencrypted"
            )
        self._backend = backend
        self._derivation = derivation or FingerprintKeyDerivation()
        self._key: Optional[AESGCM] = None
        self._pending: Optional[asyncio.Future] = None

    @staticmethod
    def supported() -> bool:
        """Capability probe for the required crypto primitives."""
        return is_crypto_supported()

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Key handling
    # ------------------------------------------------------------------

    async def init(self) -> AESGCM:
        """Return the storage key, deriving it on first use.

        Concurrent callers share one in-flight derivation. A failed
        derivation is forgotten so that the next call retries.
        """
        if self._key is not None:
            return self._key
        if self._pending is None:
            self._pending = asyncio.ensure_future(
                asyncio.to_thread(self._derivation.derive)
            )
        pending = self._pending
        try:
            key = await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise
        self._key = key
        self._pending = None
        return key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_item(self, key: str, value: Any) -> bool:
        """Encrypt ``value`` and store it under ``key``.

        Args:
            key: Storage key.
            value: JSON-serializable value.

        Returns:
            True on success, False if encryption or the write failed.
        """
        try:
            cipher = await self.init()
            envelope = encrypt(value, cipher)
            await self._backend.set(key, envelope)
        except Exception as err:
            logger.error("SecureStorage set_item error key=%s: %s", key, err)
            return False
        return True

    async def get_item(self, key: str) -> Any:
        """Read, decrypt and return the value stored under ``key``.

        Undecryptable entries are deleted and reported as None. Legacy
        plaintext entries are parsed (JSON, else raw string), re-encrypted
        in place and returned.

        Returns:
            The stored value, or None if absent or unreadable.
        """
        try:
            stored = await self._backend.get(key)
            if not stored:
                return None

            if is_encrypted(stored):
                cipher = await self.init()
                try:
                    return open_envelope(stored, cipher)
                except DecryptionError:
                    logger.warning(
                        "Failed to decrypt %s, clearing corrupted data", key,
                    )
                    await self._backend.delete(key)
                    return None

            logger.info("Migrating %s from plain text to encrypted storage", key)
            try:
                value = orjson.loads(stored)
            except orjson.JSONDecodeError:
                value = stored
            if not await self.set_item(key, value):
                logger.warning("Migration of %s not persisted", key)
            return value
        except Exception as err:
            logger.error("SecureStorage get_item error key=%s: %s", key, err)
            return None

    async def remove_item(self, key: str) -> None:
        await self._backend.delete(key)

    async def clear(self) -> None:
        await self._backend.clear()

    async def has_item(self, key: str) -> bool:
        """Check whether ``key`` holds any value, without decrypting it."""
        return await self._backend.exists(key)


def secure_session_storage(derivation: Optional[KeyDerivation] = None) -> SecureStorage:
    """SecureStorage over an in-memory backend tied to this process."""
    return SecureStorage(MemoryBackend(), derivation)


def secure_local_storage(
    path: Optional[str] = None,
    derivation: Optional[KeyDerivation] = None,
    config: Optional[VaultConfig] = None,
) -> SecureStorage:
    """SecureStorage over a file that persists across restarts.

    Args:
        path: Storage file; defaults to ``TOLL_LEDGER_STORAGE_PATH``.
        derivation: Key strategy; defaults to the host fingerprint.
        config: Key-derivation settings used when ``derivation`` is None.
    """
    if derivation is None:
        derivation = FingerprintKeyDerivation(config=config or VaultConfig.from_env())
    return SecureStorage(FileBackend(path or get_storage_path()), derivation)
