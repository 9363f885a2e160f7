"""Vault: Encrypted key/value storage for cached account data.

Security Note (Threat Model):
    The default storage key is derived from observable host attributes
    (the fingerprint), so anyone able to run code as the same user on the
    same host can re-derive it. Encryption here protects against casual
    inspection of the storage medium, not against a targeted attacker.
    Use ``PassphraseKeyDerivation`` where a real secret is available.
"""

from .backends import StorageBackend, MemoryBackend, FileBackend, RedisBackend
from .config import VaultConfig, CacheConfig
from .crypto import encrypt, decrypt, is_crypto_supported
from .exceptions import (
    VaultError,
    CryptoUnsupportedError,
    DecryptionError,
    StorageError,
    StorageFullError,
)
from .fingerprint import (
    Fingerprint,
    KeyDerivation,
    FingerprintKeyDerivation,
    PassphraseKeyDerivation,
)
from .migration import migrate_to_secure_storage
from .secure_storage import SecureStorage, secure_session_storage, secure_local_storage

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "RedisBackend",
    "VaultConfig",
    "CacheConfig",
    "encrypt",
    "decrypt",
    "is_crypto_supported",
    "VaultError",
    "CryptoUnsupportedError",
    "DecryptionError",
    "StorageError",
    "StorageFullError",
    "Fingerprint",
    "KeyDerivation",
    "FingerprintKeyDerivation",
    "PassphraseKeyDerivation",
    "migrate_to_secure_storage",
    "SecureStorage",
    "secure_session_storage",
    "secure_local_storage",
]
