"""
Vault Crypto Core: Key derivation, envelope encryption/decryption, serialization.

Envelope format (one stored value):
    "ENC:" + base64([nonce 12B][encrypted_payload + GCM_tag 16B])

Keys are derived with PBKDF2-HMAC-SHA256 and used with AES-256-GCM, so the
authentication tag travels inside the envelope and no separate signature
is needed.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit and drawn fresh for every encryption call;
    reusing one under the same key breaks GCM confidentiality.
"""
import os
import base64
import binascii
import logging
from typing import Any, Optional

import orjson
from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import DecryptionError

logger = logging.getLogger("toll_ledger.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256

ENCRYPTION_PREFIX = "ENC:"


# ---------------------------------------------------------------------------
# Capability probe
# ---------------------------------------------------------------------------

def is_crypto_supported() -> bool:
    """Report whether PBKDF2-SHA256, AES-GCM and a random source are usable.

    Synchronous and side-effect free; safe to call before any storage
    object is built.
    """
    try:
        PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=b"probe",
            iterations=1,
        )
        AESGCM(bytes(KEY_LENGTH))
        os.urandom(NONCE_SIZE)
    except (UnsupportedAlgorithm, NotImplementedError, ValueError, TypeError):
        return False
    return True


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: str, iterations: int) -> AESGCM:
    """Derive an AES-256-GCM cipher from a password with PBKDF2-SHA256.

    Args:
        password: Key material (fingerprint seed or user passphrase).
        salt: Fixed salt string.
        iterations: PBKDF2 iteration count.

    Returns:
        AESGCM cipher bound to the derived key. The raw key bytes are not
        kept anywhere else.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=iterations,
    )
    return AESGCM(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a JSON-compatible Python value to bytes for encryption.

    Args:
        value: str, int, float, bool, None, or dict/list of those.

    Returns:
        orjson-encoded bytes.
    """
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes produced by serialize_value."""
    return orjson.loads(data)


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def is_encrypted(stored: str) -> bool:
    """True if a stored string carries the encryption marker."""
    return stored.startswith(ENCRYPTION_PREFIX)


def encrypt(value: Any, key: AESGCM) -> str:
    """Encrypt a value into an envelope string.

    Args:
        value: JSON-serializable value.
        key: Cipher returned by a key derivation.

    Returns:
        Envelope string ``ENC:<base64(nonce + ciphertext)>``.
    """
    nonce = os.urandom(NONCE_SIZE)
    ct = key.encrypt(nonce, serialize_value(value), None)
    return ENCRYPTION_PREFIX + base64.b64encode(nonce + ct).decode("ascii")


def open_envelope(envelope: str, key: AESGCM) -> Any:
    """Decrypt an envelope string, raising on failure.

    The marker is optional on input.

    Args:
        envelope: Envelope produced by encrypt().
        key: Cipher returned by a key derivation.

    Returns:
        Decrypted value (which may legitimately be None).

    Raises:
        DecryptionError: Bad base64, truncated data, wrong key, tampered
            ciphertext or non-JSON payload.
    """
    if is_encrypted(envelope):
        envelope = envelope[len(ENCRYPTION_PREFIX):]
    try:
        combined = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError, TypeError) as err:
        raise DecryptionError("envelope is not valid base64") from err
    if len(combined) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError(
            f"envelope too short: {len(combined)} bytes "
            f"(minimum {NONCE_SIZE + TAG_SIZE})"
        )
    nonce = combined[:NONCE_SIZE]
    ct = combined[NONCE_SIZE:]
    try:
        plaintext = key.decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise DecryptionError("authentication tag mismatch") from err
    try:
        return deserialize_value(plaintext)
    except orjson.JSONDecodeError as err:
        raise DecryptionError("payload is not JSON") from err


def decrypt(envelope: str, key: AESGCM) -> Optional[Any]:
    """Decrypt an envelope string.

    Any failure yields None; nothing is raised past this function.

    Returns:
        Decrypted value, or None if the envelope cannot be decrypted.
    """
    try:
        return open_envelope(envelope, key)
    except DecryptionError as err:
        logger.warning("Decryption failed: %s", err)
        return None
