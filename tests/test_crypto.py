"""
Tests for the envelope codec and key derivation.

Tests cover:
- Round-trip of JSON values
- Tamper detection and wrong-key handling
- Fresh nonce per encryption
- Key derivation determinism and strategy separation
"""
import base64

import pytest

from toll_ledger.vault.config import VaultConfig
from toll_ledger.vault.crypto import (
    ENCRYPTION_PREFIX,
    NONCE_SIZE,
    decrypt,
    derive_key,
    encrypt,
    is_crypto_supported,
    is_encrypted,
    open_envelope,
)
from toll_ledger.vault.exceptions import DecryptionError
from toll_ledger.vault.fingerprint import (
    Fingerprint,
    FingerprintKeyDerivation,
    PassphraseKeyDerivation,
)


def _raw(envelope: str) -> bytes:
    return base64.b64decode(envelope[len(ENCRYPTION_PREFIX):])


def _envelope(raw: bytes) -> str:
    return ENCRYPTION_PREFIX + base64.b64encode(raw).decode("ascii")


class TestRoundTrip:
    """decrypt(encrypt(v)) == v for JSON values."""

    @pytest.mark.parametrize("value", [
        "plain string",
        "",
        0,
        -2.5,
        True,
        None,
        [1, "two", 3.0, None],
        {"CustomerTripId": 991, "TollAmount": -2.0, "nested": {"a": [1, 2]}},
        {"unicode": "Peaje éñ ✓"},
    ])
    def test_round_trip(self, key, value):
        assert decrypt(encrypt(value, key), key) == value

    def test_envelope_has_marker(self, key):
        envelope = encrypt({"a": 1}, key)
        assert envelope.startswith("ENC:")
        assert is_encrypted(envelope)

    def test_marker_optional_on_decrypt(self, key):
        envelope = encrypt([1, 2, 3], key)
        assert decrypt(envelope[len(ENCRYPTION_PREFIX):], key) == [1, 2, 3]

    def test_open_envelope_returns_none_value(self, key):
        """A stored None is a value, not a failure."""
        assert open_envelope(encrypt(None, key), key) is None


class TestNonce:
    """Every encryption draws a fresh nonce."""

    def test_same_value_twice_differs(self, key):
        first = encrypt({"id": 1}, key)
        second = encrypt({"id": 1}, key)
        assert first != second
        assert _raw(first)[:NONCE_SIZE] != _raw(second)[:NONCE_SIZE]

    def test_envelope_layout(self, key):
        raw = _raw(encrypt("x", key))
        # nonce + 3 bytes of JSON ("x" quoted) + 16-byte tag
        assert len(raw) == NONCE_SIZE + 3 + 16


class TestFailures:
    """Undecryptable envelopes give None, never a wrong value."""

    def test_every_ciphertext_byte_flip_detected(self, key):
        raw = _raw(encrypt({"TollAmount": -2.5}, key))
        for pos in range(NONCE_SIZE, len(raw)):
            tampered = bytearray(raw)
            tampered[pos] ^= 0x01
            assert decrypt(_envelope(bytes(tampered)), key) is None

    def test_nonce_flip_detected(self, key):
        raw = bytearray(_raw(encrypt("abc", key)))
        raw[0] ^= 0xFF
        assert decrypt(_envelope(bytes(raw)), key) is None

    def test_wrong_key(self, key, vault_config):
        other = derive_key("another-host", vault_config.salt, vault_config.iterations)
        assert decrypt(encrypt("secret", key), other) is None

    @pytest.mark.parametrize("envelope", [
        "ENC:",
        "ENC:not base64 at all!",
        "ENC:" + base64.b64encode(b"short").decode(),
        "ENC:ééé",
    ])
    def test_garbage(self, key, envelope):
        assert decrypt(envelope, key) is None

    def test_truncated(self, key):
        raw = _raw(encrypt({"a": "b"}, key))
        assert decrypt(_envelope(raw[:-1]), key) is None

    def test_non_json_payload(self, key):
        nonce = b"\x00" * NONCE_SIZE
        ct = key.encrypt(nonce, b"\xff\xfenot json", None)
        with pytest.raises(DecryptionError):
            open_envelope(_envelope(nonce + ct), key)
        assert decrypt(_envelope(nonce + ct), key) is None


class TestKeyDerivation:
    """PBKDF2 strategies."""

    def test_supported(self):
        assert is_crypto_supported() is True

    def test_same_fingerprint_same_key(self, fingerprint, vault_config):
        first = FingerprintKeyDerivation(fingerprint, vault_config).derive()
        second = FingerprintKeyDerivation(fingerprint, vault_config).derive()
        assert decrypt(encrypt("v", first), second) == "v"

    def test_different_fingerprint_different_key(self, fingerprint, vault_config):
        moved = fingerprint.model_copy(update={"timezone_offset": 0})
        first = FingerprintKeyDerivation(fingerprint, vault_config).derive()
        second = FingerprintKeyDerivation(moved, vault_config).derive()
        assert decrypt(encrypt("v", first), second) is None

    def test_seed_order(self, fingerprint):
        assert fingerprint.seed() == (
            "CPython/3.12.1 (Linux 6.1; x86_64)|en-US|24|1920|1080|300|8"
        )

    def test_from_environment(self):
        fp = Fingerprint.from_environment(screen_width=1280)
        assert fp.user_agent
        assert fp.screen_width == 1280
        assert fp.hardware_concurrency >= 0
        assert fp == Fingerprint.from_environment(screen_width=1280)

    def test_passphrase_strategy(self, vault_config):
        key = PassphraseKeyDerivation("correct horse", vault_config).derive()
        assert decrypt(encrypt({"ok": True}, key), key) == {"ok": True}

    def test_empty_passphrase_rejected(self):
        with pytest.raises(ValueError):
            PassphraseKeyDerivation("")

    def test_default_config_iterations(self):
        assert VaultConfig().iterations == 100_000
