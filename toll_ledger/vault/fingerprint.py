"""
Host fingerprint and pluggable key-derivation strategies.

The default strategy derives the storage key from observable host
attributes. Those attributes are not secret: the resulting encryption
gives confidentiality against casual local inspection, not access
control. A stronger strategy (``PassphraseKeyDerivation``) can be swapped
in without touching the codec or the cache.

A fingerprint may change across interpreter/OS upgrades or locale and
timezone changes. Data written under the old fingerprint then fails to
decrypt and is discarded as corrupted; this is an accepted limitation.
"""
import os
import locale
import logging
import platform
from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import BaseModel, Field
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import VaultConfig
from .crypto import derive_key

logger = logging.getLogger("toll_ledger.vault")


def _user_agent() -> str:
    return (
        f"{platform.python_implementation()}/{platform.python_version()} "
        f"({platform.system()} {platform.release()}; {platform.machine()})"
    )


def _language() -> str:
    lang, _ = locale.getlocale()
    return (lang or "en_US").replace("_", "-")


def _timezone_offset() -> int:
    """Minutes *west* of UTC, same sign convention as browsers use."""
    offset = datetime.now().astimezone().utcoffset()
    if offset is None:
        return 0
    return -int(offset.total_seconds() // 60)


class Fingerprint(BaseModel):
    """Ordered environmental attributes used as key-derivation input."""

    user_agent: str = ""
    language: str = ""
    color_depth: int = 0
    screen_width: int = 0
    screen_height: int = 0
    timezone_offset: int = 0
    hardware_concurrency: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    def seed(self) -> str:
        """Join the attributes, in declaration order, with ``|``."""
        return "|".join(
            str(part) for part in (
                self.user_agent,
                self.language,
                self.color_depth,
                self.screen_width,
                self.screen_height,
                self.timezone_offset,
                self.hardware_concurrency,
            )
        )

    @classmethod
    def from_environment(cls, **overrides) -> "Fingerprint":
        """Build a fingerprint from the running host.

        Display attributes have no host equivalent and stay 0 unless a
        caller (e.g. a client reporting its screen) passes them in.
        """
        values = {
            "user_agent": _user_agent(),
            "language": _language(),
            "timezone_offset": _timezone_offset(),
            "hardware_concurrency": os.cpu_count() or 0,
        }
        values.update(overrides)
        return cls(**values)


class KeyDerivation(ABC):
    """Strategy that produces the cipher used by one SecureStorage."""

    @abstractmethod
    def derive(self) -> AESGCM:
        """Derive the key. Blocking; callers run it off the event loop."""


class FingerprintKeyDerivation(KeyDerivation):
    """PBKDF2 over the host fingerprint with the configured fixed salt."""

    def __init__(
        self,
        fingerprint: Fingerprint | None = None,
        config: VaultConfig | None = None,
    ):
        self._fingerprint = fingerprint or Fingerprint.from_environment()
        self._config = config or VaultConfig()

    @property
    def fingerprint(self) -> Fingerprint:
        return self._fingerprint

    def derive(self) -> AESGCM:
        logger.debug(
            "Deriving storage key from fingerprint (iterations=%d)",
            self._config.iterations,
        )
        return derive_key(
            self._fingerprint.seed(),
            self._config.salt,
            self._config.iterations,
        )


class PassphraseKeyDerivation(KeyDerivation):
    """PBKDF2 over a user-supplied passphrase."""

    def __init__(self, passphrase: str, config: VaultConfig | None = None):
        if not passphrase:
            raise ValueError("Passphrase cannot be empty")
        self._passphrase = passphrase
        self._config = config or VaultConfig()

    def derive(self) -> AESGCM:
        return derive_key(
            self._passphrase, self._config.salt, self._config.iterations,
        )
