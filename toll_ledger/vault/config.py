"""
Vault Configuration: Key derivation and cache policy settings.

Reads overrides from environment variables in the format:
    TOLL_LEDGER_SALT = <salt string>
    TOLL_LEDGER_KDF_ITERATIONS = <integer>
    TOLL_LEDGER_CACHE_KEY = <storage key of the transaction cache>
    TOLL_LEDGER_RECENT_DAYS = <integer>
    TOLL_LEDGER_RECENT_TTL = <seconds>
    TOLL_LEDGER_OLD_TTL = <seconds>
    TOLL_LEDGER_STORAGE_PATH = <path of the persistent storage file>

Security Note:
    The salt is fixed and public. Keys derived with it protect stored
    data against casual local inspection only, not against a determined
    attacker with access to the same host.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("toll_ledger.vault")

DEFAULT_SALT = "ntta-toll-tracker-salt-v1"
DEFAULT_ITERATIONS = 100_000
DEFAULT_CACHE_KEY = "ntta_transaction_cache"
DEFAULT_STORAGE_PATH = "~/.toll_ledger/storage.json"

RECENT_THRESHOLD_DAYS = 3
RECENT_CACHE_TTL = 60 * 60  # 1 hour
OLD_CACHE_TTL = 7 * 24 * 60 * 60  # 7 days


def _env_int(name: str) -> Optional[int]:
    """Read an integer environment variable, None if unset."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


def get_storage_path() -> str:
    """Return the persistent storage file path, with ``~`` expanded."""
    return os.path.expanduser(
        os.environ.get("TOLL_LEDGER_STORAGE_PATH", DEFAULT_STORAGE_PATH)
    )


class VaultConfig(BaseModel):
    """Validated key-derivation configuration."""

    salt: str = Field(default=DEFAULT_SALT, min_length=1)
    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1000)
    key_length: int = Field(default=32)
    cipher_backend: str = Field(default="aesgcm")

    @field_validator("key_length")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        """Only 256-bit keys are accepted."""
        if v != 32:
            raise ValueError(f"key_length must be 32 bytes, got {v}")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        if v != "aesgcm":
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values = {}
        salt = os.environ.get("TOLL_LEDGER_SALT")
        if salt:
            values["salt"] = salt
        iterations = _env_int("TOLL_LEDGER_KDF_ITERATIONS")
        if iterations is not None:
            values["iterations"] = iterations
        config = cls(**values)
        logger.debug("Vault config loaded: iterations=%d", config.iterations)
        return config


class CacheConfig(BaseModel):
    """Validated transaction cache policy."""

    cache_key: str = Field(default=DEFAULT_CACHE_KEY, min_length=1)
    recent_threshold_days: int = Field(default=RECENT_THRESHOLD_DAYS, ge=0)
    recent_ttl: int = Field(default=RECENT_CACHE_TTL, gt=0)
    old_ttl: int = Field(default=OLD_CACHE_TTL, gt=0)

    @model_validator(mode="after")
    def validate_ttl_order(self) -> "CacheConfig":
        """Recent records must never outlive old ones."""
        if self.recent_ttl > self.old_ttl:
            raise ValueError(
                f"recent_ttl ({self.recent_ttl}) cannot exceed "
                f"old_ttl ({self.old_ttl})"
            )
        return self

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create CacheConfig by loading values from environment."""
        values = {}
        cache_key = os.environ.get("TOLL_LEDGER_CACHE_KEY")
        if cache_key:
            values["cache_key"] = cache_key
        for field, env_name in (
            ("recent_threshold_days", "TOLL_LEDGER_RECENT_DAYS"),
            ("recent_ttl", "TOLL_LEDGER_RECENT_TTL"),
            ("old_ttl", "TOLL_LEDGER_OLD_TTL"),
        ):
            value = _env_int(env_name)
            if value is not None:
                values[field] = value
        return cls(**values)
