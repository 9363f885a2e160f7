"""
Shared fixtures for Toll Ledger tests.
"""
import threading
from datetime import datetime, timedelta

import pytest

from toll_ledger.cache import TransactionCache
from toll_ledger.vault.backends import MemoryBackend
from toll_ledger.vault.config import VaultConfig
from toll_ledger.vault.fingerprint import (
    Fingerprint,
    FingerprintKeyDerivation,
    KeyDerivation,
)
from toll_ledger.vault.secure_storage import SecureStorage

# Lowest iteration count the config accepts; keeps key derivation fast.
FAST_ITERATIONS = 1000


class FakeClock:
    """Settable replacement for datetime.now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class CountingDerivation(KeyDerivation):
    """Wraps another derivation and counts how often it runs."""

    def __init__(self, inner: KeyDerivation, fail_times: int = 0):
        self._inner = inner
        self._fail_times = fail_times
        self._lock = threading.Lock()
        self.calls = 0

    def derive(self):
        with self._lock:
            self.calls += 1
            if self.calls <= self._fail_times:
                raise RuntimeError("derivation unavailable")
        return self._inner.derive()


@pytest.fixture
def vault_config():
    return VaultConfig(iterations=FAST_ITERATIONS)


@pytest.fixture
def fingerprint():
    return Fingerprint(
        user_agent="CPython/3.12.1 (Linux 6.1; x86_64)",
        language="en-US",
        color_depth=24,
        screen_width=1920,
        screen_height=1080,
        timezone_offset=300,
        hardware_concurrency=8,
    )


@pytest.fixture
def derivation(fingerprint, vault_config):
    return FingerprintKeyDerivation(fingerprint, vault_config)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def storage(backend, derivation):
    return SecureStorage(backend, derivation)


@pytest.fixture
def key(derivation):
    return derivation.derive()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 18, 12, 0, 0))


@pytest.fixture
def cache(storage, clock):
    return TransactionCache(storage, clock=clock)


def make_transaction(trip_id, when, amount=-1.25, **extra):
    """Raw record shaped like the toll API response."""
    record = {
        "CustomerTripId": trip_id,
        "Entry_TripDateTime": when.isoformat() if isinstance(when, datetime) else when,
        "TollAmount": amount,
        "LocationName": "Sam Rayburn Tollway",
        "EntryPlazaName": "Main Lane Gantry 2",
        "EntryLaneName": "03",
        "VehicleNumber": "ABC1234",
        "TagId": "0001234567",
    }
    record.update(extra)
    return record
