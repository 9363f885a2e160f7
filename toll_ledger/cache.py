"""
Transaction Cache: encrypted, per-record cache of toll transactions.

Records are indexed by ``CustomerTripId``. Older postings are effectively
final and are kept for 7 days; postings from the last 3 days may still be
corrected upstream (settlement lag) and are kept for 1 hour only. The
recency class is decided once, when a record is cached.

The whole cache is one value in SecureStorage. Every operation loads a
fresh copy, mutates it and writes it back; nothing is kept in memory
between calls. Two concurrent writers can therefore lose each other's
updates, which is accepted for a single-user client.

Cache failures are never raised to callers: reads degrade to "nothing
cached" and writes to "not cached".
"""
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union

from .models import (
    CacheContainer,
    CacheMetadata,
    CacheStats,
    TollTransaction,
    as_local,
    parse_trip_datetime,
    to_epoch_ms,
)
from .vault.config import CacheConfig
from .vault.secure_storage import SecureStorage

logger = logging.getLogger("toll_ledger.cache")

DateLike = Union[date, datetime, str]


def is_recent_transaction(
    transaction: TollTransaction,
    now: datetime,
    threshold_days: int = 3,
) -> bool:
    """True if the trip happened less than ``threshold_days`` before ``now``.

    Records without a parseable trip time count as recent, so they get
    the shorter cache lifetime.
    """
    trip = transaction.trip_timestamp()
    if trip is None:
        return True
    return as_local(now) - trip < timedelta(days=threshold_days)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return as_local(value).date()
    if isinstance(value, date):
        return value
    parsed = parse_trip_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed.date()


def day_bounds(start: DateLike, end: DateLike) -> tuple[datetime, datetime]:
    """Start of the first day and last instant of the final day."""
    return (
        datetime.combine(_as_date(start), time.min),
        datetime.combine(_as_date(end), time.max),
    )


def merge_with_cache(
    fresh: Optional[Iterable[Any]],
    cached: Optional[Iterable[Any]],
) -> list[dict]:
    """Merge fetched records over cached ones, one record per identifier.

    Fresh records replace cached records with the same identifier as a
    whole. Records without an identifier are dropped from both inputs.
    Identifiers compare as strings, so ``1`` and ``"1"`` are the same trip.
    """
    merged: dict[str, dict] = {}
    for source in (cached, fresh):
        for record in source or ():
            tx = TollTransaction.from_record(record)
            if tx is None or tx.cache_id is None:
                continue
            merged[tx.cache_id] = record
    return list(merged.values())


class TransactionCache:
    """Per-record transaction cache stored in one SecureStorage key."""

    def __init__(
        self,
        storage: SecureStorage,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._storage = storage
        self._config = config or CacheConfig()
        self._clock = clock

    @property
    def config(self) -> CacheConfig:
        return self._config

    def _now(self) -> datetime:
        """Current clock reading as naive local time."""
        return as_local(self._clock())

    def is_recent(self, transaction: TollTransaction, now: Optional[datetime] = None) -> bool:
        return is_recent_transaction(
            transaction,
            now or self._now(),
            self._config.recent_threshold_days,
        )

    # ------------------------------------------------------------------
    # Container persistence
    # ------------------------------------------------------------------

    async def _load(self) -> CacheContainer:
        stored = await self._storage.get_item(self._config.cache_key)
        return CacheContainer.from_stored(stored)

    async def _save(self, container: CacheContainer) -> bool:
        saved = await self._storage.set_item(
            self._config.cache_key, container.to_stored(),
        )
        if not saved:
            logger.warning("Transaction cache not saved; continuing uncached")
        return saved

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def cache_transactions(self, transactions: Any) -> int:
        """Upsert a batch of records and persist the cache once.

        Args:
            transactions: List of raw transaction records.

        Returns:
            Number of records cached (records without an identifier are
            skipped). 0 if nothing was cached or the write failed.
        """
        if not isinstance(transactions, (list, tuple)):
            logger.warning("cache_transactions: transactions is not a list")
            return 0
        try:
            container = await self._load()
            now = self._now()
            now_ms = to_epoch_ms(now)
            count = 0
            for record in transactions:
                tx = TollTransaction.from_record(record)
                if tx is None or tx.cache_id is None:
                    continue
                recent = self.is_recent(tx, now)
                ttl = self._config.recent_ttl if recent else self._config.old_ttl
                container.put(
                    tx.cache_id,
                    record,
                    CacheMetadata(
                        cached_at=now_ms,
                        expires_at=now_ms + ttl * 1000,
                        is_recent=recent,
                    ),
                )
                count += 1
            if count == 0:
                return 0
            if not await self._save(container):
                return 0
            logger.debug("Cached %d transaction(s)", count)
            return count
        except Exception as err:
            logger.error("Error caching transactions: %s", err)
            return 0

    async def _collect(
        self, start_date: DateLike, end_date: DateLike,
    ) -> list[tuple[TollTransaction, dict, Optional[CacheMetadata]]]:
        """Unexpired entries in the range; prunes expired ones as it goes."""
        start, end = day_bounds(start_date, end_date)
        container = await self._load()
        now_ms = to_epoch_ms(self._now())
        found = []
        expired = False

        for tid in list(container.transactions):
            meta = container.metadata.get(tid)
            if meta is not None and meta.is_expired(now_ms):
                container.remove(tid)
                expired = True
                continue
            record = container.transactions[tid]
            tx = TollTransaction.from_record(record)
            if tx is None:
                continue
            trip = tx.trip_timestamp()
            if trip is not None and start <= trip <= end:
                found.append((tx, record, meta))

        if expired:
            await self._save(container)
        return found

    async def get_cached_transactions(
        self, start_date: DateLike, end_date: DateLike,
    ) -> list[dict]:
        """Cached records whose trip falls within the inclusive day range.

        Expired entries met along the way are removed from the cache.
        Result order is unspecified.
        """
        try:
            return [record for _, record, _ in await self._collect(start_date, end_date)]
        except Exception as err:
            logger.error("Error getting cached transactions: %s", err)
            return []

    async def should_fetch_transactions(
        self, start_date: DateLike, end_date: DateLike,
    ) -> bool:
        """Whether the origin should be asked for this range.

        True when nothing is cached for the range or when any cached
        record was classified recent. Advisory only.
        """
        try:
            entries = await self._collect(start_date, end_date)
        except Exception as err:
            logger.error("Error checking transaction cache: %s", err)
            return True
        if not entries:
            return True
        now = self._now()
        for tx, _, meta in entries:
            recent = meta.is_recent if meta is not None else self.is_recent(tx, now)
            if recent:
                return True
        return False

    merge_with_cache = staticmethod(merge_with_cache)

    async def clear_transaction_cache(self) -> None:
        """Drop the whole cache. Failures are logged only."""
        try:
            await self._storage.remove_item(self._config.cache_key)
            logger.info("Transaction cache cleared")
        except Exception as err:
            logger.error("Error clearing transaction cache: %s", err)

    async def get_cache_stats(self) -> CacheStats:
        """Count entries by state without modifying the cache."""
        container = await self._load()
        now = self._now()
        now_ms = to_epoch_ms(now)
        stats = CacheStats(total=len(container.transactions))
        for tid, record in container.transactions.items():
            meta = container.metadata.get(tid)
            if meta is not None and meta.is_expired(now_ms):
                stats.expired += 1
                continue
            if meta is not None:
                recent = meta.is_recent
            else:
                tx = TollTransaction.from_record(record)
                recent = tx is None or self.is_recent(tx, now)
            if recent:
                stats.recent += 1
            else:
                stats.old += 1
        return stats
