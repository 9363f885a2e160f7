"""
Fetch-through-cache loading of transaction history.

Flow for one date range:
1. read whatever the cache holds for the range (failure is not fatal)
2. fetch the range from the toll API
3. cache the fresh records (failure is not fatal)
4. merge fresh over cached (one record per trip) and sort newest first

Errors from the fetch itself propagate: loading history is the user's
primary action and must not be hidden.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol, Union

from .cache import TransactionCache, merge_with_cache
from .models import TollTransaction

logger = logging.getLogger("toll_ledger.loader")


class TransactionFetcher(Protocol):
    """Remote API client returning raw transaction records."""

    async def fetch_transactions(
        self,
        account_id: Union[int, str],
        token: str,
        start_date: date,
        end_date: date,
    ) -> list[dict]:
        ...


@dataclass
class LoadResult:
    transactions: list[dict] = field(default_factory=list)
    from_cache: bool = False
    cached_count: int = 0
    fresh_count: int = 0

    @property
    def message(self) -> str:
        count = len(self.transactions)
        plural = "" if count == 1 else "s"
        if self.from_cache and self.fresh_count == self.cached_count:
            return f"Loaded {count} transaction{plural} (cache up to date)"
        suffix = " (updated)" if self.from_cache else ""
        return f"Found {count} transaction{plural}{suffix}"


def _sort_key(record: Any) -> datetime:
    tx = TollTransaction.from_record(record)
    trip = tx.trip_timestamp() if tx is not None else None
    return trip or datetime.min


class TransactionLoader:
    """Loads a date range through a TransactionCache."""

    def __init__(self, cache: TransactionCache, fetcher: TransactionFetcher):
        self._cache = cache
        self._fetcher = fetcher

    async def load(
        self,
        account_id: Union[int, str],
        token: str,
        start_date: date,
        end_date: date,
    ) -> LoadResult:
        result = LoadResult()
        cached: list[dict] = []
        try:
            cached = await self._cache.get_cached_transactions(start_date, end_date)
        except Exception as err:
            logger.warning("Cache read error (non-critical): %s", err)
        if cached:
            result.from_cache = True
            result.cached_count = len(cached)
            logger.debug("Found %d cached transaction(s)", len(cached))

        fresh = await self._fetcher.fetch_transactions(
            account_id, token, start_date, end_date,
        )

        result.fresh_count = len(fresh or [])

        try:
            await self._cache.cache_transactions(fresh)
        except Exception as err:
            logger.warning("Cache write error (non-critical): %s", err)

        merged = merge_with_cache(fresh, cached)
        merged.sort(key=_sort_key, reverse=True)
        result.transactions = merged
        return result
