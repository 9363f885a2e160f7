"""Toll Ledger.

Encrypted local cache of toll transaction history.
"""
from .version import __version__
from .cache import TransactionCache, merge_with_cache, is_recent_transaction
from .loader import TransactionLoader, TransactionFetcher, LoadResult
from .models import TollTransaction, CacheMetadata, CacheContainer, CacheStats
from .session import ClientSession, RateLimiter, RateLimitResult

__all__ = [
    "__version__",
    "TransactionCache",
    "merge_with_cache",
    "is_recent_transaction",
    "TransactionLoader",
    "TransactionFetcher",
    "LoadResult",
    "TollTransaction",
    "CacheMetadata",
    "CacheContainer",
    "CacheStats",
    "ClientSession",
    "RateLimiter",
    "RateLimitResult",
]
