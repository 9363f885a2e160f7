import math
import time
import uuid
from typing import Any, Optional
from dataclasses import dataclass
from collections.abc import Callable, Iterator, MutableMapping

from .cache import TransactionCache


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """RateLimiter.
    Fixed-window attempt counter keyed by action name (e.g. "login").
    Owned by one ClientSession; never shared between sessions.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._records: dict[str, dict[str, float]] = {}

    def check(self, key: str, max_attempts: int = 5, window: float = 60) -> RateLimitResult:
        """Count one attempt; refuse it once ``max_attempts`` is reached.

        Args:
            key: Action name.
            max_attempts: Attempts allowed per window.
            window: Window length in seconds.

        Returns:
            RateLimitResult, with ``retry_after`` seconds when refused.
        """
        now = self._clock()
        record = self._records.get(key)
        if record is None or now > record['reset_at']:
            record = {'attempts': 0, 'reset_at': now + window}
        if record['attempts'] >= max_attempts:
            self._records[key] = record
            return RateLimitResult(
                allowed=False,
                retry_after=max(1, math.ceil(record['reset_at'] - now))
            )
        record['attempts'] += 1
        self._records[key] = record
        return RateLimitResult(allowed=True)

    def clear(self, key: str) -> None:
        self._records.pop(key, None)

    def reset(self) -> None:
        self._records.clear()


class ClientSession(MutableMapping[str, Any]):
    """Session dict-like object.

    Holds the state of one signed-in user (account id, token, display
    preferences...) together with the session's rate limiter. Created at
    login, invalidated at logout; nothing here outlives the session.
    """

    def __init__(
        self,
        data: Optional[dict] = None,
        id: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None
    ) -> None:
        self._id_ = id or uuid.uuid4().hex
        self._data: dict[str, Any] = dict(data or {})
        self._created = int(time.time())
        self._active = True
        self.rate_limiter = rate_limiter or RateLimiter()

    def __repr__(self) -> str:
        return (
            f'<ClientSession [id:{self._id_}, active:{self._active}] '
            f'keys={list(self._data.keys())}>'
        )

    # --- Properties ---

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def created(self) -> int:
        return self._created

    @property
    def active(self) -> bool:
        return self._active

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    def invalidate(self) -> None:
        """Clear all session data and rate-limit state."""
        self._data = {}
        self.rate_limiter.reset()
        self._active = False

    async def logout(self, cache: Optional[TransactionCache] = None) -> None:
        """Invalidate the session and drop the user's cached transactions."""
        self.invalidate()
        if cache is not None:
            await cache.clear_transaction_cache()

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]
