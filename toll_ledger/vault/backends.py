"""
Storage media: plain key/value text stores under SecureStorage.

Backends hold strings only and know nothing about encryption:
- ``MemoryBackend``: lives as long as the process (session-scoped).
- ``FileBackend``: JSON file on disk, survives restarts (persistent).
- ``RedisBackend``: an injected ``redis.asyncio``-compatible client.

Failures are raised as ``StorageError``; SecureStorage decides what to
do with them.
"""
import os
import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Optional

import orjson

from .exceptions import StorageError, StorageFullError

logger = logging.getLogger("toll_ledger.vault")


class StorageBackend(ABC):
    """Abstract async key/value text store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. No-op if absent."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key owned by this backend."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List stored keys."""

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class MemoryBackend(StorageBackend):
    """In-process store, optionally capped at ``max_bytes`` of UTF-8 text."""

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes

    def _size_with(self, key: str, value: str) -> int:
        size = 0
        for k, v in self._data.items():
            if k != key:
                size += len(k.encode("utf-8")) + len(v.encode("utf-8"))
        return size + len(key.encode("utf-8")) + len(value.encode("utf-8"))

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            size = self._size_with(key, value)
            if size > self._max_bytes:
                raise StorageFullError(
                    f"Writing {key!r} needs {size} bytes, "
                    f"quota is {self._max_bytes}",
                    quota=self._max_bytes,
                )
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def keys(self) -> list[str]:
        return list(self._data.keys())

    async def exists(self, key: str) -> bool:
        return key in self._data


class FileBackend(StorageBackend):
    """All keys in one JSON object file, rewritten atomically on change.

    Blocking file I/O runs in a worker thread. An unreadable or
    malformed file raises ``StorageError``; it is never silently reset.
    """

    def __init__(self, path: str):
        self._path = os.path.expanduser(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            with open(self._path, "rb") as fp:
                raw = fp.read()
        except FileNotFoundError:
            return {}
        except OSError as err:
            raise StorageError(f"Cannot read {self._path}: {err}") from err
        if not raw.strip():
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise StorageError(f"Malformed storage file {self._path}") from err
        if not isinstance(data, dict):
            raise StorageError(f"Malformed storage file {self._path}")
        return data

    def _write(self, data: dict[str, str]) -> None:
        directory = os.path.dirname(self._path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".storage-")
            try:
                with os.fdopen(fd, "wb") as fp:
                    fp.write(orjson.dumps(data))
                os.replace(tmp, self._path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as err:
            raise StorageError(f"Cannot write {self._path}: {err}") from err

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            await asyncio.to_thread(self._write, data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if data.pop(key, None) is not None:
                await asyncio.to_thread(self._write, data)

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, {})

    async def keys(self) -> list[str]:
        data = await asyncio.to_thread(self._read)
        return list(data.keys())


class RedisBackend(StorageBackend):
    """Keys stored as ``{prefix}:{key}`` in Redis, with an optional TTL."""

    def __init__(self, redis: Any, prefix: str = "toll_ledger", ttl: Optional[int] = None):
        self._redis = redis
        self._prefix = prefix
        self._ttl = ttl

    def _redis_key(self, key: str) -> str:
        """Build Redis key."""
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Optional[str]:
        value = await self._redis.get(self._redis_key(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        if self._ttl:
            await self._redis.setex(self._redis_key(key), self._ttl, value)
        else:
            await self._redis.set(self._redis_key(key), value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._redis_key(key))

    async def clear(self) -> None:
        for key in await self.keys():
            await self.delete(key)

    async def keys(self) -> list[str]:
        offset = len(self._prefix) + 1
        result = []
        async for name in self._redis.scan_iter(match=f"{self._prefix}:*"):
            if isinstance(name, bytes):
                name = name.decode("utf-8")
            result.append(name[offset:])
        return result
