"""
Session Backing Stores

A backing store keeps one ordered list of serialized turns per key and
provides the primitives the SessionStore relies on:

- append(): push one or more records AND refresh the key's expiry as a single
  indivisible operation, optionally resetting a record of the wrong shape
  inside that same operation, and report the list as it stands afterwards
- read(): the whole list, oldest first
- delete(): drop the key, reporting whether it existed
- native expiry: keys vanish once their TTL lapses, with no reaper

Two implementations share this contract:

RedisSessionBackend
    Lists + EXPIRE inside a WATCH/MULTI/EXEC transaction. Safe across
    multiple server processes.

InMemorySessionBackend
    Single-process store guarded by a lock, with lazy expiry against a
    monotonic clock. Used for local runs and tests.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError, WatchError

from ..core.errors import StoreFailure


class SessionShapeError(Exception):
    """A key exists but does not hold an ordered list of records."""

    def __init__(self, key: str, found: str) -> None:
        super().__init__(f"Key {key!r} holds {found}, expected a list")
        self.key = key
        self.found = found


RecordCheck = Callable[[List[str]], Any]


@dataclass(frozen=True)
class AppendResult:
    """Outcome of one atomic append."""

    records: List[str]
    reset_from: Optional[str] = None


class SessionBackend(Protocol):
    async def append(
        self,
        key: str,
        records: Sequence[str],
        ttl_seconds: int,
        reset_on_mismatch: bool,
        check: Optional[RecordCheck] = None,
    ) -> AppendResult:
        """
        Atomically append ``records`` and set the key's expiry.

        ``check`` is called with the records already stored before anything
        is written; whatever it raises aborts the append unchanged.

        Returns the full list after the append, plus the type name of the
        record that was reset (None when no reset was needed). Raises
        SessionShapeError on a mismatch when ``reset_on_mismatch`` is False;
        nothing is written in that case.
        """
        ...

    async def read(self, key: str) -> List[str]:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------

class RedisSessionBackend:
    """
    Redis lists with key expiry.

    append() WATCHes the key, inspects its type and current contents, then
    queues the optional DEL, the RPUSH, the EXPIRE and an LRANGE of the
    result in one MULTI/EXEC block. A concurrent
    writer touching the key between WATCH and EXEC aborts the transaction,
    which is then retried from the start, so two appends to the same session
    are applied one after the other and never interleave.
    """

    def __init__(self, client: Redis, max_retries: int = 50) -> None:
        self._redis = client
        self._max_retries = max_retries

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionBackend":
        return cls(Redis.from_url(url, decode_responses=True))

    async def append(
        self,
        key: str,
        records: Sequence[str],
        ttl_seconds: int,
        reset_on_mismatch: bool,
        check: Optional[RecordCheck] = None,
    ) -> AppendResult:
        if not records:
            raise ValueError("append requires at least one record")

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(self._max_retries):
                    try:
                        await pipe.watch(key)
                        kind = await pipe.type(key)
                        reset = kind not in ("none", "list")
                        if reset and not reset_on_mismatch:
                            raise SessionShapeError(key, kind)
                        if check is not None and kind == "list":
                            check(list(await pipe.lrange(key, 0, -1)))

                        pipe.multi()
                        if reset:
                            pipe.delete(key)
                        pipe.rpush(key, *records)
                        pipe.expire(key, ttl_seconds)
                        pipe.lrange(key, 0, -1)
                        results = await pipe.execute()
                        return AppendResult(
                            records=list(results[-1]),
                            reset_from=kind if reset else None,
                        )
                    except WatchError:
                        continue
        except RedisError as exc:
            raise StoreFailure(f"Redis append failed: {type(exc).__name__}") from exc

        raise StoreFailure(f"Redis append on {key!r} kept conflicting; gave up")

    async def read(self, key: str) -> List[str]:
        try:
            return list(await self._redis.lrange(key, 0, -1))
        except ResponseError as exc:
            if "WRONGTYPE" in str(exc):
                kind = await self._type_or_unknown(key)
                raise SessionShapeError(key, kind) from exc
            raise StoreFailure(f"Redis read failed: {type(exc).__name__}") from exc
        except RedisError as exc:
            raise StoreFailure(f"Redis read failed: {type(exc).__name__}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._redis.delete(key))
        except RedisError as exc:
            raise StoreFailure(f"Redis delete failed: {type(exc).__name__}") from exc

    async def close(self) -> None:
        await self._redis.aclose()

    async def _type_or_unknown(self, key: str) -> str:
        try:
            return str(await self._redis.type(key))
        except RedisError:
            return "unknown"


# ---------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------

@dataclass
class _Entry:
    value: Any
    expires_at: Optional[float]


class InMemorySessionBackend:
    """
    Dictionary-backed store for a single process.

    Every operation runs entirely under one lock without awaiting, which
    makes append() atomic with respect to every other operation. Expired
    entries are dropped when next touched.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._lock = RLock()
        self._clock = clock

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def set_raw(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """
        Store an arbitrary value under ``key``, as a foreign writer would.
        """
        with self._lock:
            expires = self._clock() + ttl_seconds if ttl_seconds is not None else None
            self._entries[key] = _Entry(value=value, expires_at=expires)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires; None if absent or persistent."""
        with self._lock:
            entry = self._live(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    async def append(
        self,
        key: str,
        records: Sequence[str],
        ttl_seconds: int,
        reset_on_mismatch: bool,
        check: Optional[RecordCheck] = None,
    ) -> AppendResult:
        if not records:
            raise ValueError("append requires at least one record")

        with self._lock:
            entry = self._live(key)
            reset_from: Optional[str] = None

            if entry is not None and not isinstance(entry.value, list):
                reset_from = type(entry.value).__name__
                if not reset_on_mismatch:
                    raise SessionShapeError(key, reset_from)

            items = [] if entry is None or reset_from else list(entry.value)
            if check is not None and items:
                check(list(items))
            items.extend(records)
            self._entries[key] = _Entry(value=items, expires_at=self._clock() + ttl_seconds)
            return AppendResult(records=list(items), reset_from=reset_from)

    async def read(self, key: str) -> List[str]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return []
            if not isinstance(entry.value, list):
                raise SessionShapeError(key, type(entry.value).__name__)
            return list(entry.value)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None and self._entries.pop(key, None) is not None

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
