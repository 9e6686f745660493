"""Short-TTL key-value stores for rate counters and OTP challenges.

Services depend on the KeyValueStore protocol. Every read-modify-write is a
single atomic operation on the backend:

- RedisStore runs each one as a Lua script (or a MULTI transaction), so
  concurrent requests across processes cannot double-admit or double-count.
- InMemoryStore serialises them behind an asyncio.Lock. It is only correct
  within one process and is meant for development and tests, or for a
  single-instance deployment without Redis.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

import redis.asyncio as aioredis

from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class CounterState:
    """Outcome of a conditional counter increment."""

    allowed: bool
    count: int
    ttl: int  # seconds until the window resets


class KeyValueStore(Protocol):
    async def incr_within_limits(
        self, counters: Sequence[tuple[str, int, int]]
    ) -> CounterState: ...

    async def incr_within_limit(
        self, key: str, limit: int, window_seconds: int
    ) -> CounterState: ...

    async def replace_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int
    ) -> None: ...

    async def get_hash(self, key: str) -> Optional[dict[str, str]]: ...

    async def incr_hash_field(self, key: str, field: str) -> Optional[int]: ...

    async def set_hash_field_if_absent(
        self, key: str, field: str, value: str
    ) -> Optional[bool]: ...

    async def ttl(self, key: str) -> int: ...

    async def delete(self, key: str) -> None: ...


# ARGV holds (limit, window) per key. Either every counter is below its
# ceiling and all are incremented, or none is touched and the exhausted
# counter with the longest remaining window is reported. A window starts on
# its counter's first hit.
_INCR_WITHIN_LIMITS = """
local denied = false
local worst_count, worst_ttl = 0, -1
for i = 1, #KEYS do
    local current = tonumber(redis.call('GET', KEYS[i]) or '0')
    if current >= tonumber(ARGV[2 * i - 1]) then
        local ttl = redis.call('TTL', KEYS[i])
        if ttl < 0 then
            redis.call('EXPIRE', KEYS[i], ARGV[2 * i])
            ttl = tonumber(ARGV[2 * i])
        end
        if ttl > worst_ttl then
            worst_count, worst_ttl = current, ttl
        end
        denied = true
    end
end
if denied then
    return {0, worst_count, worst_ttl}
end
local first_count, first_ttl = 0, 0
for i = #KEYS, 1, -1 do
    local count = redis.call('INCR', KEYS[i])
    if count == 1 or redis.call('TTL', KEYS[i]) < 0 then
        redis.call('EXPIRE', KEYS[i], ARGV[2 * i])
    end
    first_count, first_ttl = count, redis.call('TTL', KEYS[i])
end
return {1, first_count, first_ttl}
"""

# Field operations never resurrect an expired hash.
_INCR_FIELD_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return -1
end
return redis.call('HINCRBY', KEYS[1], ARGV[1], 1)
"""

_SET_FIELD_IF_ABSENT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return -1
end
return redis.call('HSETNX', KEYS[1], ARGV[1], ARGV[2])
"""


class RedisStore:
    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client
        self._incr_within_limits = redis_client.register_script(_INCR_WITHIN_LIMITS)
        self._incr_field = redis_client.register_script(_INCR_FIELD_IF_EXISTS)
        self._set_field = redis_client.register_script(_SET_FIELD_IF_ABSENT)

    async def incr_within_limits(
        self, counters: Sequence[tuple[str, int, int]]
    ) -> CounterState:
        args: list[int] = []
        for _, limit, window_seconds in counters:
            args.extend((limit, window_seconds))
        allowed, count, ttl = await self._incr_within_limits(
            keys=[key for key, _, _ in counters], args=args
        )
        return CounterState(allowed=bool(int(allowed)), count=int(count), ttl=int(ttl))

    async def incr_within_limit(
        self, key: str, limit: int, window_seconds: int
    ) -> CounterState:
        return await self.incr_within_limits([(key, limit, window_seconds)])

    async def replace_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int
    ) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, ttl_seconds)
            await pipe.execute()

    async def get_hash(self, key: str) -> Optional[dict[str, str]]:
        data = await self._redis.hgetall(key)
        return data or None

    async def incr_hash_field(self, key: str, field: str) -> Optional[int]:
        value = int(await self._incr_field(keys=[key], args=[field]))
        return None if value < 0 else value

    async def set_hash_field_if_absent(
        self, key: str, field: str, value: str
    ) -> Optional[bool]:
        result = int(await self._set_field(keys=[key], args=[field, value]))
        if result < 0:
            return None
        return result == 1

    async def ttl(self, key: str) -> int:
        return int(await self._redis.ttl(key))

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)


class InMemoryStore:
    """Process-local KeyValueStore with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, object] = {}
        self._expiry: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _alive(self, key: str) -> bool:
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return key in self._data

    def _remaining(self, key: str) -> int:
        if not self._alive(key):
            return -2
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return -1
        return max(0, math.ceil(expires_at - self._clock()))

    async def incr_within_limits(
        self, counters: Sequence[tuple[str, int, int]]
    ) -> CounterState:
        async with self._lock:
            current = {
                key: int(self._data[key]) if self._alive(key) else 0
                for key, _, _ in counters
            }
            exhausted = [
                CounterState(allowed=False, count=current[key], ttl=self._remaining(key))
                for key, limit, _ in counters
                if current[key] >= limit
            ]
            if exhausted:
                return max(exhausted, key=lambda state: state.ttl)
            for key, _, window_seconds in counters:
                if current[key] == 0:
                    self._expiry[key] = self._clock() + window_seconds
                self._data[key] = current[key] + 1
            first = counters[0][0]
            return CounterState(
                allowed=True, count=current[first] + 1, ttl=self._remaining(first)
            )

    async def incr_within_limit(
        self, key: str, limit: int, window_seconds: int
    ) -> CounterState:
        return await self.incr_within_limits([(key, limit, window_seconds)])

    async def replace_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int
    ) -> None:
        async with self._lock:
            self._data[key] = dict(mapping)
            self._expiry[key] = self._clock() + ttl_seconds

    async def get_hash(self, key: str) -> Optional[dict[str, str]]:
        async with self._lock:
            if not self._alive(key):
                return None
            return dict(self._data[key])

    async def incr_hash_field(self, key: str, field: str) -> Optional[int]:
        async with self._lock:
            if not self._alive(key):
                return None
            record = self._data[key]
            value = int(record.get(field, 0)) + 1
            record[field] = str(value)
            return value

    async def set_hash_field_if_absent(
        self, key: str, field: str, value: str
    ) -> Optional[bool]:
        async with self._lock:
            if not self._alive(key):
                return None
            record = self._data[key]
            if field in record:
                return False
            record[field] = value
            return True

    async def ttl(self, key: str) -> int:
        async with self._lock:
            return self._remaining(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)
            self._expiry.pop(key, None)


def create_store(redis_client: Optional[aioredis.Redis]) -> KeyValueStore:
    """Return a RedisStore when Redis is available, else an InMemoryStore."""
    if redis_client is None:
        log.warning("kv_store_in_memory", reason="redis_unavailable")
        return InMemoryStore()
    return RedisStore(redis_client)
