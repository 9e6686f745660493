"""Unit tests for the key-value stores behind rate counters and OTP challenges."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from infrastructure.cache import redis_client
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.cache.store import (
    CounterState,
    InMemoryStore,
    RedisStore,
    create_store,
)


# ── InMemoryStore ─────────────────────────────────────────────────────────────


class TestInMemoryCounter:
    async def test_counts_up_to_limit(self, store):
        states = [await store.incr_within_limit("k", 3, 60) for _ in range(4)]
        assert [s.allowed for s in states] == [True, True, True, False]
        assert [s.count for s in states] == [1, 2, 3, 3]

    async def test_window_starts_on_first_hit(self, store, clock):
        await store.incr_within_limit("k", 1, 60)
        clock.advance(20)
        state = await store.incr_within_limit("k", 1, 60)
        assert state == CounterState(allowed=False, count=1, ttl=40)

    async def test_window_expiry_resets_count(self, store, clock):
        await store.incr_within_limit("k", 1, 60)
        clock.advance(60)
        state = await store.incr_within_limit("k", 1, 60)
        assert state.allowed and state.count == 1

    async def test_concurrent_increments_never_exceed_limit(self, store):
        states = await asyncio.gather(
            *(store.incr_within_limit("k", 5, 60) for _ in range(20))
        )
        assert sum(s.allowed for s in states) == 5

    async def test_counters_move_together(self, store):
        counters = [("a", 1, 60), ("b", 5, 3600)]
        assert (await store.incr_within_limits(counters)).allowed
        denied = await store.incr_within_limits(counters)
        assert denied == CounterState(allowed=False, count=1, ttl=60)
        assert (await store.incr_within_limit("b", 5, 3600)).count == 2

    async def test_longest_exhausted_window_reported(self, store, clock):
        counters = [("a", 1, 60), ("b", 1, 3600)]
        await store.incr_within_limits(counters)
        clock.advance(10)
        state = await store.incr_within_limits(counters)
        assert state.ttl == 3590


class TestInMemoryHash:
    async def test_replace_and_get(self, store):
        await store.replace_hash("h", {"a": "1"}, 30)
        assert await store.get_hash("h") == {"a": "1"}

    async def test_get_returns_copy(self, store):
        await store.replace_hash("h", {"a": "1"}, 30)
        (await store.get_hash("h"))["a"] = "mutated"
        assert (await store.get_hash("h"))["a"] == "1"

    async def test_replace_discards_old_fields(self, store):
        await store.replace_hash("h", {"a": "1", "b": "2"}, 30)
        await store.replace_hash("h", {"c": "3"}, 30)
        assert await store.get_hash("h") == {"c": "3"}

    async def test_expired_hash_is_gone(self, store, clock):
        await store.replace_hash("h", {"a": "1"}, 30)
        clock.advance(30)
        assert await store.get_hash("h") is None
        assert await store.ttl("h") == -2

    async def test_incr_field(self, store):
        await store.replace_hash("h", {"attempts": "0"}, 30)
        assert await store.incr_hash_field("h", "attempts") == 1
        assert await store.incr_hash_field("h", "attempts") == 2
        assert await store.incr_hash_field("h", "other") == 1

    async def test_incr_field_on_missing_hash_does_not_create_it(self, store):
        assert await store.incr_hash_field("missing", "attempts") is None
        assert await store.get_hash("missing") is None

    async def test_set_field_if_absent(self, store):
        await store.replace_hash("h", {"a": "1"}, 30)
        assert await store.set_hash_field_if_absent("h", "consumed_at", "t1") is True
        assert await store.set_hash_field_if_absent("h", "consumed_at", "t2") is False
        assert (await store.get_hash("h"))["consumed_at"] == "t1"
        assert await store.set_hash_field_if_absent("missing", "f", "v") is None

    async def test_ttl_and_delete(self, store, clock):
        await store.replace_hash("h", {"a": "1"}, 30)
        clock.advance(10)
        assert await store.ttl("h") == 20
        await store.delete("h")
        assert await store.ttl("h") == -2
        await store.delete("h")


# ── RedisStore ────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_redis():
    """Mock async Redis whose registered scripts are individual AsyncMocks."""
    r = MagicMock()
    scripts = [AsyncMock(name=n) for n in ("incr_within_limits", "incr_field", "set_field")]
    r.register_script.side_effect = scripts
    r.scripts = scripts
    r.hgetall = AsyncMock(return_value={})
    r.ttl = AsyncMock(return_value=42)
    r.delete = AsyncMock(return_value=1)

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, 1, True])
    r.pipeline.return_value.__aenter__.return_value = pipe
    r.pipe = pipe
    return r


class TestRedisStore:
    async def test_registers_three_scripts(self, fake_redis):
        RedisStore(fake_redis)
        assert fake_redis.register_script.call_count == 3

    async def test_incr_within_limit_passes_limit_and_window(self, fake_redis):
        store = RedisStore(fake_redis)
        fake_redis.scripts[0].return_value = [1, 2, 55]
        state = await store.incr_within_limit("abuse:login:minute:x", 5, 60)
        fake_redis.scripts[0].assert_awaited_once_with(
            keys=["abuse:login:minute:x"], args=[5, 60]
        )
        assert state == CounterState(allowed=True, count=2, ttl=55)

    async def test_incr_within_limit_denied(self, fake_redis):
        store = RedisStore(fake_redis)
        fake_redis.scripts[0].return_value = [0, 5, 12]
        state = await store.incr_within_limit("k", 5, 60)
        assert not state.allowed

    async def test_incr_within_limits_flattens_rules(self, fake_redis):
        store = RedisStore(fake_redis)
        fake_redis.scripts[0].return_value = [0, 5, 86000]
        state = await store.incr_within_limits(
            [("abuse:login:minute:x", 1, 60), ("abuse:login:day:x", 5, 86400)]
        )
        fake_redis.scripts[0].assert_awaited_once_with(
            keys=["abuse:login:minute:x", "abuse:login:day:x"], args=[1, 60, 5, 86400]
        )
        assert state == CounterState(allowed=False, count=5, ttl=86000)

    async def test_replace_hash_runs_in_one_transaction(self, fake_redis):
        store = RedisStore(fake_redis)
        await store.replace_hash("otp:k", {"a": "1"}, 300)
        fake_redis.pipeline.assert_called_once_with(transaction=True)
        fake_redis.pipe.delete.assert_called_once_with("otp:k")
        fake_redis.pipe.hset.assert_called_once_with("otp:k", mapping={"a": "1"})
        fake_redis.pipe.expire.assert_called_once_with("otp:k", 300)
        fake_redis.pipe.execute.assert_awaited_once()

    async def test_get_hash_empty_is_none(self, fake_redis):
        assert await RedisStore(fake_redis).get_hash("missing") is None

    async def test_get_hash_returns_mapping(self, fake_redis):
        fake_redis.hgetall.return_value = {"a": "1"}
        assert await RedisStore(fake_redis).get_hash("h") == {"a": "1"}

    @pytest.mark.parametrize("raw, expected", [(3, 3), (-1, None)])
    async def test_incr_hash_field(self, fake_redis, raw, expected):
        store = RedisStore(fake_redis)
        fake_redis.scripts[1].return_value = raw
        assert await store.incr_hash_field("h", "attempts") == expected
        fake_redis.scripts[1].assert_awaited_once_with(keys=["h"], args=["attempts"])

    @pytest.mark.parametrize("raw, expected", [(1, True), (0, False), (-1, None)])
    async def test_set_hash_field_if_absent(self, fake_redis, raw, expected):
        store = RedisStore(fake_redis)
        fake_redis.scripts[2].return_value = raw
        assert await store.set_hash_field_if_absent("h", "consumed_at", "1.0") is expected

    async def test_ttl_and_delete_delegate(self, fake_redis):
        store = RedisStore(fake_redis)
        assert await store.ttl("h") == 42
        await store.delete("h")
        fake_redis.delete.assert_awaited_once_with("h")


def test_create_store_without_redis_is_in_memory():
    assert isinstance(create_store(None), InMemoryStore)


def test_create_store_with_redis(fake_redis):
    assert isinstance(create_store(fake_redis), RedisStore)


# ── create_redis_client ───────────────────────────────────────────────────────


class TestCreateRedisClient:
    async def test_not_configured(self):
        assert await create_redis_client(None) is None

    async def test_connected(self, mocker):
        client = MagicMock(ping=AsyncMock(return_value=True), aclose=AsyncMock())
        from_url = mocker.patch.object(redis_client.aioredis, "from_url", return_value=client)
        assert await create_redis_client("redis://:secret@cache:6379/0") is client
        assert from_url.call_args.kwargs["decode_responses"] is True
        client.aclose.assert_not_awaited()

    async def test_unreachable_falls_back(self, mocker):
        client = MagicMock(
            ping=AsyncMock(side_effect=RedisConnectionError("refused")), aclose=AsyncMock()
        )
        mocker.patch.object(redis_client.aioredis, "from_url", return_value=client)
        assert await create_redis_client("redis://cache:6379/0") is None
        client.aclose.assert_awaited_once()
