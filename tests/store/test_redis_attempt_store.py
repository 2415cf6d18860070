from __future__ import annotations

import asyncio
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pinguard.errors import StoreUnavailableError
from pinguard.store.base import EMPTY_RECORD, AttemptRecord
from pinguard.store.redis_store import RedisAttemptStore

# Make typing tolerant whether fakeredis is installed or not.
try:
    from fakeredis.aioredis import FakeRedis as _FakeRedis
except Exception:  # pragma: no cover
    _FakeRedis = None  # runtime sentinel when fakeredis is absent

NOW = 1_700_000_000_000
ID = "user-1"

needs_fakeredis = pytest.mark.skipif(_FakeRedis is None, reason="fakeredis not installed")


def _store() -> RedisAttemptStore:
    r: Any = _FakeRedis(decode_responses=False)
    return RedisAttemptStore(r, ns="t")


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_absent_record_loads_as_empty() -> None:
    store = _store()
    assert await store.load(ID) == EMPTY_RECORD
    assert (await store.load_session(ID)).last_success_at is None


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_failure_tiers_and_success_reset() -> None:
    store = _store()
    await store.record_failure(ID, NOW)
    await store.record_failure(ID, NOW)
    rec = await store.record_failure(ID, NOW)
    assert rec == AttemptRecord(3, NOW + 60_000)
    assert await store.load(ID) == rec

    await store.record_success(ID, NOW + 10)
    assert await store.load(ID) == EMPTY_RECORD
    assert (await store.load_session(ID)).last_success_at == NOW + 10


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_fifth_failure_uses_five_minute_tier() -> None:
    store = _store()
    for _ in range(4):
        await store.record_failure(ID, NOW)
    rec = await store.record_failure(ID, NOW)
    assert rec == AttemptRecord(5, NOW + 5 * 60_000)


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_clear_expired_lockout() -> None:
    store = _store()
    for _ in range(3):
        rec = await store.record_failure(ID, NOW)
    assert await store.clear_expired_lockout(ID, NOW + 1_000) == rec
    assert await store.clear_expired_lockout(ID, NOW + 60_000) == EMPTY_RECORD
    assert await store.load(ID) == EMPTY_RECORD


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_concurrent_failures_count_exactly() -> None:
    store = _store()
    await asyncio.gather(*[store.record_failure(ID, NOW) for _ in range(6)])
    rec = await store.load(ID)
    assert rec.failed_count == 6
    assert rec.lockout_until == NOW + 5 * 60_000


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_success_keeps_session_separate_from_attempts() -> None:
    store = _store()
    await store.record_success(ID, NOW)
    await store.record_failure(ID, NOW + 1)
    assert (await store.load_session(ID)).last_success_at == NOW
    assert (await store.load(ID)).failed_count == 1


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_purge_and_inspect() -> None:
    store = _store()
    await store.record_failure(ID, NOW)
    snap = await store.inspect(ID)
    assert snap["backend"] == "redis"
    assert snap["failed_count"] == 1
    assert await store.purge(ID) is True
    assert await store.load(ID) == EMPTY_RECORD


class _DownRedis:
    async def _fail(self, *args: Any, **kwargs: Any) -> Any:
        raise RedisConnectionError("connection refused")

    hmget = hget = hgetall = eval = delete = _fail


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.load(ID),
        lambda s: s.load_session(ID),
        lambda s: s.record_failure(ID, NOW),
        lambda s: s.record_success(ID, NOW),
        lambda s: s.clear_expired_lockout(ID, NOW),
        lambda s: s.purge(ID),
    ],
)
async def test_redis_errors_surface_as_store_unavailable(call) -> None:
    store = RedisAttemptStore(_DownRedis(), ns="t")  # type: ignore[arg-type]
    with pytest.raises(StoreUnavailableError) as ei:
        await call(store)
    assert ei.value.backend == "redis"
    assert ei.value.operation
