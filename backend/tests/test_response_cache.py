"""Tests for the stream recovery cache and its recorder."""

import fakeredis.aioredis
import pytest
from redis.exceptions import RedisError

from ra_companion.services.response_cache import (
    ResponseCache,
    ResponseRecorder,
    cache_key,
)

RESPONSE_ID = "0b7e4a52-5a0e-4b8e-9f53-0f1c1f7c9b11"


class BrokenRedis:
    def pipeline(self, *args, **kwargs):
        raise RedisError("connection refused")

    async def lrange(self, *args, **kwargs):
        raise RedisError("connection refused")


@pytest.fixture(params=["memory", "redis"])
def response_cache(request, clock):
    if request.param == "redis":
        return ResponseCache(redis=fakeredis.aioredis.FakeRedis(decode_responses=True), clock=clock)
    return ResponseCache(clock=clock)


async def test_unknown_id_returns_none(response_cache):
    assert await response_cache.get_cached_response(RESPONSE_ID) is None


async def test_events_are_returned_in_append_order(response_cache):
    await response_cache.append_event(RESPONSE_ID, "session", {"responseId": RESPONSE_ID})
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "Hi"})
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": " there"})

    cached = await response_cache.get_cached_response(RESPONSE_ID)
    assert [e.type for e in cached.events] == ["session", "chunk", "chunk"]
    assert cached.events[2].data == {"type": "text", "content": " there"}
    assert cached.complete is False


@pytest.mark.parametrize("terminal", ["done", "error"])
async def test_terminal_event_marks_complete(response_cache, terminal):
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "Hi"})
    await response_cache.append_event(RESPONSE_ID, terminal, {})
    cached = await response_cache.get_cached_response(RESPONSE_ID)
    assert cached.complete is True


async def test_records_are_isolated_by_id(response_cache):
    other = "6f1d2c3b-0000-4000-8000-000000000001"
    await response_cache.append_event(RESPONSE_ID, "done", {})
    await response_cache.append_event(other, "chunk", {"type": "text", "content": "x"})
    assert (await response_cache.get_cached_response(RESPONSE_ID)).complete
    assert not (await response_cache.get_cached_response(other)).complete


async def test_local_record_expires_after_ttl(clock):
    response_cache = ResponseCache(ttl_seconds=300, clock=clock)
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "Hi"})
    clock.advance(299_000)
    assert await response_cache.get_cached_response(RESPONSE_ID) is not None
    clock.advance(1_000)
    assert await response_cache.get_cached_response(RESPONSE_ID) is None


async def test_append_refreshes_ttl(clock):
    response_cache = ResponseCache(ttl_seconds=300, clock=clock)
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "Hi"})
    clock.advance(200_000)
    await response_cache.append_event(RESPONSE_ID, "done", {})
    clock.advance(200_000)
    assert (await response_cache.get_cached_response(RESPONSE_ID)).complete


async def test_redis_record_has_ttl():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    response_cache = ResponseCache(redis=redis, ttl_seconds=300)
    await response_cache.append_event(RESPONSE_ID, "done", {})
    ttl = await redis.ttl(cache_key(RESPONSE_ID))
    assert 0 < ttl <= 300


async def test_local_cache_evicts_oldest(clock):
    response_cache = ResponseCache(max_local_entries=2, clock=clock)
    for i in range(3):
        await response_cache.append_event(f"id-{i}", "done", {})
    assert await response_cache.get_cached_response("id-0") is None
    assert await response_cache.get_cached_response("id-1") is not None
    assert await response_cache.get_cached_response("id-2") is not None


async def test_undecodable_redis_items_are_skipped():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await redis.rpush(cache_key(RESPONSE_ID), "not json", '{"type": "done", "data": []}', '{"type": "done", "data": {}}')
    cached = await ResponseCache(redis=redis).get_cached_response(RESPONSE_ID)
    assert [e.type for e in cached.events] == ["done"]
    assert cached.complete


async def test_store_errors_do_not_raise(caplog):
    response_cache = ResponseCache(redis=BrokenRedis())
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "a"})
    await response_cache.append_event(RESPONSE_ID, "chunk", {"type": "text", "content": "b"})
    assert await response_cache.get_cached_response(RESPONSE_ID) is None
    append_errors = [r for r in caplog.records if "append error" in r.getMessage()]
    assert len(append_errors) == 1


async def test_recorder_ignores_events_after_terminal(response_cache):
    recorder = ResponseRecorder(response_cache)
    assert await recorder.record("chunk", {"type": "text", "content": "Hi"})
    assert await recorder.record("done", {})
    assert not await recorder.record("chunk", {"type": "text", "content": "late"})

    cached = await response_cache.get_cached_response(recorder.response_id)
    assert [e.type for e in cached.events] == ["chunk", "done"]
    assert recorder.complete
    assert recorder.event_count == 2


def test_recorder_generates_uuid4_ids():
    first = ResponseRecorder(ResponseCache())
    second = ResponseRecorder(ResponseCache())
    assert first.response_id != second.response_id
    assert first.response_id[14] == "4"
