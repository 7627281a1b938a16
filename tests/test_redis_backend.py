"""
Redis Backend Tests

Exercise the WATCH/MULTI/EXEC append path against fakeredis.
"""

import asyncio
import json

import fakeredis
import pytest

from news_rag.core.errors import StoreFailure
from news_rag.sessions.backends import RedisSessionBackend
from news_rag.sessions.models import Turn
from news_rag.sessions.store import SessionStore


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def redis_store(redis_client):
    return SessionStore(RedisSessionBackend(redis_client), ttl_seconds=3600)


@pytest.mark.asyncio
async def test_append_pair_pushes_json_records_with_ttl(redis_store, redis_client):
    sid = redis_store.create()
    await redis_store.append_pair(sid, Turn.user("q"), Turn.assistant("a"))

    raw = await redis_client.lrange(f"session:{sid}", 0, -1)
    assert [json.loads(r) for r in raw] == [
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "a"},
    ]
    ttl = await redis_client.ttl(f"session:{sid}")
    assert 0 < ttl <= 3600


@pytest.mark.asyncio
async def test_history_of_unknown_session_is_empty(redis_store):
    assert await redis_store.get_history("does-not-exist") == []


@pytest.mark.asyncio
async def test_reads_records_written_by_legacy_service(redis_store, redis_client):
    await redis_client.rpush(
        "session:legacy",
        json.dumps({"role": "user", "content": "hi"}),
        json.dumps({"role": "bot", "content": "hello"}),
    )

    history = await redis_store.get_history("legacy")
    assert [t.role for t in history] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_string_record_is_reset_under_reset_policy(redis_store, redis_client):
    await redis_client.set("session:old", "[]")

    assert await redis_store.get_history("old") == []
    await redis_store.append_pair("old", Turn.user("q"), Turn.assistant("a"))

    assert await redis_client.type("session:old") == "list"
    assert len(await redis_store.get_history("old")) == 2


@pytest.mark.asyncio
async def test_string_record_fails_under_fail_policy(redis_client):
    store = SessionStore(RedisSessionBackend(redis_client), shape_policy="fail")
    await redis_client.set("session:old", "[]")

    with pytest.raises(StoreFailure):
        await store.append_pair("old", Turn.user("q"), Turn.assistant("a"))
    assert await redis_client.get("session:old") == "[]"


@pytest.mark.asyncio
async def test_delete(redis_store):
    sid = redis_store.create()
    await redis_store.append(sid, Turn.user("q"))

    assert await redis_store.delete(sid) is True
    assert await redis_store.delete(sid) is False
    assert await redis_store.get_history(sid) == []


@pytest.mark.asyncio
async def test_concurrent_pairs_stay_contiguous(redis_store):
    sid = redis_store.create()

    await asyncio.gather(*[
        redis_store.append_pair(sid, Turn.user(f"q{i}"), Turn.assistant(f"a{i}"))
        for i in range(5)
    ])

    history = await redis_store.get_history(sid)
    assert len(history) == 10
    for user, bot in zip(history[::2], history[1::2]):
        assert (user.role, bot.role) == ("user", "assistant")
        assert bot.content == "a" + user.content[1:]


@pytest.mark.asyncio
async def test_append_pair_returns_history_from_the_same_transaction(redis_store, redis_client):
    await redis_client.rpush("session:legacy", json.dumps({"role": "bot", "content": "welcome"}))

    history = await redis_store.append_pair("legacy", Turn.user("q"), Turn.assistant("a"))

    assert [(t.role, t.content) for t in history] == [
        ("assistant", "welcome"),
        ("user", "q"),
        ("assistant", "a"),
    ]


@pytest.mark.asyncio
async def test_unreadable_record_blocks_append(redis_store, redis_client):
    await redis_client.rpush("session:bad", "{not json")

    with pytest.raises(StoreFailure):
        await redis_store.append_pair("bad", Turn.user("q"), Turn.assistant("a"))

    assert await redis_client.lrange("session:bad", 0, -1) == ["{not json"]
