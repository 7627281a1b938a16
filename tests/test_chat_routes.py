from unittest.mock import AsyncMock

import pytest

from news_rag.core.errors import StoreFailure
from news_rag.corpus.index import CorpusIndex
from news_rag.embeddings.embedder import HashingEmbedder


async def _new_session(client):
    resp = await client.post("/session")
    assert resp.status_code == 200
    return resp.json()["sessionId"]


@pytest.mark.asyncio
async def test_create_session_returns_distinct_ids(client):
    assert await _new_session(client) != await _new_session(client)


@pytest.mark.asyncio
async def test_chat_returns_reply_and_history(client):
    sid = await _new_session(client)

    resp = await client.post("/chat", json={"sessionId": sid, "message": "Tell me about cats"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["reply"] == "answer: Tell me about cats"
    assert data["history"] == [
        {"role": "user", "content": "Tell me about cats"},
        {"role": "assistant", "content": "answer: Tell me about cats"},
    ]


@pytest.mark.asyncio
async def test_history_endpoint(client):
    sid = await _new_session(client)
    await client.post("/chat", json={"sessionId": sid, "message": "one"})
    await client.post("/chat", json={"sessionId": sid, "message": "two"})

    resp = await client.get(f"/history/{sid}")

    assert resp.status_code == 200
    assert [t["role"] for t in resp.json()] == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_history_of_unknown_session_is_empty(client):
    resp = await client.get("/history/unknown-session")
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_delete_session(client):
    sid = await _new_session(client)
    await client.post("/chat", json={"sessionId": sid, "message": "hello"})

    resp = await client.delete(f"/session/{sid}")
    assert resp.status_code == 200
    assert resp.json() == {"deleted": True}

    assert (await client.get(f"/history/{sid}")).json() == []

    resp = await client.delete(f"/session/{sid}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{}, {"sessionId": "abc"}, {"message": "hi"}, {"sessionId": "", "message": "hi"}],
)
async def test_chat_missing_fields_is_400(client, body):
    resp = await client.post("/chat", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_chat_malformed_body_is_400(client):
    resp = await client.post("/chat", json={"sessionId": ["not", "a", "string"], "message": "hi"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_chat_not_ready_is_503(client, orchestrator):
    orchestrator.index = CorpusIndex(HashingEmbedder())
    sid = await _new_session(client)

    resp = await client.post("/chat", json={"sessionId": sid, "message": "hello"})

    assert resp.status_code == 503
    assert resp.json()["error"] == "not_ready"
    assert "retry-after" in resp.headers
    assert (await client.get(f"/history/{sid}")).json() == []


@pytest.mark.asyncio
async def test_internal_failure_hides_details(client, orchestrator):
    orchestrator.generator = AsyncMock()
    orchestrator.generator.generate.side_effect = RuntimeError("secret stack detail")
    sid = await _new_session(client)

    resp = await client.post("/chat", json={"sessionId": sid, "message": "hello"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_server_error", "detail": "Internal server error"}


@pytest.mark.asyncio
async def test_history_store_failure_is_500(client, orchestrator):
    orchestrator.sessions = AsyncMock(wraps=orchestrator.sessions)
    orchestrator.sessions.get_history.side_effect = StoreFailure("redis down")

    resp = await client.get("/history/abc")
    assert resp.status_code == 500
    assert "redis" not in resp.text


@pytest.mark.asyncio
async def test_health_reports_corpus_state(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "corpus_ready": True, "corpus_size": 2}
