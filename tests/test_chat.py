"""Tests for the retrieval-grounded chat service and POST /api/chat/."""
import json

import httpx
import pytest
from httpx import AsyncClient

from app.models.database_models import DocumentStatus
from app.services.chat import NO_CONTENT_ANSWER
from app.services.chunking import TextChunk
from tests.conftest import completion, make_llm

OWNER = "owner-1"


async def _indexed_document(container, filename: str, texts, owner: str = OWNER, status=DocumentStatus.INDEXED):
    document = await container.documents.create(owner, filename, f"{owner}/{filename}", 100)
    await container.chunks.replace_for_document(
        document.id,
        [TextChunk(chunk_index=i, content=t, token_count=len(t.split())) for i, t in enumerate(texts)],
    )
    if status is not DocumentStatus.UPLOADED:
        await container.documents.transition(document.id, status, [DocumentStatus.UPLOADED])
    return document


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_answer_without_documents(container):
    result = await container.chat.answer(OWNER, "how do cats and dogs get along?")
    assert result.answer == NO_CONTENT_ANSWER
    assert result.sources == []
    assert result.used_model == "retrieval-fallback"


@pytest.mark.asyncio
async def test_answer_falls_back_without_remote_model(container):
    document = await _indexed_document(
        container, "pets.pdf", ["the cat sat", "dogs run fast", "cats and dogs"]
    )
    result = await container.chat.answer(OWNER, "cats dogs", top_k=1)

    assert result.used_model == "retrieval-fallback"
    assert [(s.document_id, s.chunk_index) for s in result.sources] == [(document.id, 2)]
    assert result.answer.startswith('Based on your uploaded content, here is the most relevant context for "cats dogs":')
    assert result.answer.endswith("cats and dogs")


@pytest.mark.asyncio
async def test_answer_uses_remote_model(build):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return completion("Cats and dogs coexist.")

    container = build(make_llm(handler))
    await _indexed_document(container, "pets.pdf", ["the cat sat", "dogs run fast", "cats and dogs"])

    result = await container.chat.answer(OWNER, "cats dogs")

    assert result.answer == "Cats and dogs coexist."
    assert result.used_model == "grok-test"
    assert len(result.sources) == 2
    assert captured["url"] == "https://llm.test/v1/chat/completions"
    messages = captured["body"]["messages"]
    assert messages[0]["role"] == "system"
    assert "retrieval-grounded assistant" in messages[0]["content"]
    assert messages[1]["content"].startswith("Question:\ncats dogs\n\nContext:\nContext 1 (pets.pdf, chunk 2):")


@pytest.mark.asyncio
async def test_answer_falls_back_when_remote_fails(build):
    container = build(make_llm(lambda request: httpx.Response(503, text="overloaded")))
    await _indexed_document(container, "pets.pdf", ["cats and dogs"])

    result = await container.chat.answer(OWNER, "dogs")
    assert result.used_model == "retrieval-fallback"
    assert len(result.sources) == 1


@pytest.mark.asyncio
async def test_answer_ignores_unowned_and_unindexed_documents(container):
    await _indexed_document(container, "theirs.pdf", ["cats and dogs"], owner="someone-else")
    pending = await _indexed_document(container, "pending.pdf", ["cats and dogs"], status=DocumentStatus.UPLOADED)

    result = await container.chat.answer(OWNER, "cats dogs", document_ids=[pending.id])
    assert result.sources == []
    assert result.answer == NO_CONTENT_ANSWER


@pytest.mark.asyncio
async def test_answer_filters_by_requested_documents(container):
    first = await _indexed_document(container, "a.pdf", ["kubernetes deployment rollout"])
    await _indexed_document(container, "b.pdf", ["kubernetes rollback procedure"])

    result = await container.chat.answer(OWNER, "kubernetes", document_ids=[first.id])
    assert {s.document_id for s in result.sources} == {first.id}


@pytest.mark.asyncio
async def test_answer_with_only_foreign_documents_has_no_context(container):
    await _indexed_document(container, "mine.pdf", ["kubernetes deployment rollout"])
    foreign = await _indexed_document(container, "theirs.pdf", ["kubernetes"], owner="someone-else")

    result = await container.chat.answer(OWNER, "kubernetes", document_ids=[foreign.id])
    assert result.sources == []
    assert result.answer == NO_CONTENT_ANSWER


@pytest.mark.asyncio
async def test_excerpt_is_truncated(container):
    long_text = "latency " * 100
    await _indexed_document(container, "perf.pdf", [long_text])

    result = await container.chat.answer(OWNER, "latency")
    assert result.sources[0].excerpt == long_text[:240]


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_requires_message(client: AsyncClient, auth_headers):
    resp = await client.post("/api/chat/", json={"message": "   "}, headers=auth_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_chat_endpoint_accepts_camel_case(client: AsyncClient, auth_headers):
    resp = await client.post(
        "/api/chat/",
        json={"message": "anything indexed?", "documentIds": ["missing"], "topK": 50},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body == {"answer": NO_CONTENT_ANSWER, "sources": [], "used_model": "retrieval-fallback"}


@pytest.mark.asyncio
async def test_chat_endpoint_truncates_fractional_top_k(client: AsyncClient, auth_headers):
    resp = await client.post(
        "/api/chat/",
        json={"message": "anything indexed?", "topK": 2.5},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["answer"] == NO_CONTENT_ANSWER
