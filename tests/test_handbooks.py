"""Tests for handbook generation: helpers, the workflow and /api/handbooks."""
import math

import httpx
import pytest
from httpx import AsyncClient

from app.models.database_models import DocumentStatus, HandbookStatus
from app.services.chunking import TextChunk
from app.services.handbook import (
    FAILURE_MESSAGE,
    NO_CONTEXT_MESSAGE,
    ContextChunk,
    build_fallback_section,
    build_outline,
    clamp_target_words,
    title_from_prompt,
)
from app.utils.helpers import count_words
from tests.conftest import completion, make_llm, make_pdf

OWNER = "owner-1"


async def _indexed_document(container, filename="runbook.pdf", owner=OWNER):
    document = await container.documents.create(owner, filename, f"{owner}/{filename}", 100)
    texts = [
        "Deployments are gated by automated canary analysis and manual approval.",
        "Rollbacks restore the previous release within five minutes.",
    ]
    await container.chunks.replace_for_document(
        document.id,
        [TextChunk(chunk_index=i, content=t, token_count=len(t.split())) for i, t in enumerate(texts)],
    )
    await container.documents.transition(document.id, DocumentStatus.INDEXED, [DocumentStatus.UPLOADED])
    return document


async def _queued_handbook(container, prompt="Release Engineering", source_ids=(), target=3000):
    return await container.handbooks.create(
        owner_id=OWNER,
        title=title_from_prompt(prompt),
        prompt=prompt,
        target_words=target,
        source_document_ids=list(source_ids),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "requested, expected",
    [
        (None, 20000),
        (float("nan"), 20000),
        (float("inf"), 20000),
        (10, 3000),
        (1_000_000, 30000),
        (4500.9, 4500),
    ],
)
def test_clamp_target_words(requested, expected):
    assert clamp_target_words(requested) == expected


def test_title_from_prompt():
    assert title_from_prompt("  Incident Response  ") == "Incident Response"
    assert title_from_prompt("   ") == "Generated Handbook"
    long_prompt = "x" * 100
    assert title_from_prompt(long_prompt) == "x" * 77 + "..."


def test_outline_has_ten_sections():
    outline = build_outline("Observability")
    assert len(outline) == 10
    assert outline[0] == "Introduction to Observability"
    assert outline[-1] == "Reference Checklist and Next Steps"


def test_fallback_section_cycles_sources():
    context = [
        ContextChunk("d1", "a.pdf", 0, "alpha " * 300),
        ContextChunk("d1", "a.pdf", 1, "beta gamma"),
    ]
    section = build_fallback_section("Core Concepts", 300, context)
    paragraphs = section.split("\n\n")

    assert paragraphs[0] == "## Core Concepts"
    # remaining starts at max(500, 300) and drops by 140 per paragraph
    assert len(paragraphs) - 1 == math.ceil(500 / 140)
    assert "From a.pdf (chunk 0)" in paragraphs[1]
    assert "From a.pdf (chunk 1)" in paragraphs[2]
    assert paragraphs[1].count("alpha") == 160


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generation_without_documents_fails(container):
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.FAILED.value
    assert stored.error_message == NO_CONTEXT_MESSAGE
    assert stored.content is None


@pytest.mark.asyncio
async def test_generation_uses_fallback_without_remote_model(container):
    await _indexed_document(container)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.COMPLETED.value
    assert stored.error_message is None
    assert stored.content.startswith(
        "# Release Engineering\n\n"
        "Generated from uploaded documents for prompt: Release Engineering\n\n"
        "## Introduction to Release Engineering\n\n"
    )
    assert stored.generated_words == count_words(stored.content)
    for title in build_outline("Release Engineering"):
        assert f"## {title}" in stored.content


@pytest.mark.asyncio
async def test_generation_accepts_long_remote_sections(build):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return completion("grounded " * 200)

    container = build(make_llm(handler))
    await _indexed_document(container)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.COMPLETED.value
    assert len(calls) == 10
    assert "## Core Concepts and Definitions\n\ngrounded grounded" in stored.content
    assert "key takeaway" not in stored.content


@pytest.mark.asyncio
async def test_generation_rejects_short_remote_sections(build):
    # 300 words per section; anything under 150 words is replaced
    container = build(make_llm(lambda request: completion("too short")))
    await _indexed_document(container)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.COMPLETED.value
    assert "too short" not in stored.content
    assert "key takeaway" in stored.content


@pytest.mark.asyncio
async def test_generation_survives_remote_errors(build):
    container = build(make_llm(lambda request: httpx.Response(500, text="boom")))
    await _indexed_document(container)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_generation_respects_source_filter(container):
    await _indexed_document(container, "skipped.pdf")
    selected = await _indexed_document(container, "selected.pdf")
    handbook = await _queued_handbook(container, source_ids=["not-mine", selected.id])
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert "selected.pdf" in stored.content
    assert "skipped.pdf" not in stored.content


@pytest.mark.asyncio
async def test_terminal_status_is_not_overwritten(container):
    await _indexed_document(container)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    assert await container.handbooks.mark_failed(handbook.id, "late failure") is False
    assert await container.handbooks.mark_processing(handbook.id) is False

    # Running the workflow again is a no-op
    await container.handbook_service.process(handbook.id)
    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.COMPLETED.value
    assert stored.error_message is None


@pytest.mark.asyncio
async def test_failure_without_exception_message_is_recorded(container, monkeypatch):
    async def broken_context(*args, **kwargs):
        raise RuntimeError()

    monkeypatch.setattr(container.handbook_service, "build_generation_context", broken_context)
    handbook = await _queued_handbook(container)
    await container.handbook_service.process(handbook.id)

    stored = await container.handbooks.get(handbook.id)
    assert stored.status == HandbookStatus.FAILED.value
    assert stored.error_message == FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_failure_message_is_truncated(container):
    handbook = await _queued_handbook(container)
    assert await container.handbooks.mark_failed(handbook.id, "e" * 5000)
    stored = await container.handbooks.get(handbook.id)
    assert len(stored.error_message) == 3000


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_handbook_requires_prompt(client: AsyncClient, auth_headers):
    resp = await client.post("/api/handbooks/", json={"prompt": "  "}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Prompt is required."


@pytest.mark.asyncio
async def test_create_and_poll_handbook(client: AsyncClient, auth_headers, container):
    upload = await client.post(
        "/api/documents/",
        headers=auth_headers,
        files={"file": ("ops.pdf", make_pdf(["Paging policy: acknowledge alerts within five minutes."]), "application/pdf")},
    )
    assert upload.status_code == 201
    await container.runner.drain(timeout=10)

    resp = await client.post(
        "/api/handbooks/",
        json={"prompt": "On-call Operations", "targetWords": 1},
        headers=auth_headers,
    )
    assert resp.status_code == 202
    body = resp.json()
    assert body["message"] == "Handbook generation started."
    handbook = body["handbook"]
    assert handbook["status"] == "queued"
    assert handbook["target_words"] == 3000
    assert handbook["title"] == "On-call Operations"

    await container.runner.drain(timeout=30)

    resp = await client.get(f"/api/handbooks/{handbook['id']}", headers=auth_headers)
    assert resp.status_code == 200
    finished = resp.json()["handbook"]
    assert finished["status"] == "completed"
    assert finished["generated_words"] == count_words(finished["content"])

    listed = await client.get("/api/handbooks/", headers=auth_headers)
    assert [h["id"] for h in listed.json()["handbooks"]] == [handbook["id"]]


@pytest.mark.asyncio
async def test_create_handbook_without_documents_fails(client: AsyncClient, auth_headers, container):
    resp = await client.post(
        "/api/handbooks/", json={"prompt": "Empty", "title": "Custom"}, headers=auth_headers
    )
    assert resp.json()["handbook"]["title"] == "Custom"
    await container.runner.drain(timeout=10)

    handbook_id = resp.json()["handbook"]["id"]
    finished = (await client.get(f"/api/handbooks/{handbook_id}", headers=auth_headers)).json()["handbook"]
    assert finished["status"] == "failed"
    assert finished["error_message"] == NO_CONTEXT_MESSAGE


@pytest.mark.asyncio
async def test_get_missing_handbook(client: AsyncClient, auth_headers):
    resp = await client.get("/api/handbooks/unknown", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_handbook_ignores_non_numeric_target(client: AsyncClient, auth_headers):
    resp = await client.post(
        "/api/handbooks/",
        json={"prompt": "Incident Review", "targetWords": "lots"},
        headers=auth_headers,
    )
    assert resp.status_code == 202
    assert resp.json()["handbook"]["target_words"] == 20000
