"""
Handbook generation workflow.

Public API
----------
HandbookService.start_generation(owner_id, prompt, title, document_ids, target_words)
    → Handbook (queued), with the generation job submitted to the runner

HandbookService.process(handbook_id)
    queued → processing → completed | failed

A handbook is written as ten sections generated one after another.  Each
section asks the remote model first and falls back to a deterministic
source-quoting section when the model is unavailable, fails, or returns
too little text, so a handbook with indexed sources always completes.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Dict, List, Optional, Sequence

from app.models.database_models import Document, DocumentChunk, Handbook
from app.services.llm_client import ChatMessage, XaiChatClient
from app.services.records import (
    ChunkRepository,
    DocumentRepository,
    HandbookRepository,
)
from app.services.task_runner import BackgroundTaskRunner
from app.utils.helpers import count_words, truncate_text

logger = logging.getLogger(__name__)

MIN_TARGET_WORDS = 3000
MAX_TARGET_WORDS = 30000
DEFAULT_TARGET_WORDS = 20000

CONTEXT_CHUNK_LIMIT = 2000
GROUNDING_CHUNKS = 14
GROUNDING_CHARS = 1200

FALLBACK_MIN_WORDS = 500
FALLBACK_QUOTE_WORDS = 160
FALLBACK_WORDS_PER_PARAGRAPH = 140

ACCEPT_RATIO = 0.5
TITLE_MAX_CHARS = 80
DEFAULT_TITLE = "Generated Handbook"
TITLE_COLUMN_CHARS = 255

SECTION_SYSTEM_PROMPT = (
    "You generate long-form technical handbook sections. Stay grounded in "
    "provided sources and use clear headings and structured prose."
)

NO_CONTEXT_MESSAGE = "No indexed document content found for handbook generation."
FAILURE_MESSAGE = "Handbook generation failed"


class GenerationContextError(RuntimeError):
    """There is no indexed content to ground a handbook on."""


@dataclasses.dataclass(frozen=True)
class ContextChunk:
    """A chunk together with the filename of its document."""

    document_id: str
    filename: str
    chunk_index: int
    content: str


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def clamp_target_words(value: Optional[float]) -> int:
    """Clamp a requested word target to [3000, 30000]; missing or non-finite → 20000."""
    if value is None:
        return DEFAULT_TARGET_WORDS
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TARGET_WORDS
    if not math.isfinite(number):
        return DEFAULT_TARGET_WORDS
    return max(MIN_TARGET_WORDS, min(MAX_TARGET_WORDS, math.floor(number)))


def title_from_prompt(prompt: str) -> str:
    trimmed = prompt.strip()
    if not trimmed:
        return DEFAULT_TITLE
    return truncate_text(trimmed, TITLE_MAX_CHARS)


def build_outline(prompt: str) -> List[str]:
    return [
        f"Introduction to {prompt}",
        "Core Concepts and Definitions",
        "Architectural Foundations",
        "Implementation Patterns and Workflows",
        "Operational Practices and Observability",
        "Quality, Safety, and Reliability",
        "Case Studies and Practical Scenarios",
        "Advanced Techniques and Tradeoffs",
        "Common Failure Modes and Debugging",
        "Reference Checklist and Next Steps",
    ]


def section_target(target_words: int, section_count: int) -> int:
    return math.ceil(target_words / section_count)


def build_grounding(context: Sequence[ContextChunk]) -> str:
    """Labelled excerpts of the first few context chunks."""
    blocks = []
    for i, chunk in enumerate(context[:GROUNDING_CHUNKS], start=1):
        blocks.append(
            f"Source {i} ({chunk.filename}, chunk {chunk.chunk_index}):\n"
            f"{chunk.content[:GROUNDING_CHARS]}"
        )
    return "\n\n".join(blocks)


def build_fallback_section(
    section_title: str,
    section_words: int,
    context: Sequence[ContextChunk],
) -> str:
    """
    Deterministic section built from quoted source chunks.

    Paragraphs cycle through *context*, each quoting the first 160 words of a
    chunk, until roughly *section_words* words have been produced.
    """
    paragraphs = [f"## {section_title}"]
    if not context:
        return paragraphs[0]

    remaining = max(FALLBACK_MIN_WORDS, section_words)
    i = 0
    while remaining > 0:
        chunk = context[i % len(context)]
        quote = " ".join(chunk.content.split()[:FALLBACK_QUOTE_WORDS])
        paragraphs.append(
            f"This section explains {section_title.lower()} using the uploaded "
            f"material as the grounding source. From {chunk.filename} "
            f"(chunk {chunk.chunk_index}), the key takeaway is: {quote}. "
            "In practice, teams should turn these ideas into explicit requirements, "
            "design constraints and review criteria."
        )
        remaining -= FALLBACK_WORDS_PER_PARAGRAPH
        i += 1
    return "\n\n".join(paragraphs)


def assemble_handbook(title: str, prompt: str, sections: Sequence[str]) -> str:
    header = [
        f"# {title}",
        "",
        f"Generated from uploaded documents for prompt: {prompt}",
        "",
    ]
    return "\n".join(header + list(sections))


# ---------------------------------------------------------------------------
# HandbookService
# ---------------------------------------------------------------------------

class HandbookService:
    def __init__(
        self,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        handbooks: HandbookRepository,
        llm: XaiChatClient,
        runner: BackgroundTaskRunner,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._handbooks = handbooks
        self._llm = llm
        self._runner = runner

    async def start_generation(
        self,
        owner_id: str,
        prompt: str,
        title: Optional[str] = None,
        document_ids: Optional[Sequence[str]] = None,
        target_words: Optional[float] = None,
    ) -> Handbook:
        """
        Create a queued handbook and submit its generation job.

        Raises:
            ValueError: *prompt* is blank.
        """
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Prompt is required.")

        handbook = await self._handbooks.create(
            owner_id=owner_id,
            title=truncate_text((title or "").strip(), TITLE_COLUMN_CHARS) or title_from_prompt(prompt),
            prompt=prompt,
            target_words=clamp_target_words(target_words),
            source_document_ids=list(document_ids or []),
        )
        logger.info(
            "Handbook %s queued for user %s (target %d words)",
            handbook.id,
            owner_id,
            handbook.target_words,
        )
        self._runner.start("handbook", handbook.id, self.process(handbook.id))
        return handbook

    async def process(self, handbook_id: str) -> None:
        """Generate the handbook content; errors end the handbook as ``failed``."""
        if not await self._handbooks.mark_processing(handbook_id):
            return

        try:
            handbook = await self._handbooks.get(handbook_id)
            if handbook is None:
                raise LookupError(f"Handbook {handbook_id} not found")

            context = await self.build_generation_context(
                handbook.owner_id, handbook.source_document_ids or []
            )
            if not context:
                raise GenerationContextError(NO_CONTEXT_MESSAGE)

            outline = build_outline(handbook.prompt)
            per_section = section_target(handbook.target_words, len(outline))
            sections = []
            for section_title in outline:
                sections.append(
                    await self.generate_section(
                        handbook.prompt, section_title, per_section, context
                    )
                )

            content = assemble_handbook(handbook.title, handbook.prompt, sections)
            words = count_words(content)
            await self._handbooks.mark_completed(handbook_id, content, words)
            logger.info("Handbook %s completed: %d words", handbook_id, words)
        except Exception as exc:
            logger.exception("Handbook %s failed", handbook_id)
            await self._handbooks.mark_failed(handbook_id, str(exc) or FAILURE_MESSAGE)

    async def build_generation_context(
        self, owner_id: str, source_document_ids: Sequence[str]
    ) -> List[ContextChunk]:
        """Chunks of the owner's indexed documents, optionally restricted to *source_document_ids*."""
        documents = await self._documents.list_indexed_for_owner(owner_id)
        if source_document_ids:
            wanted = set(source_document_ids)
            documents = [d for d in documents if d.id in wanted]
        if not documents:
            return []

        by_id: Dict[str, Document] = {d.id: d for d in documents}
        rows: List[DocumentChunk] = await self._chunks.list_for_documents(
            list(by_id), limit=CONTEXT_CHUNK_LIMIT
        )
        return [
            ContextChunk(
                document_id=row.document_id,
                filename=by_id[row.document_id].filename,
                chunk_index=row.chunk_index,
                content=row.content,
            )
            for row in rows
        ]

    async def generate_section(
        self,
        prompt: str,
        section_title: str,
        section_words: int,
        context: Sequence[ContextChunk],
    ) -> str:
        """Remote section text when it is long enough, otherwise the local fallback."""
        user_prompt = (
            f"Handbook topic: {prompt}\n"
            f"Section: {section_title}\n"
            f"Target words for this section: {section_words}\n"
            "Write substantial, coherent content with practical detail.\n\n"
            f"Grounding context:\n{build_grounding(context)}"
        )
        result = await self._llm.generate([
            ChatMessage("system", SECTION_SYSTEM_PROMPT),
            ChatMessage("user", user_prompt),
        ])

        if result.ok:
            minimum = math.floor(section_words * ACCEPT_RATIO)
            if count_words(result.text) >= minimum:
                return f"## {section_title}\n\n{result.text.strip()}"
            logger.info(
                "Section %r too short (%d < %d words), using fallback",
                section_title,
                count_words(result.text),
                minimum,
            )
        else:
            logger.info("Section %r: remote %s, using fallback", section_title, result.status.value)

        return build_fallback_section(section_title, section_words, context)
