"""
Retrieval-grounded chat over a user's indexed documents.

ChatService.answer(owner_id, message, document_ids=None, top_k=None) -> ChatAnswer

Chunks are ranked lexically (see retrieval.py) and the best ones are sent
to the remote model as context.  When nothing matches, or the model is not
available, a deterministic answer is returned and ``used_model`` is
``"retrieval-fallback"``.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Optional, Sequence

from app.models.database_models import Document, DocumentChunk
from app.services.llm_client import ChatMessage, XaiChatClient
from app.services.records import ChunkRepository, DocumentRepository
from app.services.retrieval import select_top_k, tokenize

logger = logging.getLogger(__name__)

CHAT_CHUNK_LIMIT = 1200
EXCERPT_CHARS = 240
FALLBACK_EXCERPT_CHARS = 1200
FALLBACK_MODEL = "retrieval-fallback"

CHAT_SYSTEM_PROMPT = (
    "You are a retrieval-grounded assistant. Answer only from the provided "
    "context. If context is insufficient, say what is missing."
)
NO_CONTENT_ANSWER = (
    "I could not find relevant indexed content for your question. "
    "Upload and index a PDF first."
)


@dataclasses.dataclass(frozen=True)
class ChatSource:
    document_id: str
    chunk_index: int
    excerpt: str


@dataclasses.dataclass
class ChatAnswer:
    answer: str
    sources: List[ChatSource]
    used_model: str


def fallback_answer(message: str, chunks: Sequence[DocumentChunk]) -> str:
    if not chunks:
        return NO_CONTENT_ANSWER
    excerpt = " ".join(c.content for c in chunks)[:FALLBACK_EXCERPT_CHARS].strip()
    return (
        f'Based on your uploaded content, here is the most relevant context for "{message}":'
        f"\n\n{excerpt}"
    )


class ChatService:
    def __init__(
        self,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        llm: XaiChatClient,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._llm = llm

    async def answer(
        self,
        owner_id: str,
        message: str,
        document_ids: Optional[Sequence[str]] = None,
        top_k: Optional[float] = None,
    ) -> ChatAnswer:
        """
        Answer *message* from the owner's indexed documents.

        Requested ids that are not owned or not indexed are dropped silently;
        if none remain, there is no context and the fixed no-content answer
        is returned.
        """
        documents = await self._documents.list_indexed_for_owner(owner_id)
        if document_ids:
            wanted = set(document_ids)
            documents = [d for d in documents if d.id in wanted]

        by_id: Dict[str, Document] = {d.id: d for d in documents}
        chunks = await self._chunks.list_for_documents(list(by_id), limit=CHAT_CHUNK_LIMIT)
        ranked = select_top_k(chunks, tokenize(message), top_k)

        if not ranked:
            logger.info("Chat: no matching chunks across %d document(s)", len(by_id))
            return ChatAnswer(answer=fallback_answer(message, []), sources=[], used_model=FALLBACK_MODEL)

        sources = [
            ChatSource(
                document_id=c.document_id,
                chunk_index=c.chunk_index,
                excerpt=c.content[:EXCERPT_CHARS],
            )
            for c in ranked
        ]
        context = "\n\n".join(
            f"Context {i} ({by_id[c.document_id].filename}, chunk {c.chunk_index}):\n{c.content}"
            for i, c in enumerate(ranked, start=1)
        )

        result = await self._llm.generate([
            ChatMessage("system", CHAT_SYSTEM_PROMPT),
            ChatMessage("user", f"Question:\n{message}\n\nContext:\n{context}"),
        ])
        if result.ok:
            return ChatAnswer(answer=result.text, sources=sources, used_model=result.model or "")

        logger.info("Chat: remote %s, answering from retrieved context", result.status.value)
        return ChatAnswer(
            answer=fallback_answer(message, ranked),
            sources=sources,
            used_model=FALLBACK_MODEL,
        )
