"""
Text chunking service for extracted document text.

Splitting strategy (in priority order):
  1. Primary   — by paragraph boundaries (blank lines)
  2. Secondary — by sentence boundaries when a paragraph exceeds CHUNK_SIZE tokens
  3. Last-resort — hard word-boundary split for a single oversized sentence

Chunks never overlap and never split inside a word, so joining every chunk's
content with single spaces gives back the source text with its whitespace
collapsed.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import List, Optional

from app.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Token counting (whitespace approximation — no external dependency)
# ---------------------------------------------------------------------------

def count_tokens(text: str) -> int:
    """Approximate token count via whitespace splitting (1 word ≈ 1 token)."""
    return len(text.split())


def normalize_whitespace(text: str) -> str:
    """Collapse every run of whitespace to a single space."""
    return " ".join(text.split())


# ---------------------------------------------------------------------------
# Text splitting helpers
# ---------------------------------------------------------------------------

def _split_paragraphs(text: str) -> List[str]:
    """Split on one or more blank lines."""
    parts = re.split(r"\n\s*\n", text)
    return [p.strip() for p in parts if p.strip()]


# Sentence boundary: end of sentence punctuation followed by whitespace and
# an uppercase letter (or opening quote/bracket before uppercase).
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z\"\(\[])")


def _split_sentences(text: str) -> List[str]:
    """
    Split text into sentences.

    Never breaks inside a sentence — the regex only fires on clear
    end-of-sentence signals (. ! ?) followed by a capital letter.
    """
    parts = _SENTENCE_RE.split(text)
    return [p.strip() for p in parts if p.strip()]


@dataclasses.dataclass(frozen=True)
class TextChunk:
    """One ordered span of a document."""

    chunk_index: int
    content: str
    token_count: int


# ---------------------------------------------------------------------------
# ChunkingService
# ---------------------------------------------------------------------------

class ChunkingService:
    """
    Produces bounded, ordered chunks from plain extracted text.

    Every chunk holds at most ``chunk_size`` tokens; the only exception is a
    single word longer than that, which is kept whole.
    """

    def __init__(self, chunk_size: Optional[int] = None) -> None:
        self.chunk_size = max(1, chunk_size or settings.CHUNK_SIZE)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_text(self, text: str) -> List[TextChunk]:
        """
        Chunk *text* into contiguous, 0-indexed segments.

        Empty or whitespace-only input produces an empty list.
        """
        if not text or not text.strip():
            return []

        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        pieces = [normalize_whitespace(p) for p in self._split_section(normalized)]

        result = [
            TextChunk(chunk_index=i, content=piece, token_count=count_tokens(piece))
            for i, piece in enumerate(p for p in pieces if p)
        ]
        logger.info("Created %d chunks from %d tokens", len(result), count_tokens(text))
        return result

    # ------------------------------------------------------------------
    # Core splitting logic
    # ------------------------------------------------------------------

    def _split_section(self, text: str) -> List[str]:
        """
        Split `text` until every chunk is ≤ chunk_size tokens.

        Strategy:
          1. If text fits in one chunk → return as-is
          2. Split on paragraph boundaries; accumulate until next paragraph
             would overflow → emit current chunk, then continue
          3. Paragraphs that are themselves oversized → sentence-split them
        """
        if count_tokens(text) <= self.chunk_size:
            return [text]

        paragraphs = _split_paragraphs(text)
        if not paragraphs:
            return [text]

        chunks: List[str] = []
        current_words: List[str] = []

        for para in paragraphs:
            if count_tokens(para) > self.chunk_size:
                # Flush accumulated words first
                if current_words:
                    chunks.append(" ".join(current_words))
                    current_words = []
                chunks.extend(self._split_by_sentences(para))
                continue

            if (
                current_words
                and len(current_words) + count_tokens(para) > self.chunk_size
            ):
                chunks.append(" ".join(current_words))
                current_words = []

            current_words.extend(para.split())

        if current_words:
            chunks.append(" ".join(current_words))

        return chunks if chunks else [text]

    def _split_by_sentences(self, text: str) -> List[str]:
        """
        Split `text` on sentence boundaries, accumulating until chunk_size.

        For individual sentences exceeding chunk_size a hard word-boundary
        split is used as a last resort to guarantee the size contract.
        """
        sentences = _split_sentences(text)
        if not sentences:
            return [text]

        chunks: List[str] = []
        current_words: List[str] = []

        for sent in sentences:
            sent_tokens = count_tokens(sent)

            if sent_tokens > self.chunk_size:
                # Sentence itself is too long — hard split on words
                if current_words:
                    chunks.append(" ".join(current_words))
                    current_words = []
                words = sent.split()
                for i in range(0, len(words), self.chunk_size):
                    chunks.append(" ".join(words[i: i + self.chunk_size]))
                continue

            if (
                current_words
                and len(current_words) + sent_tokens > self.chunk_size
            ):
                chunks.append(" ".join(current_words))
                current_words = []

            current_words.extend(sent.split())

        if current_words:
            chunks.append(" ".join(current_words))

        return chunks if chunks else [text]
