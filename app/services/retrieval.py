"""
Lexical retrieval: query tokenization, term-overlap scoring and top-K selection.

Everything here is pure computation over chunks that were already fetched;
there are no embeddings.  The ranking is a coarse recall filter that bounds
how much context reaches the remote model.
"""
from __future__ import annotations

import math
import re
from typing import List, Optional, Protocol, Sequence, Tuple, TypeVar

DEFAULT_TOP_K = 6
MAX_TOP_K = 12

STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
    "it", "of", "on", "or", "that", "the", "to", "was", "were", "what", "when",
    "where", "which", "who", "why", "with", "you", "your",
})

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


class HasContent(Protocol):
    content: str


C = TypeVar("C", bound=HasContent)


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric tokens longer than two characters, stop-words removed."""
    cleaned = _NON_ALNUM_RE.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 2 and t not in STOPWORDS]


def score_chunk(content: str, query_tokens: Sequence[str]) -> int:
    """Count query tokens (duplicates included) found as substrings of *content*."""
    if not query_tokens:
        return 0
    text = content.lower()
    return sum(1 for token in query_tokens if token in text)


def clamp_top_k(k: Optional[float]) -> int:
    """Fractional values are truncated; missing or non-finite values use the default."""
    if k is None or not math.isfinite(k):
        return DEFAULT_TOP_K
    return max(1, min(int(k), MAX_TOP_K))


def rank_chunks(
    chunks: Sequence[C],
    query_tokens: Sequence[str],
    k: Optional[float] = None,
) -> List[Tuple[C, int]]:
    """
    Score *chunks*, drop zero scores and return the best ``clamp_top_k(k)``
    as ``(chunk, score)`` pairs.  Ties keep their input order.
    """
    scored = [(chunk, score_chunk(chunk.content, query_tokens)) for chunk in chunks]
    scored = [item for item in scored if item[1] > 0]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[: clamp_top_k(k)]


def select_top_k(
    chunks: Sequence[C],
    query_tokens: Sequence[str],
    k: Optional[float] = None,
) -> List[C]:
    """The chunks of :func:`rank_chunks`, without their scores."""
    return [chunk for chunk, _ in rank_chunks(chunks, query_tokens, k)]
