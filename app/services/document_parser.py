"""
PDF text extraction service.

Extracts page text from raw PDF bytes with PyMuPDF and returns a
ParsedDocument with full_text and light metadata (page_count, title,
author, word_count).  Parsing is CPU-bound, so the async entry point runs
it in a worker thread.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


class ExtractionError(RuntimeError):
    """The bytes could not be turned into usable text."""


def is_pdf_bytes(data: bytes) -> bool:
    """True when *data* starts with the PDF magic number."""
    return data[:4] == PDF_MAGIC


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        full_text:  Complete text of the document, pages separated by blank lines.
        pages:      Per-page text in page order.
        metadata:   Dict with keys: page_count, title, author, word_count.
    """

    full_text: str
    pages: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses PDF bytes into a ParsedDocument."""

    async def parse_pdf(self, data: bytes) -> ParsedDocument:
        """
        Extract text from *data* without blocking the event loop.

        Raises:
            ExtractionError: Not a PDF, password-protected, or unreadable.
        """
        return await asyncio.to_thread(self.parse_pdf_sync, data)

    def parse_pdf_sync(self, data: bytes) -> ParsedDocument:
        if not is_pdf_bytes(data):
            raise ExtractionError("File is not a valid PDF.")

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(f"Cannot open PDF file: {exc}") from exc

        try:
            if doc.needs_pass:
                raise ExtractionError(
                    "PDF is password-protected. Please provide an unlocked copy."
                )

            pages: List[str] = []
            for page in doc:
                try:
                    pages.append(page.get_text("text") or "")
                except Exception as exc:
                    raise ExtractionError(
                        f"Failed to read page {page.number + 1}: {exc}"
                    ) from exc

            raw_meta = doc.metadata or {}
            full_text = "\n\n".join(p.strip() for p in pages if p.strip())
            metadata = {
                "page_count": doc.page_count,
                "title": raw_meta.get("title") or "",
                "author": raw_meta.get("author") or "",
                "word_count": len(full_text.split()),
            }
        finally:
            doc.close()

        logger.info(
            "Parsed PDF: %d pages, %d words",
            metadata["page_count"],
            metadata["word_count"],
        )
        return ParsedDocument(full_text=full_text, pages=pages, metadata=metadata)
