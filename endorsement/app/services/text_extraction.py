"""
Visible certificate text extraction.

Extracts human-visible text from PDF page content streams with pypdf. The
tamper verifier compares this text, not the embedded metadata, against the
proof bundle; it is the snapshot of what a reader sees on the page.

IMPORTANT DESIGN CONSTRAINTS
----------------------------
- Extraction is deterministic. No OCR and no layout heuristics.
- Failure to extract text MUST NOT raise. An empty string is returned and
  the content cross-check then reports every field as missing.
"""

from __future__ import annotations

import io
import logging

import pypdf

logger = logging.getLogger("endorsement.text_extraction")


def extract_visible_text(pdf_bytes: bytes) -> str:
    """
    Extract visible text from every page, joined with newlines.

    Returns an empty string if no text is present or extraction fails.
    """
    try:
        reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))

        pages = []
        for page in reader.pages:
            text = page.extract_text()
            if text:
                pages.append(text)

        return "\n".join(pages).strip()

    except Exception as exc:
        logger.warning(
            "visible_text_extraction_failed",
            extra={"error": str(exc)},
        )
        return ""
