"""
Document text extraction (PDF, EPUB) via PyMuPDF.

Pages are joined with blank lines so the chunker sees paragraph breaks.
"""

from __future__ import annotations

import logging
from pathlib import Path

from videomem.logging_utils import get_component_logger

DOCUMENT_SUFFIXES = {".pdf", ".epub"}


def extract_document_text(path: Path | str, logger: logging.Logger | None = None) -> str:
    """
    Extract plain text from a PDF or EPUB file.

    Args:
        path: Path to the document
        logger: Logger for extraction progress (default: videomem.documents)

    Returns:
        Document text, pages separated by blank lines

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the suffix is not a supported document type
    """
    import fitz  # PyMuPDF

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")
    if path.suffix.lower() not in DOCUMENT_SUFFIXES:
        raise ValueError(f"Unsupported document type: {path.suffix}")

    pages = []
    with fitz.open(str(path)) as doc:
        for page in doc:
            text = page.get_text("text").strip()
            if text:
                pages.append(text)

    get_component_logger("documents", logger).info(
        f"Extracted {len(pages)} pages from {path.name}"
    )
    return "\n\n".join(pages)


def extract_pdf_text(path: Path | str, logger: logging.Logger | None = None) -> str:
    return extract_document_text(path, logger)


def extract_epub_text(path: Path | str, logger: logging.Logger | None = None) -> str:
    return extract_document_text(path, logger)
