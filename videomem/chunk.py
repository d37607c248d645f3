"""
Text chunking for frame storage.

Splits raw text into bounded-size chunks, one per video frame. Sentence
boundaries are respected where possible; a sentence longer than the chunk
size falls back to fixed character windows, and only that fallback applies
the overlap.
"""

from __future__ import annotations

import logging
import re

from videomem.logging_utils import get_component_logger

# Sentence end (.?! followed by whitespace) or a blank-line paragraph break
_SENTENCE_BREAK = re.compile(r"(?<=[.?!])\s+|\n\s*\n+")


# ============================================================
# Helper Functions
# ============================================================


def split_sentences(text: str) -> list[str]:
    """Split text into stripped, non-empty sentences."""
    return [s.strip() for s in _SENTENCE_BREAK.split(text) if s and s.strip()]


def simple_chunk_text(text: str, chunk_size: int, overlap: int = 0) -> list[str]:
    """
    Split text into fixed-size character windows.

    Args:
        text: Text to split
        chunk_size: Window size in characters
        overlap: Characters shared by consecutive windows (< chunk_size)

    Returns:
        List of windows; the final one may be shorter than chunk_size
    """
    if not text or chunk_size <= 0:
        return []

    stride = max(1, chunk_size - overlap)
    windows = []
    start = 0
    while start < len(text):
        end = start + chunk_size
        windows.append(text[start:end])
        if end >= len(text):
            break
        start += stride
    return windows


def _clamp_overlap(chunk_size: int, overlap: int, logger: logging.Logger) -> int:
    if overlap < 0:
        return 0
    if overlap >= chunk_size:
        clamped = chunk_size // 2
        logger.warning(
            f"Overlap {overlap} >= chunk size {chunk_size}, clamping to {clamped}"
        )
        return clamped
    return overlap


# ============================================================
# Chunking
# ============================================================


def chunk_text(
    text: str,
    chunk_size: int,
    overlap: int = 0,
    *,
    logger: logging.Logger | None = None,
) -> list[str]:
    """
    Split text into sentence-aligned chunks of at most ``chunk_size`` characters.

    Sentences are accumulated greedily and joined with single spaces. A sentence
    that alone exceeds ``chunk_size`` flushes the pending chunk and is split by
    :func:`simple_chunk_text` with the given overlap.

    Args:
        text: Raw input text
        chunk_size: Target maximum chunk length in characters
        overlap: Character overlap used by the fixed-window fallback
        logger: Optional logger (default: videomem.chunk)

    Returns:
        Ordered list of non-empty chunks
    """
    log = get_component_logger("chunk", logger)

    if not text or not text.strip() or chunk_size <= 0:
        return []

    overlap = _clamp_overlap(chunk_size, overlap, log)

    stripped = text.strip()
    if len(stripped) <= chunk_size:
        return [stripped]

    chunks: list[str] = []
    current = ""

    for sentence in split_sentences(stripped):
        if len(sentence) > chunk_size:
            if current:
                chunks.append(current)
                current = ""
            for window in simple_chunk_text(sentence, chunk_size, overlap):
                window = window.strip()
                if window:
                    chunks.append(window)
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= chunk_size:
            current = candidate
        else:
            chunks.append(current)
            current = sentence

    if current:
        chunks.append(current)

    log.debug(f"Split {len(stripped)} chars into {len(chunks)} chunks")
    return chunks
