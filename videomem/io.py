"""
I/O utilities and artifact naming.

Provides path helpers for frame images and index snapshots, plus atomic
writes so a crash never leaves a half-written artifact behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

# ============================================================
# Artifact Layout Constants
# ============================================================

# Index snapshot: two co-located files sharing a base path
GRAPH_SUFFIX = ".faiss"
META_SUFFIX = ".meta.json"

# Frame naming pattern: frame_XXXXXX.png (also the ffmpeg input pattern)
FRAME_PATTERN = "frame_{index:06d}.png"
FFMPEG_FRAME_PATTERN = "frame_%06d.png"


# ============================================================
# Path Helpers
# ============================================================


def ensure_dir(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create

    Returns:
        The same path (for chaining)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def frame_path(frames_dir: Path, index: int) -> Path:
    """Get the path for the frame image at ``index``."""
    return frames_dir / FRAME_PATTERN.format(index=index)


def index_paths(base_path: Path | str) -> tuple[Path, Path]:
    """
    Get the two snapshot paths for an index base path.

    Args:
        base_path: Base path without suffix (e.g. "out/memory_index")

    Returns:
        (graph_path, metadata_path)
    """
    base = str(base_path)
    return Path(base + GRAPH_SUFFIX), Path(base + META_SUFFIX)


def exists_nonempty(path: Path) -> bool:
    """Check if a file exists and is non-empty."""
    return path.exists() and path.stat().st_size > 0


# ============================================================
# Atomic Write Operations
# ============================================================


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Atomically write bytes to a file.

    Writes to a temp file in the same directory first, then renames.
    """
    ensure_dir(path.parent)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    """Atomically write text to a file."""
    atomic_write_bytes(path, text.encode(encoding))


def atomic_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """
    Atomically write JSON data to a file.

    Args:
        path: Destination file path
        data: JSON-serializable data
        indent: JSON indentation level
    """
    text = json.dumps(data, ensure_ascii=False, indent=indent)
    atomic_write_text(path, text)


# ============================================================
# Read Operations
# ============================================================


def load_json(path: Path) -> Any:
    """Load JSON data from a file."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)
