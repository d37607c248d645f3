"""
Video memory encoder.

Collects text chunks, renders each as a QR frame, assembles the frames into a
video with ffmpeg and builds the matching index snapshot.

Usage:
    encoder = Encoder({"chunk_size": 512})
    encoder.add_text(long_text)
    encoder.add_pdf("paper.pdf")
    stats = encoder.build_video("memory.mp4", "memory_index")
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Iterable

from tqdm import tqdm

from videomem.chunk import chunk_text
from videomem.config import CodecConfig, ConfigLike, get_codec_parameters, resolve_config
from videomem.documents import extract_epub_text, extract_pdf_text
from videomem.embedding import Embedder, create_embedder
from videomem.exceptions import VideomemError
from videomem.ffmpeg_utils import encode_video
from videomem.index import IndexStore
from videomem.io import ensure_dir, frame_path
from videomem.logging_utils import get_component_logger
from videomem.qr import QRRenderError, encode_payload, fit_to_frame, render_qr
from videomem.schema import BuildStats


class BuildInProgressError(VideomemError):
    """build_video was called while another build was running."""


class Encoder:
    """Accumulates chunks and builds a video memory from them."""

    def __init__(
        self,
        config: ConfigLike = None,
        *,
        embedder: Embedder | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = resolve_config(config)
        self.logger = get_component_logger("encoder", logger)
        self.embedder = embedder or create_embedder(self.config.embedding, logger=self.logger)
        self.chunks: list[str] = []
        self.index: IndexStore | None = None
        self._build_lock = threading.Lock()

    # ============================================================
    # Input
    # ============================================================

    def add_text(self, text: str) -> int:
        """
        Chunk text and queue the chunks.

        Returns:
            Number of chunks added
        """
        if not text or not text.strip():
            self.logger.warning("Attempted to add empty text, skipping")
            return 0

        new_chunks = chunk_text(
            text, self.config.chunk_size, self.config.overlap, logger=self.logger
        )
        self.chunks.extend(new_chunks)
        self.logger.info(f"Added {len(new_chunks)} chunks (total: {len(self.chunks)})")
        return len(new_chunks)

    def add_chunks(self, chunks: Iterable[str]) -> int:
        """Queue pre-split chunks; blank ones are dropped."""
        new_chunks = [c for c in chunks if c and c.strip()]
        self.chunks.extend(new_chunks)
        return len(new_chunks)

    def add_pdf(self, path: Path | str) -> int:
        self.logger.info(f"Extracting text from PDF: {path}")
        return self.add_text(extract_pdf_text(path, self.logger))

    def add_epub(self, path: Path | str) -> int:
        self.logger.info(f"Extracting text from EPUB: {path}")
        return self.add_text(extract_epub_text(path, self.logger))

    def clear(self) -> None:
        self.chunks = []

    def get_stats(self) -> dict[str, Any]:
        total_chars = sum(len(c) for c in self.chunks)
        return {
            "total_chunks": len(self.chunks),
            "total_characters": total_chars,
            "avg_chunk_size": total_chars / len(self.chunks) if self.chunks else 0.0,
            "codec": self.config.codec,
            "supported_codecs": sorted(self.config.codec_parameters),
        }

    # ============================================================
    # Build
    # ============================================================

    def build_video(
        self,
        output_path: Path | str,
        index_base_path: Path | str | None = None,
        *,
        codec: str | None = None,
        show_progress: bool = False,
    ) -> BuildStats:
        """
        Build the video and index from all queued chunks.

        The queue is emptied when the build starts, whether or not it succeeds.

        Args:
            output_path: Path for the video file
            index_base_path: Index snapshot base path (default: config index.path)
            codec: Codec preset name (default: config codec)
            show_progress: Show a progress bar while rendering frames

        Returns:
            BuildStats for the build

        Raises:
            BuildInProgressError: If another build is running on this encoder
            ConfigurationError: If the codec preset is unknown
            FFmpegError: If video assembly fails
        """
        if not self._build_lock.acquire(blocking=False):
            raise BuildInProgressError("A build is already running on this encoder")

        try:
            chunks, self.chunks = self.chunks, []
            return self._build(chunks, output_path, index_base_path, codec, show_progress)
        finally:
            self._build_lock.release()

    def _new_index(self) -> IndexStore:
        dimension = self.config.embedding.dimension
        if dimension is None:
            dimension = getattr(self.embedder, "dimension", None)

        index = IndexStore.from_config(
            self.embedder,
            self.config.index,
            dimension,
            logger=get_component_logger("index"),
        )
        index.init()
        return index

    def _render_frames(
        self,
        chunks: list[str],
        frames_dir: Path,
        codec: CodecConfig,
        show_progress: bool,
    ) -> tuple[list[str], list[int]]:
        """Render one QR frame per chunk; returns the rendered texts and their frames."""
        texts: list[str] = []
        frames: list[int] = []

        for chunk in tqdm(chunks, desc="Rendering frames", disable=not show_progress):
            frame_number = len(frames)
            try:
                image = render_qr(
                    encode_payload(chunk, frame_number), self.config.qr, self.logger
                )
            except QRRenderError as e:
                self.logger.warning(f"Skipping chunk ({len(chunk)} chars): {e}")
                continue

            image = fit_to_frame(
                image,
                codec.frame_width,
                codec.frame_height,
                self.config.qr.back_color,
                self.logger,
            )
            image.save(frame_path(frames_dir, frame_number))
            texts.append(chunk)
            frames.append(frame_number)

        return texts, frames

    def _build(
        self,
        chunks: list[str],
        output_path: Path | str,
        index_base_path: Path | str | None,
        codec_name: str | None,
        show_progress: bool,
    ) -> BuildStats:
        codec = get_codec_parameters(self.config, codec_name)
        output_path = Path(output_path)
        index_base = Path(index_base_path or self.config.index.path)

        index = self._new_index()
        self.index = index

        video_start = time.perf_counter()
        texts: list[str] = []
        frames: list[int] = []

        frames_dir = Path(
            tempfile.mkdtemp(prefix="frames_", dir=ensure_dir(Path(self.config.temp_dir)))
        )
        try:
            if chunks:
                self.logger.info(f"Rendering {len(chunks)} chunks as QR frames")
                texts, frames = self._render_frames(chunks, frames_dir, codec, show_progress)

            if frames:
                encode_video(
                    frames_dir,
                    output_path,
                    codec,
                    ffmpeg_path=self.config.ffmpeg.path,
                    timeout=self.config.ffmpeg.timeout,
                    logger=self.logger,
                )
            else:
                self.logger.warning("No frames to encode, writing an empty video and index")
                ensure_dir(output_path.parent)
                output_path.write_bytes(b"")
            video_seconds = time.perf_counter() - video_start

            index_start = time.perf_counter()
            ids = index.add_chunks(texts, frames)
            index.persist(index_base)
            index_seconds = time.perf_counter() - index_start
        finally:
            shutil.rmtree(frames_dir, ignore_errors=True)

        self.logger.info(
            f"Built {output_path} with {len(frames)} frames, {len(ids)} indexed chunks"
        )
        return BuildStats(
            chunk_count=len(chunks),
            frame_count=len(frames),
            indexed_count=len(ids),
            video_path=str(output_path),
            index_path=str(index_base),
            video_gen_seconds=video_seconds,
            index_build_seconds=index_seconds,
        )
