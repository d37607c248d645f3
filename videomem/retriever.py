"""
Semantic retrieval over a video memory.

Search flow: query -> IndexStore.search -> frame numbers -> FrameCache or
video session (seek, read, QR decode, decompress) -> payload JSON -> text.

Initialization (opening the video, reloading the index) runs in the
background; every public call waits for it and re-raises its failure.
Frames that cannot be read or parsed come back as sentinel strings rather
than exceptions.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from videomem.cache import FrameCache
from videomem.config import ConfigLike, get_codec_parameters, resolve_config
from videomem.embedding import Embedder, create_embedder
from videomem.exceptions import VideomemError
from videomem.index import IndexStore, distance_to_score
from videomem.io import ensure_dir
from videomem.logging_utils import get_component_logger
from videomem.qr import decode_qr, decompress_payload, parse_payload
from videomem.schema import RetrievalHit
from videomem.video import VideoReadError, VideoSession

NOT_READABLE = "[not readable]"
DECODE_ERROR = "[decode error]"

SessionFactory = Callable[..., Any]


class RetrieverInitError(VideomemError):
    """Background initialization of a Retriever failed."""


class Retriever:
    """
    Retrieves chunk text from a video memory.

    Usage:
        with Retriever("memory.mp4", "memory_index") as retriever:
            texts = retriever.search("what is delta?", top_k=5)
            hits = retriever.search_with_metadata("what is delta?")
    """

    def __init__(
        self,
        video_source: Path | str | bytes,
        index_base_path: Path | str | None = None,
        config: ConfigLike = None,
        *,
        embedder: Embedder | None = None,
        session_factory: SessionFactory = VideoSession,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the retriever and start loading in the background.

        Args:
            video_source: Video file path or the video's bytes
            index_base_path: Index snapshot base path (default: config index.path)
            config: Configuration overrides
            embedder: Query embedder (default: from config)
            session_factory: Callable opening a frame reader for the source
            logger: Optional logger (default: videomem.retriever)
        """
        self.config = resolve_config(config)
        self.logger = get_component_logger("retriever", logger)
        self.video_source = video_source
        self.index_base_path = Path(index_base_path or self.config.index.path)
        self.max_workers = self.config.retrieval.max_workers

        embedder = embedder or create_embedder(self.config.embedding, logger=self.logger)
        self.index = IndexStore.from_config(
            embedder,
            self.config.index,
            self.config.embedding.dimension,
            logger=get_component_logger("index", logger),
        )
        self.cache = FrameCache(self.config.retrieval.cache_size)

        self._session_factory = session_factory
        self._session: Any = None
        self._temp_dir: Path | None = None
        self._closed = False

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="videomem-retriever"
        )
        self._ready: Future[None] = self._executor.submit(self._initialize)

    # ============================================================
    # Initialization
    # ============================================================

    def _initialize(self) -> None:
        source = self.video_source
        try:
            if isinstance(source, (bytes, bytearray)):
                base = ensure_dir(Path(self.config.temp_dir))
                self._temp_dir = Path(tempfile.mkdtemp(prefix="retriever_", dir=base))

            try:
                self._session = self._session_factory(
                    source,
                    fallback_fps=get_codec_parameters(self.config).video_fps,
                    temp_dir=self._temp_dir,
                    logger=get_component_logger("video"),
                )
            except VideoReadError as e:
                self.logger.warning(f"{e}; frames will be reported as not readable")
                self._session = None

            self.index.reload(self.index_base_path)
        except (OSError, VideomemError) as e:
            self.logger.error(f"Failed to initialize retriever: {e}")
            raise RetrieverInitError(f"Failed to initialize retriever: {e}") from e

        self.logger.info(f"Retriever ready ({len(self.index)} chunks)")

    def wait_ready(self, timeout: float | None = None) -> None:
        """
        Block until initialization finishes.

        Raises:
            RetrieverInitError: If initialization failed
            TimeoutError: If ``timeout`` elapses first
        """
        self._ready.result(timeout=timeout)

    @property
    def is_ready(self) -> bool:
        return self._ready.done() and self._ready.exception() is None

    # ============================================================
    # Frame Decoding
    # ============================================================

    def _extract_and_decode(self, frame_number: int) -> str | None:
        """Read one frame and return its payload text (runs on worker threads)."""
        if self._session is None:
            return None

        image = self._session.read_frame(frame_number)
        if image is None:
            self.logger.warning(f"Frame {frame_number} could not be extracted")
            return None

        raw = decode_qr(image, self.logger)
        if raw is None:
            self.logger.warning(f"No QR code found in frame {frame_number}")
            return None

        return decompress_payload(raw, self.logger)

    def _decode_frame(self, frame_number: int) -> str | None:
        if frame_number in self.cache:
            return self.cache[frame_number]

        try:
            payload = self._extract_and_decode(frame_number)
        except Exception as e:
            self.logger.warning(f"Error decoding frame {frame_number}: {e}")
            payload = None

        self.cache.put(frame_number, payload)
        return payload

    def _decode_frames(self, frame_numbers: Iterable[int]) -> dict[int, str | None]:
        """
        Decode several frames, at most ``max_workers`` at a time.

        Results are written to the cache here, on the calling thread.
        """
        results: dict[int, str | None] = {}
        pending: list[int] = []

        for frame_number in dict.fromkeys(frame_numbers):
            if frame_number in self.cache:
                results[frame_number] = self.cache[frame_number]
            else:
                pending.append(frame_number)

        for start in range(0, len(pending), self.max_workers):
            group = pending[start : start + self.max_workers]
            futures = {self._executor.submit(self._extract_and_decode, f): f for f in group}

            for future in as_completed(futures):
                frame_number = futures[future]
                try:
                    payload = future.result()
                except Exception as e:
                    self.logger.warning(f"Error decoding frame {frame_number}: {e}")
                    payload = None
                results[frame_number] = payload
                self.cache.put(frame_number, payload)

        return results

    def _resolve_text(self, frame_number: int, payload: str | None) -> str:
        if payload is None:
            return NOT_READABLE
        try:
            return parse_payload(payload).text
        except ValidationError:
            self.logger.warning(
                f"Failed to parse payload from frame {frame_number}: {payload[:50]!r}"
            )
            return DECODE_ERROR

    # ============================================================
    # Public API
    # ============================================================

    def search(self, query: str, top_k: int = 5) -> list[str]:
        """
        Search for chunk text by semantic similarity.

        Returns:
            One text per hit, nearest first; unreadable frames give sentinels
        """
        self.wait_ready()
        results = self.index.search(query, top_k)
        decoded = self._decode_frames(r.metadata.frame for r in results)
        texts = [self._resolve_text(r.metadata.frame, decoded[r.metadata.frame]) for r in results]
        self.logger.info(f"Search returned {len(texts)} results for: {query[:50]!r}")
        return texts

    def search_with_metadata(self, query: str, top_k: int = 5) -> list[RetrievalHit]:
        """Search and return text with score, chunk id, frame and index entry."""
        self.wait_ready()
        results = self.index.search(query, top_k)
        decoded = self._decode_frames(r.metadata.frame for r in results)

        return [
            RetrievalHit(
                text=self._resolve_text(r.metadata.frame, decoded[r.metadata.frame]),
                score=distance_to_score(r.distance),
                chunk_id=r.chunk_id,
                frame=r.metadata.frame,
                metadata=r.metadata,
            )
            for r in results
        ]

    def get_chunk_by_id(self, chunk_id: int) -> str | None:
        """Get a chunk's text, or None if the id is not in the index."""
        self.wait_ready()
        entry = self.index.get_chunk_by_id(chunk_id)
        if entry is None:
            return None
        return self._resolve_text(entry.frame, self._decode_frame(entry.frame))

    def get_context_window(self, chunk_id: int, window_size: int = 2) -> list[str]:
        """Get the texts of chunks ``chunk_id - window_size .. chunk_id + window_size``."""
        self.wait_ready()
        entries = []
        for target_id in range(chunk_id - window_size, chunk_id + window_size + 1):
            entry = self.index.get_chunk_by_id(target_id)
            if entry is not None:
                entries.append(entry)
        decoded = self._decode_frames(e.frame for e in entries)
        return [self._resolve_text(e.frame, decoded[e.frame]) for e in entries]

    def prefetch_frames(self, frame_numbers: Iterable[int] | None = None) -> int:
        """
        Decode frames into the cache ahead of use.

        Args:
            frame_numbers: Frames to load (default: the first
                ``performance.prefetch_frames`` indexed frames)

        Returns:
            Number of frames that decoded to a payload
        """
        self.wait_ready()
        if frame_numbers is None:
            limit = self.config.performance.prefetch_frames
            frame_numbers = [e.frame for e in self.index.entries()[:limit]]

        to_fetch = [f for f in dict.fromkeys(frame_numbers) if f not in self.cache]
        if not to_fetch:
            return 0

        decoded = self._decode_frames(to_fetch)
        count = sum(1 for payload in decoded.values() if payload is not None)
        self.logger.info(f"Prefetched {count}/{len(to_fetch)} frames")
        return count

    def clear_cache(self) -> None:
        self.cache.clear()
        self.logger.info("Cleared frame cache")

    def get_stats(self) -> dict[str, Any]:
        self.wait_ready()
        session = self._session
        return {
            "video_source_type": "buffer" if isinstance(self.video_source, (bytes, bytearray)) else "path",
            "video_readable": session is not None,
            "fps": getattr(session, "fps", None),
            "total_frames": getattr(session, "frame_count", None),
            "cache_size": len(self.cache),
            "max_cache_size": self.cache.capacity,
            "cache_evictions": self.cache.evictions,
            "index_stats": self.index.get_stats(),
            "is_ready": self.is_ready,
        }

    # ============================================================
    # Resources
    # ============================================================

    def close(self) -> None:
        """Release the video session, worker threads and temporary files."""
        if self._closed:
            return
        self._closed = True

        self._executor.shutdown(wait=True)
        if self._session is not None:
            self._session.close()
            self._session = None
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            self._temp_dir = None

    def __enter__(self) -> Retriever:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
