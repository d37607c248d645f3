"""
Frame reading from a video artifact.

A VideoSession keeps one OpenCV capture open and serves repeated seek+read
calls. Frame ``n`` is read at playback position ``n / fps`` seconds.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path

import cv2
import numpy as np

from videomem.exceptions import VideomemError
from videomem.io import ensure_dir
from videomem.logging_utils import get_component_logger

DEFAULT_FPS = 30.0


class VideoReadError(VideomemError):
    """The video exists but cannot be opened for reading."""


class VideoSession:
    """
    Seekable frame reader over a video file or in-memory video bytes.

    Byte sources are written once to a temporary file that lives as long as
    the session.

    Usage:
        with VideoSession("memory.mp4") as session:
            frame = session.read_frame(12)
    """

    def __init__(
        self,
        source: Path | str | bytes,
        *,
        fps: float | None = None,
        fallback_fps: float = DEFAULT_FPS,
        temp_dir: Path | str | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = get_component_logger("video", logger)
        self._lock = threading.Lock()
        self._spill_path: Path | None = None
        self._capture: cv2.VideoCapture | None = None

        if isinstance(source, (bytes, bytearray)):
            path = self._spill(bytes(source), temp_dir)
        else:
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Video file not found: {path}")
        self.path = path

        capture = cv2.VideoCapture(str(path))
        if not capture.isOpened():
            capture.release()
            self._cleanup_spill()
            raise VideoReadError(f"Cannot open video: {path}")
        self._capture = capture

        reported_fps = capture.get(cv2.CAP_PROP_FPS)
        if fps is None:
            fps = reported_fps if reported_fps and reported_fps > 0 else fallback_fps
        self.fps = float(fps)
        self.frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)

        self.logger.debug(f"Opened {path} (fps={self.fps}, frames={self.frame_count})")

    def _spill(self, data: bytes, temp_dir: Path | str | None) -> Path:
        directory = ensure_dir(Path(temp_dir)) if temp_dir else None
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix="videomem_", suffix=".video")
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        self._spill_path = Path(tmp_path)
        return self._spill_path

    def _cleanup_spill(self) -> None:
        if self._spill_path is not None:
            self._spill_path.unlink(missing_ok=True)
            self._spill_path = None

    def read_frame(self, frame_number: int) -> np.ndarray | None:
        """
        Read one frame as a BGR array.

        Returns:
            The frame, or None if it cannot be read
        """
        if frame_number < 0:
            return None

        with self._lock:
            if self._capture is None:
                return None
            self._capture.set(cv2.CAP_PROP_POS_MSEC, frame_number / self.fps * 1000.0)
            ok, frame = self._capture.read()

        if not ok or frame is None:
            self.logger.debug(f"No image at frame {frame_number}")
            return None
        return frame

    def close(self) -> None:
        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
        self._cleanup_spill()

    def __enter__(self) -> VideoSession:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
