"""Shared fixtures: a deterministic embedder and an in-memory video session."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path

import numpy as np
import pytest

from videomem.index import IndexStore
from videomem.qr import encode_payload, fit_to_frame, render_qr

DIMENSION = 64


class HashingEmbedder:
    """Bag-of-words embedder: each token hashes to one dimension."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls = 0

    def embed(self, texts):
        self.calls += 1
        vectors = []
        for text in texts:
            vec = [0.0] * self.dimension
            for token in re.findall(r"\w+", text.lower()):
                digest = hashlib.md5(token.encode("utf-8")).hexdigest()
                vec[int(digest, 16) % self.dimension] += 1.0
            norm = math.sqrt(sum(v * v for v in vec))
            if norm > 0:
                vec = [v / norm for v in vec]
            vectors.append(vec)
        return vectors


class FakeSession:
    """
    Stands in for VideoSession: frame n is a rendered QR of ``payloads[n]``.

    Frames without a payload read as None.
    """

    def __init__(self, payloads: dict[int, str]):
        self.payloads = payloads
        self.fps = 30.0
        self.frame_count = len(payloads)
        self.reads: list[int] = []
        self.closed = False
        self._images: dict[int, np.ndarray] = {}

    def read_frame(self, frame_number):
        self.reads.append(frame_number)
        if frame_number not in self.payloads:
            return None
        if frame_number not in self._images:
            image = fit_to_frame(render_qr(self.payloads[frame_number]), 400, 400)
            self._images[frame_number] = np.array(image)[:, :, ::-1].copy()
        return self._images[frame_number]

    def close(self):
        self.closed = True


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def base_config(tmp_path):
    return {
        "embedding": {"dimension": DIMENSION},
        "temp_dir": str(tmp_path / "tmp"),
    }


@pytest.fixture
def sample_texts():
    return [
        "The quick brown fox jumps over the lazy dog.",
        "Photosynthesis converts sunlight into chemical energy.",
        "The stock market closed higher on Friday.",
        "Neural networks learn representations from data.",
    ]


@pytest.fixture
def built_memory(tmp_path, embedder, sample_texts):
    """An index persisted at tmp_path/index plus the matching frame payloads."""
    store = IndexStore(embedder, DIMENSION)
    store.init()
    frames = list(range(len(sample_texts)))
    store.add_chunks(sample_texts, frames)
    base = tmp_path / "index"
    store.persist(base)
    payloads = {f: encode_payload(t, f) for f, t in zip(frames, sample_texts)}
    return base, payloads


def session_factory_for(session):
    """Wrap a prepared session as a Retriever session_factory."""
    calls = []

    def factory(source, **kwargs):
        calls.append((source, kwargs))
        return session

    factory.calls = calls
    return factory


@pytest.fixture
def make_factory():
    return session_factory_for


@pytest.fixture
def tmp_video(tmp_path) -> Path:
    path = tmp_path / "memory.mp4"
    path.write_bytes(b"placeholder")
    return path
