"""
Vector index over chunk embeddings.

IndexStore owns two things: an approximate-nearest-neighbor graph mapping
chunk id -> embedding (faiss HNSW), and the metadata table mapping
chunk id -> IndexEntry (frame number, text length). Chunk text is never
stored here; it lives in the video frame the entry points at.

Snapshot layout (two co-located files sharing a base path):
    <base>.faiss      faiss native serialized graph
    <base>.meta.json  {"nextChunkId": int, "metadata": [[id, {id, frame, length}], ...]}

Usage:
    store = IndexStore(embedder, dimension=384)
    store.init()
    ids = store.add_chunks(["chunk one", "chunk two"], [0, 1])
    store.persist("out/memory_index")

    restored = IndexStore(embedder, dimension=384)
    restored.reload("out/memory_index")
    hits = restored.search("chunk", top_k=5)
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Protocol, Sequence

import faiss
import numpy as np
from pydantic import ValidationError

from videomem.config import IndexConfig
from videomem.embedding import Embedder
from videomem.exceptions import ConfigurationError, VideomemError
from videomem.io import (
    atomic_write_bytes,
    atomic_write_json,
    exists_nonempty,
    index_paths,
    load_json,
)
from videomem.logging_utils import get_component_logger
from videomem.schema import IndexEntry, SearchResult


class IndexCorruptionError(VideomemError):
    """A persisted index snapshot is missing, unreadable or inconsistent."""


class IndexNotInitializedError(VideomemError):
    """An operation needs a graph but init() or reload() has not run."""


# ============================================================
# ANN Graph
# ============================================================

_METRICS = {
    "cosine": faiss.METRIC_INNER_PRODUCT,
    "ip": faiss.METRIC_INNER_PRODUCT,
    "l2": faiss.METRIC_L2,
}


class AnnGraph(Protocol):
    """Owned approximate-nearest-neighbor structure keyed by chunk id."""

    dimension: int

    def add(self, chunk_id: int, vector: Sequence[float]) -> None: ...

    def search(self, vector: Sequence[float], k: int) -> list[tuple[int, float]]: ...

    def ids(self) -> list[int]: ...

    def count(self) -> int: ...

    def save(self, path: Path) -> None: ...


class FaissHNSWGraph:
    """
    HNSW graph with explicit int64 ids (faiss IndexIDMap2 over IndexHNSWFlat).

    Distances are reported so that lower is more similar and never negative:
    ``1 - similarity`` for cosine/ip, squared euclidean for l2.
    """

    def __init__(
        self,
        dimension: int,
        metric: str = "cosine",
        m: int = 16,
        ef_construction: int = 200,
        ef_search: int = 100,
        *,
        index: Any = None,
    ):
        if metric not in _METRICS:
            raise ConfigurationError(f"Unknown metric: {metric}. Valid: {sorted(_METRICS)}")

        self.dimension = dimension
        self.metric = metric

        if index is None:
            hnsw = faiss.IndexHNSWFlat(dimension, m, _METRICS[metric])
            hnsw.hnsw.efConstruction = ef_construction
            hnsw.hnsw.efSearch = ef_search
            index = faiss.IndexIDMap2(hnsw)
        self._index = index

    @classmethod
    def load(cls, path: Path, metric: str = "cosine", ef_search: int = 100) -> FaissHNSWGraph:
        """
        Load a graph written by :meth:`save`.

        Raises:
            IndexCorruptionError: If the file is unreadable or holds a
                different kind of index
        """
        data = Path(path).read_bytes()
        try:
            index = faiss.deserialize_index(np.frombuffer(data, dtype="uint8"))
        except RuntimeError as e:
            raise IndexCorruptionError(f"Unreadable graph snapshot {path}: {e}") from e

        if not isinstance(index, faiss.IndexIDMap2):
            raise IndexCorruptionError(
                f"Graph snapshot {path} holds {type(index).__name__}, expected IndexIDMap2"
            )
        if index.metric_type != _METRICS[metric]:
            raise IndexCorruptionError(f"Graph snapshot {path} was built with another metric")

        faiss.downcast_index(index.index).hnsw.efSearch = ef_search
        return cls(index.d, metric, index=index)

    def _prepare(self, vectors: np.ndarray) -> np.ndarray:
        x = np.ascontiguousarray(vectors, dtype="float32").reshape(-1, self.dimension)
        if self.metric == "cosine":
            faiss.normalize_L2(x)
        return x

    def add(self, chunk_id: int, vector: Sequence[float]) -> None:
        x = self._prepare(np.asarray(vector))
        self._index.add_with_ids(x, np.asarray([chunk_id], dtype="int64"))

    def search(self, vector: Sequence[float], k: int) -> list[tuple[int, float]]:
        """Return up to ``k`` (chunk_id, distance) pairs, nearest first."""
        total = self.count()
        if total == 0 or k <= 0:
            return []

        x = self._prepare(np.asarray(vector))
        scores, labels = self._index.search(x, min(k, total))

        hits = []
        for label, score in zip(labels[0], scores[0]):
            if label < 0:
                continue
            if self.metric == "l2":
                distance = float(score)
            else:
                distance = 1.0 - float(score)
            hits.append((int(label), max(0.0, distance)))
        return hits

    def ids(self) -> list[int]:
        return [int(i) for i in faiss.vector_to_array(self._index.id_map)]

    def count(self) -> int:
        return int(self._index.ntotal)

    def save(self, path: Path) -> None:
        atomic_write_bytes(Path(path), faiss.serialize_index(self._index).tobytes())


# ============================================================
# Index Store
# ============================================================


class IndexStore:
    """
    Chunk id -> (embedding, frame) index with persist/reload.

    Ids are assigned from 0 and never reused, including across a
    persist+reload cycle. ``add_chunks`` calls must be serialized by the caller.
    """

    def __init__(
        self,
        embedder: Embedder,
        dimension: int | None,
        metric: str | None = "cosine",
        *,
        m: int = 16,
        ef_construction: int = 200,
        ef_search: int = 100,
        max_elements: int = 10000,
        logger: logging.Logger | None = None,
    ):
        self.embedder = embedder
        self.dimension = dimension
        self.metric = metric
        self.m = m
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.max_elements = max_elements
        self.logger = get_component_logger("index", logger)

        self._graph: FaissHNSWGraph | None = None
        self._metadata: dict[int, IndexEntry] = {}
        self._next_chunk_id = 0

    @classmethod
    def from_config(
        cls,
        embedder: Embedder,
        config: IndexConfig,
        dimension: int | None,
        logger: logging.Logger | None = None,
    ) -> IndexStore:
        return cls(
            embedder,
            dimension,
            config.metric,
            m=config.m,
            ef_construction=config.ef_construction,
            ef_search=config.ef_search,
            max_elements=config.max_elements,
            logger=logger,
        )

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._graph is not None

    @property
    def next_chunk_id(self) -> int:
        return self._next_chunk_id

    def __len__(self) -> int:
        return len(self._metadata)

    def _check_settings(self) -> None:
        if not self.dimension or self.dimension <= 0:
            raise ConfigurationError("Index dimension must be a positive integer")
        if not self.metric:
            raise ConfigurationError("Index metric must be set")
        if self.metric not in _METRICS:
            raise ConfigurationError(f"Unknown metric: {self.metric}. Valid: {sorted(_METRICS)}")

    def init(self) -> None:
        """
        Create an empty graph.

        Raises:
            ConfigurationError: If dimension or metric is missing
        """
        if self._graph is not None:
            self.logger.warning("Index already initialized, ignoring init()")
            return

        self._check_settings()
        self._graph = FaissHNSWGraph(
            self.dimension,
            self.metric,
            m=self.m,
            ef_construction=self.ef_construction,
            ef_search=self.ef_search,
        )
        self.logger.debug(
            f"Initialized HNSW index (dim={self.dimension}, metric={self.metric}, m={self.m})"
        )

    def reset(self) -> None:
        """Drop the graph and all metadata; ids restart from 0."""
        self._graph = None
        self._metadata = {}
        self._next_chunk_id = 0

    # --------------------------------------------------------
    # Mutation
    # --------------------------------------------------------

    def add_chunks(self, texts: Sequence[str], frames: Sequence[int]) -> list[int]:
        """
        Embed and insert chunks.

        Args:
            texts: Chunk texts
            frames: Frame number for each text (same length as texts)

        Returns:
            Ids of the chunks actually inserted, in input order

        Raises:
            ValueError: If texts and frames differ in length
            IndexNotInitializedError: If the graph does not exist yet
        """
        if len(texts) != len(frames):
            raise ValueError(
                f"texts and frames must have equal length ({len(texts)} != {len(frames)})"
            )
        if not texts:
            return []
        if self._graph is None:
            raise IndexNotInitializedError("Call init() or reload() before add_chunks()")

        vectors = self.embedder.embed(list(texts))
        if len(vectors) != len(texts):
            self.logger.warning(
                f"Embedder returned {len(vectors)} vectors for {len(texts)} texts"
            )

        added: list[int] = []
        for text, frame, vector in zip(texts, frames, vectors):
            if len(vector) != self.dimension:
                self.logger.warning(
                    f"Skipping chunk for frame {frame}: embedding dimension "
                    f"{len(vector)} != {self.dimension}"
                )
                continue

            chunk_id = self._next_chunk_id
            self._next_chunk_id += 1

            try:
                self._graph.add(chunk_id, vector)
            except RuntimeError as e:
                self.logger.warning(f"Graph insert failed for chunk {chunk_id}: {e}")
                continue

            self._metadata[chunk_id] = IndexEntry(id=chunk_id, frame=int(frame), length=len(text))
            added.append(chunk_id)

        if len(self._metadata) > self.max_elements:
            self.logger.warning(
                f"Index holds {len(self._metadata)} entries, above max_elements={self.max_elements}"
            )

        self.logger.debug(f"Added {len(added)}/{len(texts)} chunks")
        return added

    # --------------------------------------------------------
    # Query
    # --------------------------------------------------------

    def search(self, query: str, top_k: int = 5) -> list[SearchResult]:
        """
        Find the chunks nearest to a query.

        Returns an empty list for an empty query, a non-positive ``top_k``,
        an uninitialized index, or an embedding failure.
        """
        if not query or not query.strip() or top_k <= 0:
            return []
        if self._graph is None:
            self.logger.warning("Search on an uninitialized index")
            return []

        try:
            vectors = self.embedder.embed([query])
        except Exception as e:
            self.logger.warning(f"Query embedding failed: {e}")
            return []

        if not vectors or len(vectors[0]) != self.dimension:
            self.logger.warning("Query embedding has the wrong dimension")
            return []

        results = []
        for chunk_id, distance in self._graph.search(vectors[0], top_k):
            entry = self._metadata.get(chunk_id)
            if entry is None:
                self.logger.warning(f"Chunk {chunk_id} found in graph but has no metadata")
                continue
            results.append(SearchResult(chunk_id=chunk_id, metadata=entry, distance=distance))
        return results

    def get_chunk_by_id(self, chunk_id: int) -> IndexEntry | None:
        return self._metadata.get(chunk_id)

    def entries(self) -> list[IndexEntry]:
        """All entries ordered by id."""
        return [self._metadata[i] for i in sorted(self._metadata)]

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_chunks": len(self._metadata),
            "next_chunk_id": self._next_chunk_id,
            "graph_count": self._graph.count() if self._graph is not None else 0,
            "dimension": self.dimension,
            "metric": self.metric,
            "max_elements": self.max_elements,
        }

    # --------------------------------------------------------
    # Persistence
    # --------------------------------------------------------

    def persist(self, base_path: Path | str) -> tuple[Path, Path]:
        """
        Write the graph and metadata snapshot.

        Returns:
            (graph_path, metadata_path)
        """
        if self._graph is None:
            raise IndexNotInitializedError("Nothing to persist: index not initialized")

        graph_path, meta_path = index_paths(base_path)
        self._graph.save(graph_path)
        atomic_write_json(
            meta_path,
            {
                "nextChunkId": self._next_chunk_id,
                "metadata": [[e.id, e.model_dump()] for e in self.entries()],
            },
        )
        self.logger.info(f"Persisted {len(self._metadata)} entries to {base_path}")
        return graph_path, meta_path

    def _read_metadata(self, meta_path: Path) -> tuple[int, dict[int, IndexEntry]]:
        try:
            data = load_json(meta_path)
        except (OSError, ValueError) as e:
            raise IndexCorruptionError(f"Unreadable metadata {meta_path}: {e}") from e

        if not isinstance(data, dict):
            raise IndexCorruptionError(f"Metadata {meta_path} must be a JSON object")

        next_id = data.get("nextChunkId")
        pairs = data.get("metadata")
        if not isinstance(next_id, int) or isinstance(next_id, bool) or next_id < 0:
            raise IndexCorruptionError(f"Metadata {meta_path} has an invalid nextChunkId")
        if not isinstance(pairs, list):
            raise IndexCorruptionError(f"Metadata {meta_path} has no metadata list")

        metadata: dict[int, IndexEntry] = {}
        for pair in pairs:
            if not isinstance(pair, list) or len(pair) != 2:
                raise IndexCorruptionError(f"Malformed metadata record: {pair!r}")
            key, raw = pair
            try:
                entry = IndexEntry.model_validate(raw)
            except ValidationError as e:
                raise IndexCorruptionError(f"Malformed metadata record: {pair!r}") from e
            if key != entry.id or key in metadata:
                raise IndexCorruptionError(f"Inconsistent metadata record for id {key!r}")
            metadata[key] = entry

        return next_id, metadata

    def reload(self, base_path: Path | str) -> None:
        """
        Restore state from a snapshot written by :meth:`persist`.

        Raises:
            IndexCorruptionError: If an artifact is missing, or the graph and
                metadata disagree on dimension, id set or next id
        """
        graph_path, meta_path = index_paths(base_path)
        for path in (graph_path, meta_path):
            if not exists_nonempty(path):
                raise IndexCorruptionError(f"Index artifact missing or empty: {path}")

        if not self.metric or self.metric not in _METRICS:
            raise ConfigurationError("Index metric must be set to reload")

        next_id, metadata = self._read_metadata(meta_path)
        graph = FaissHNSWGraph.load(graph_path, self.metric, self.ef_search)

        if self.dimension is None:
            self.dimension = graph.dimension
        elif graph.dimension != self.dimension:
            raise IndexCorruptionError(
                f"Graph dimension {graph.dimension} != configured {self.dimension}"
            )

        graph_ids = set(graph.ids())
        if graph_ids != set(metadata):
            raise IndexCorruptionError(
                f"Graph holds {len(graph_ids)} ids, metadata {len(metadata)}; id sets differ"
            )
        if metadata and next_id <= max(metadata):
            raise IndexCorruptionError(
                f"nextChunkId {next_id} does not exceed stored id {max(metadata)}"
            )

        self._graph = graph
        self._metadata = metadata
        self._next_chunk_id = next_id
        self.logger.info(f"Reloaded {len(metadata)} entries from {base_path}")


def distance_to_score(distance: float) -> float:
    """Map a non-negative distance to a (0, 1] display score."""
    if math.isnan(distance) or distance < 0:
        distance = 0.0
    return 1.0 / (1.0 + distance)
