"""Tests for videomem/index.py (real faiss HNSW graph)."""

import gc
import json
import logging

import pytest

from conftest import DIMENSION, HashingEmbedder
from videomem.config import IndexConfig
from videomem.exceptions import ConfigurationError
from videomem.index import (
    FaissHNSWGraph,
    IndexCorruptionError,
    IndexNotInitializedError,
    IndexStore,
    distance_to_score,
)
from videomem.io import index_paths


class ShortVectorEmbedder(HashingEmbedder):
    """Returns a too-short vector for texts containing 'broken'."""

    def embed(self, texts):
        vectors = super().embed(texts)
        return [v[:3] if "broken" in t else v for t, v in zip(texts, vectors)]


class FailingEmbedder(HashingEmbedder):
    def embed(self, texts):
        raise RuntimeError("model unavailable")


@pytest.fixture
def store(embedder):
    s = IndexStore(embedder, DIMENSION)
    s.init()
    return s


class TestInit:
    def test_missing_dimension(self, embedder):
        with pytest.raises(ConfigurationError):
            IndexStore(embedder, None).init()

    def test_missing_metric(self, embedder):
        with pytest.raises(ConfigurationError):
            IndexStore(embedder, DIMENSION, None).init()

    def test_second_init_is_noop(self, store, sample_texts, caplog):
        store.add_chunks(sample_texts[:2], [0, 1])
        with caplog.at_level(logging.WARNING):
            store.init()
        assert "already initialized" in caplog.text
        assert len(store) == 2

    def test_add_before_init(self, embedder):
        with pytest.raises(IndexNotInitializedError):
            IndexStore(embedder, DIMENSION).add_chunks(["text"], [0])

    def test_from_config(self, embedder):
        s = IndexStore.from_config(embedder, IndexConfig(metric="l2", m=8), DIMENSION)
        assert s.metric == "l2"
        assert s.m == 8


class TestAddChunks:
    def test_ids_increase_from_zero(self, store, sample_texts):
        assert store.add_chunks(sample_texts, [0, 1, 2, 3]) == [0, 1, 2, 3]
        assert store.add_chunks(["another chunk"], [4]) == [4]
        assert store.next_chunk_id == 5

    def test_length_mismatch(self, store):
        with pytest.raises(ValueError):
            store.add_chunks(["a", "b"], [0])

    def test_empty_input(self, store, embedder):
        assert store.add_chunks([], []) == []
        assert embedder.calls == 0

    def test_single_embed_call(self, store, embedder, sample_texts):
        store.add_chunks(sample_texts, list(range(len(sample_texts))))
        assert embedder.calls == 1

    def test_dimension_mismatch_skips_item(self):
        s = IndexStore(ShortVectorEmbedder(), DIMENSION)
        s.init()
        ids = s.add_chunks(["good one", "broken item", "good two"], [0, 1, 2])
        assert ids == [0, 1]
        assert s.get_chunk_by_id(0).frame == 0
        assert s.get_chunk_by_id(1).frame == 2

    def test_entry_records_frame_and_length(self, store):
        store.add_chunks(["hello world"], [7])
        entry = store.get_chunk_by_id(0)
        assert entry.frame == 7
        assert entry.length == len("hello world")

    def test_capacity_hint_warns(self, embedder, caplog):
        s = IndexStore(embedder, DIMENSION, max_elements=1)
        s.init()
        with caplog.at_level(logging.WARNING):
            s.add_chunks(["one", "two"], [0, 1])
        assert "max_elements" in caplog.text
        assert len(s) == 2


class TestSearch:
    def test_exact_match_first(self, store, sample_texts):
        store.add_chunks(sample_texts, [10, 11, 12, 13])
        results = store.search(sample_texts[1], top_k=2)
        assert results[0].chunk_id == 1
        assert results[0].metadata.frame == 11
        assert results[0].distance == pytest.approx(0.0, abs=1e-5)

    def test_result_properties(self, store, sample_texts):
        store.add_chunks(sample_texts, [0, 1, 2, 3])
        results = store.search("fox dog market", top_k=3)
        assert len(results) <= 3
        distances = [r.distance for r in results]
        assert all(d >= 0 for d in distances)
        assert distances == sorted(distances)
        for r in results:
            assert r.metadata.id == r.chunk_id

    def test_top_k_larger_than_index(self, store, sample_texts):
        store.add_chunks(sample_texts, [0, 1, 2, 3])
        assert len(store.search("energy", top_k=50)) == 4

    @pytest.mark.parametrize("query,top_k", [("", 5), ("   ", 5), ("energy", 0), ("energy", -1)])
    def test_degenerate_queries(self, store, sample_texts, query, top_k):
        store.add_chunks(sample_texts, [0, 1, 2, 3])
        assert store.search(query, top_k) == []

    def test_empty_index(self, store):
        assert store.search("anything", 5) == []

    def test_embedding_failure(self):
        s = IndexStore(FailingEmbedder(), DIMENSION)
        s.init()
        assert s.search("query", 3) == []

    def test_l2_metric(self, embedder, sample_texts):
        s = IndexStore(embedder, DIMENSION, "l2")
        s.init()
        s.add_chunks(sample_texts, [0, 1, 2, 3])
        results = s.search(sample_texts[2], top_k=1)
        assert results[0].chunk_id == 2
        assert results[0].distance == pytest.approx(0.0, abs=1e-5)


class TestPersistReload:
    def test_round_trip(self, tmp_path, embedder, store, sample_texts):
        store.add_chunks(sample_texts, [0, 1, 2, 3])
        base = tmp_path / "idx"
        graph_path, meta_path = store.persist(base)
        assert graph_path.exists()
        assert meta_path.exists()

        before = store.search("chemical energy", 4)

        restored = IndexStore(embedder, DIMENSION)
        restored.reload(base)
        after = restored.search("chemical energy", 4)

        assert [r.chunk_id for r in after] == [r.chunk_id for r in before]
        assert [r.metadata for r in after] == [r.metadata for r in before]
        assert restored.next_chunk_id == 4

    def test_ids_continue_after_reload(self, tmp_path, embedder, store, sample_texts):
        store.add_chunks(sample_texts[:2], [0, 1])
        store.persist(tmp_path / "idx")

        restored = IndexStore(embedder, DIMENSION)
        restored.reload(tmp_path / "idx")
        assert restored.add_chunks(sample_texts[2:], [2, 3]) == [2, 3]

    def test_metadata_format(self, tmp_path, store):
        store.add_chunks(["alpha", "beta"], [0, 1])
        _, meta_path = store.persist(tmp_path / "idx")
        data = json.loads(meta_path.read_text())
        assert data["nextChunkId"] == 2
        assert data["metadata"] == [
            [0, {"id": 0, "frame": 0, "length": 5}],
            [1, {"id": 1, "frame": 1, "length": 4}],
        ]

    def test_empty_index_round_trip(self, tmp_path, embedder, store):
        store.persist(tmp_path / "empty")
        restored = IndexStore(embedder, DIMENSION)
        restored.reload(tmp_path / "empty")
        assert len(restored) == 0
        assert restored.search("anything", 3) == []

    def test_persist_uninitialized(self, tmp_path, embedder):
        with pytest.raises(IndexNotInitializedError):
            IndexStore(embedder, DIMENSION).persist(tmp_path / "idx")

    @pytest.mark.parametrize("which", [0, 1])
    def test_missing_artifact(self, tmp_path, embedder, store, which):
        store.add_chunks(["alpha"], [0])
        store.persist(tmp_path / "idx")
        index_paths(tmp_path / "idx")[which].unlink()

        with pytest.raises(IndexCorruptionError):
            IndexStore(embedder, DIMENSION).reload(tmp_path / "idx")

    def test_dimension_mismatch(self, tmp_path, store):
        store.add_chunks(["alpha"], [0])
        store.persist(tmp_path / "idx")

        with pytest.raises(IndexCorruptionError):
            IndexStore(HashingEmbedder(32), 32).reload(tmp_path / "idx")

    def test_dimension_adopted_when_unset(self, tmp_path, embedder, store):
        store.add_chunks(["alpha"], [0])
        store.persist(tmp_path / "idx")

        restored = IndexStore(embedder, None)
        restored.reload(tmp_path / "idx")
        assert restored.dimension == DIMENSION

    def test_id_set_mismatch(self, tmp_path, embedder, store):
        store.add_chunks(["alpha", "beta"], [0, 1])
        _, meta_path = store.persist(tmp_path / "idx")
        data = json.loads(meta_path.read_text())
        data["metadata"] = data["metadata"][:1]
        meta_path.write_text(json.dumps(data))

        with pytest.raises(IndexCorruptionError):
            IndexStore(embedder, DIMENSION).reload(tmp_path / "idx")

    def test_next_id_not_above_stored_ids(self, tmp_path, embedder, store):
        store.add_chunks(["alpha", "beta"], [0, 1])
        _, meta_path = store.persist(tmp_path / "idx")
        data = json.loads(meta_path.read_text())
        data["nextChunkId"] = 1
        meta_path.write_text(json.dumps(data))

        with pytest.raises(IndexCorruptionError):
            IndexStore(embedder, DIMENSION).reload(tmp_path / "idx")

    def test_malformed_metadata(self, tmp_path, embedder, store):
        store.add_chunks(["alpha"], [0])
        _, meta_path = store.persist(tmp_path / "idx")
        meta_path.write_text("{not json")

        with pytest.raises(IndexCorruptionError):
            IndexStore(embedder, DIMENSION).reload(tmp_path / "idx")

    def test_failed_reload_keeps_state(self, tmp_path, embedder, store):
        store.add_chunks(["alpha"], [0])
        store.persist(tmp_path / "idx")
        index_paths(tmp_path / "idx")[0].unlink()

        with pytest.raises(IndexCorruptionError):
            store.reload(tmp_path / "idx")
        assert len(store) == 1

    def test_metric_mismatch(self, tmp_path, embedder):
        s = IndexStore(embedder, DIMENSION, "l2")
        s.init()
        s.add_chunks(["alpha"], [0])
        s.persist(tmp_path / "idx")

        with pytest.raises(IndexCorruptionError):
            IndexStore(embedder, DIMENSION, "cosine").reload(tmp_path / "idx")


class TestGraph:
    def test_ids_and_count(self):
        graph = FaissHNSWGraph(4)
        graph.add(5, [1.0, 0.0, 0.0, 0.0])
        graph.add(9, [0.0, 1.0, 0.0, 0.0])
        assert graph.count() == 2
        assert sorted(graph.ids()) == [5, 9]
        assert graph.search([1.0, 0.0, 0.0, 0.0], 1)[0][0] == 5

    def test_load_keeps_graph_alive(self, tmp_path):
        graph = FaissHNSWGraph(4)
        graph.add(3, [1.0, 0.0, 0.0, 0.0])
        graph.add(7, [0.0, 0.0, 1.0, 0.0])
        graph.save(tmp_path / "g.faiss")

        loaded = FaissHNSWGraph.load(tmp_path / "g.faiss", ef_search=32)
        gc.collect()

        assert loaded.dimension == 4
        assert loaded.count() == 2
        assert sorted(loaded.ids()) == [3, 7]
        assert loaded.search([0.0, 0.0, 1.0, 0.0], 1)[0][0] == 7

    def test_unknown_metric(self):
        with pytest.raises(ConfigurationError):
            FaissHNSWGraph(4, "manhattan")

    def test_stats(self, store):
        store.add_chunks(["alpha"], [0])
        stats = store.get_stats()
        assert stats["total_chunks"] == 1
        assert stats["graph_count"] == 1
        assert stats["next_chunk_id"] == 1


def test_distance_to_score():
    assert distance_to_score(0.0) == 1.0
    assert distance_to_score(1.0) == 0.5
    assert 0 < distance_to_score(1e6) < 1
