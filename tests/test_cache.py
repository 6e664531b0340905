"""Tests for the embedding cache and its stores."""

import json
import logging
from typing import List, Sequence

import pytest

from conftest import FakeEmbedder, make_email
from mail_search.cache import EmbeddingCache, JsonFileCacheStore, MemoryCacheStore, cache_key
from mail_search.chunking import Chunker
from mail_search.errors import CacheWriteFailure, VectorGenerationFailure


def _fragments(*bodies: str):
    chunker = Chunker()
    return chunker.chunk_all([make_email(f"e{i}", body) for i, body in enumerate(bodies)])


class FailingStore(MemoryCacheStore):
    def put(self, key: str, vector: Sequence[float]) -> None:
        raise CacheWriteFailure(key, "disk full")


class TestCacheKey:
    def test_deterministic(self) -> None:
        assert cache_key("note alpha", "m1") == cache_key("note alpha", "m1")

    def test_depends_on_model_and_text(self) -> None:
        assert cache_key("note alpha", "m1") != cache_key("note alpha", "m2")
        assert cache_key("note alpha", "m1") != cache_key("note beta", "m1")


class TestEmbeddingCache:
    def test_misses_are_embedded_and_stored(self, embedder: FakeEmbedder, store: MemoryCacheStore) -> None:
        fragments = _fragments("alpha beta", "gamma")
        cache = EmbeddingCache(embedder, store)

        vectors = cache.resolve(fragments)

        assert set(vectors) == {fragment.key for fragment in fragments}
        assert embedder.batches == [["note alpha beta", "note gamma"]]
        assert len(store) == 2
        assert vectors[("e0", 0)] == FakeEmbedder.vector_for("note alpha beta")

    def test_second_resolve_hits_cache(self, embedder: FakeEmbedder, store: MemoryCacheStore) -> None:
        fragments = _fragments("alpha beta", "gamma")
        cache = EmbeddingCache(embedder, store)

        first = cache.resolve(fragments)
        second = cache.resolve(fragments)

        assert first == second
        assert len(embedder.batches) == 1

    def test_identical_text_embedded_once(self, embedder: FakeEmbedder, store: MemoryCacheStore) -> None:
        fragments = _fragments("alpha beta", "alpha beta", "gamma")
        cache = EmbeddingCache(embedder, store)

        vectors = cache.resolve(fragments)

        assert embedder.embedded_texts == ["note alpha beta", "note gamma"]
        assert vectors[("e0", 0)] == vectors[("e1", 0)]
        assert len(vectors) == 3

    def test_batches_are_bounded(self, embedder: FakeEmbedder, store: MemoryCacheStore) -> None:
        fragments = _fragments("alpha", "beta", "gamma", "delta", "invoice")
        cache = EmbeddingCache(embedder, store, batch_size=2)

        cache.resolve(fragments)

        assert [len(batch) for batch in embedder.batches] == [2, 2, 1]
        assert embedder.embedded_texts == [
            "note alpha",
            "note beta",
            "note gamma",
            "note delta",
            "note invoice",
        ]

    def test_failed_batch_keeps_earlier_writes(self, store: MemoryCacheStore) -> None:
        embedder = FakeEmbedder(fail_on_call=1)
        fragments = _fragments("alpha", "beta", "gamma", "delta")
        cache = EmbeddingCache(embedder, store, batch_size=2)

        with pytest.raises(VectorGenerationFailure) as excinfo:
            cache.resolve(fragments)

        assert excinfo.value.stage == "batch"
        assert excinfo.value.batch_index == 1
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert len(store) == 2
        assert store.get(cache_key("note alpha", embedder.model_name)) is not None

    def test_wrong_vector_count_is_fatal(self, store: MemoryCacheStore) -> None:
        class ShortEmbedder(FakeEmbedder):
            def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
                return super().embed_many(texts)[:-1]

        cache = EmbeddingCache(ShortEmbedder(), store)

        with pytest.raises(VectorGenerationFailure):
            cache.resolve(_fragments("alpha", "beta"))

    def test_cache_write_failure_is_not_fatal(self, embedder: FakeEmbedder, caplog) -> None:
        cache = EmbeddingCache(embedder, FailingStore())

        with caplog.at_level(logging.WARNING, logger="mail_search.cache"):
            vectors = cache.resolve(_fragments("alpha"))

        assert vectors[("e0", 0)] == FakeEmbedder.vector_for("note alpha")
        assert "disk full" in caplog.text

    def test_empty_input(self, embedder: FakeEmbedder, store: MemoryCacheStore) -> None:
        assert EmbeddingCache(embedder, store).resolve([]) == {}
        assert embedder.batches == []


class TestJsonFileCacheStore:
    def test_put_then_get(self, tmp_path) -> None:
        store = JsonFileCacheStore(tmp_path / "cache")
        store.open()

        store.put("abc", [0.5, 1.5])

        assert store.get("abc") == [0.5, 1.5]
        assert json.loads((tmp_path / "cache" / "abc.json").read_text())["embedding"] == [0.5, 1.5]

    def test_entry_records_model(self, tmp_path) -> None:
        store = JsonFileCacheStore(tmp_path, model_name="text-embedding-3-small")
        store.open()

        store.put("abc", [0.25])

        payload = json.loads((tmp_path / "abc.json").read_text())
        assert payload == {"key": "abc", "model": "text-embedding-3-small", "embedding": [0.25]}

    def test_missing_key(self, tmp_path) -> None:
        store = JsonFileCacheStore(tmp_path)
        store.open()

        assert store.get("nope") is None

    def test_corrupt_entry_is_a_miss(self, tmp_path, caplog) -> None:
        store = JsonFileCacheStore(tmp_path)
        store.open()
        (tmp_path / "bad.json").write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="mail_search.cache"):
            assert store.get("bad") is None
        assert "bad.json" in caplog.text

    def test_put_requires_open(self, tmp_path) -> None:
        store = JsonFileCacheStore(tmp_path)

        with pytest.raises(CacheWriteFailure):
            store.put("abc", [1.0])

    def test_persists_across_instances(self, tmp_path, embedder: FakeEmbedder) -> None:
        fragments = _fragments("alpha beta")
        first = JsonFileCacheStore(tmp_path)
        first.open()
        EmbeddingCache(embedder, first).resolve(fragments)
        first.close()

        second = JsonFileCacheStore(tmp_path)
        second.open()
        fresh = FakeEmbedder()
        EmbeddingCache(fresh, second).resolve(fragments)

        assert len(embedder.batches) == 1
        assert fresh.batches == []
