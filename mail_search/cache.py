"""
cache.py
--------

Persistent embedding cache.

Vectors are stored under a key derived from the exact text that was
embedded and the embedding model's name, so identical text under the
same model always maps to the same entry and an entry never has to be
invalidated.  :class:`EmbeddingCache` looks fragments up, sends the
misses to the vector generator in bounded batches and writes the new
vectors back.

Two stores are provided: :class:`JsonFileCacheStore`, which keeps one
JSON file per entry in a directory, and :class:`MemoryCacheStore` for
runs that should not touch the disk.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union, runtime_checkable

from .embedding import VectorGenerator, iter_batches
from .errors import CacheWriteFailure, VectorGenerationFailure
from .utils import Fragment, FragmentKey

logger = logging.getLogger(__name__)


def cache_key(text: str, model_name: str) -> str:
    """Return the content address of ``text`` embedded with ``model_name``."""
    digest = hashlib.sha256()
    digest.update(model_name.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(text.encode("utf-8"))
    return digest.hexdigest()


@runtime_checkable
class CacheStore(Protocol):
    """Key/value storage for vectors."""

    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def get(self, key: str) -> Optional[List[float]]:
        ...

    def put(self, key: str, vector: Sequence[float]) -> None:
        """Persist ``vector``; raises :class:`CacheWriteFailure` on error."""
        ...


class MemoryCacheStore:
    """Process-local store; entries vanish when the object does."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[float]] = {}

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def get(self, key: str) -> Optional[List[float]]:
        vector = self._entries.get(key)
        return list(vector) if vector is not None else None

    def put(self, key: str, vector: Sequence[float]) -> None:
        self._entries[key] = [float(value) for value in vector]

    def __len__(self) -> int:
        return len(self._entries)


class JsonFileCacheStore:
    """Directory of ``<key>.json`` files, one per cached vector.

    Writes go to a temporary file that is then renamed over the target,
    so concurrent writers of the same key never leave a partial file.
    """

    def __init__(self, directory: Union[str, Path], model_name: Optional[str] = None) -> None:
        self.directory = Path(directory)
        self.model_name = model_name
        self._opened = False

    def open(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._opened = True

    def close(self) -> None:
        self._opened = False

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[List[float]]:
        path = self._path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None
        vector = payload.get("embedding") if isinstance(payload, dict) else None
        if not isinstance(vector, list) or not vector:
            logger.warning("Ignoring malformed cache entry %s", path)
            return None
        return [float(value) for value in vector]

    def put(self, key: str, vector: Sequence[float]) -> None:
        if not self._opened:
            raise CacheWriteFailure(key, "store is not open")
        payload = {
            "key": key,
            "model": self.model_name,
            "embedding": [float(value) for value in vector],
        }
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh)
                os.replace(tmp_path, self._path_for(key))
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise CacheWriteFailure(key, str(exc)) from exc


class EmbeddingCache:
    """Resolve fragment vectors through a cache store.

    Parameters
    ----------
    generator : VectorGenerator
        Produces vectors for cache misses.
    store : CacheStore
        Where vectors are looked up and written.  The store's lifecycle
        is owned by the caller.
    batch_size : int, optional
        Maximum number of texts per ``embed_many`` call.  Defaults to 99.
    """

    def __init__(self, generator: VectorGenerator, store: CacheStore, *, batch_size: int = 99) -> None:
        self.generator = generator
        self.store = store
        self.batch_size = batch_size

    def key_for(self, fragment: Fragment) -> str:
        return cache_key(fragment.search_text, self.generator.model_name)

    def resolve(self, fragments: Sequence[Fragment]) -> Dict[FragmentKey, List[float]]:
        """Return a vector for every fragment, keyed by fragment identity.

        Misses are embedded in batches, in the order they were first
        seen; fragments with identical text share a single request.
        Vectors from batches that completed before a failure stay in
        the store.

        Raises
        ------
        VectorGenerationFailure
            If a batch request fails or returns the wrong number of
            vectors.
        """
        resolved: Dict[FragmentKey, List[float]] = {}
        pending: Dict[str, List[FragmentKey]] = {}
        pending_text: Dict[str, str] = {}
        for fragment in fragments:
            key = self.key_for(fragment)
            if key in pending:
                pending[key].append(fragment.key)
                continue
            vector = self.store.get(key)
            if vector is not None:
                resolved[fragment.key] = vector
                continue
            pending[key] = [fragment.key]
            pending_text[key] = fragment.search_text

        miss_keys = list(pending)
        logger.info(
            "Embedding cache: %d fragments, %d hits, %d texts to embed",
            len(fragments),
            len(resolved),
            len(miss_keys),
        )
        for batch_index, batch in iter_batches(miss_keys, self.batch_size):
            texts = [pending_text[key] for key in batch]
            try:
                vectors = self.generator.embed_many(texts)
            except Exception as exc:
                logger.error("Embedding batch %d failed: %s", batch_index, exc)
                raise VectorGenerationFailure(
                    f"Embedding request failed: {exc}", stage="batch", batch_index=batch_index
                ) from exc
            if len(vectors) != len(batch):
                raise VectorGenerationFailure(
                    f"Expected {len(batch)} vectors, got {len(vectors)}",
                    stage="batch",
                    batch_index=batch_index,
                )
            for key, vector in zip(batch, vectors):
                vector = [float(value) for value in vector]
                try:
                    self.store.put(key, vector)
                except CacheWriteFailure as exc:
                    logger.warning("%s; continuing without persisting", exc)
                for fragment_key in pending[key]:
                    resolved[fragment_key] = vector
        return resolved
