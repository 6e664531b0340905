"""
embedding.py
------------

This module defines the :class:`VectorGenerator` interface the
pipeline depends on and :class:`OpenAIEmbeddingModel`, an
implementation backed by OpenAI's embedding API.  It also provides
:func:`iter_batches`, the bounded batch iterator used when many texts
have to be embedded at once.

By isolating the embedding logic in its own module, you can swap in
other embedding models without touching the retrieval code.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple, TypeVar, runtime_checkable

from openai import OpenAI

from .config import load_env
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class VectorGenerator(Protocol):
    """Anything that turns text into fixed-length vectors."""

    model_name: str

    def embed_one(self, text: str) -> List[float]:
        ...

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts``; the result has the same length and order."""
        ...


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[Tuple[int, List[T]]]:
    """Yield ``(batch_index, batch)`` pairs of at most ``batch_size`` items.

    The iterator is lazy and finite; to start over call it again with
    the full sequence.
    """
    if batch_size <= 0:
        raise ConfigurationError(f"batch_size must be positive, got {batch_size}")
    for batch_index, start in enumerate(range(0, len(items), batch_size)):
        yield batch_index, list(items[start:start + batch_size])


class OpenAIEmbeddingModel:
    """Compute embeddings with OpenAI's embedding endpoint.

    Parameters
    ----------
    model_name : str, optional
        The name of the OpenAI embedding model.  Defaults to
        ``text-embedding-3-small``.
    openai_api_key : str, optional
        Explicit OpenAI API key.  If omitted, the ``OPENAI_API_KEY``
        environment variable is used.
    client : openai.OpenAI, optional
        Preconfigured client; when given the key and base URL are
        ignored.
    """

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        openai_api_key: Optional[str] = None,
        *,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model_name = model_name
        if client is None:
            load_env()
            api_key = openai_api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError("OpenAI API key not found; set OPENAI_API_KEY to enable embeddings.")
            base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1/")
            client = OpenAI(api_key=api_key, base_url=base_url)
        self._client = client

    def embed_one(self, text: str) -> List[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed multiple texts with a single API call.

        Exceptions from the OpenAI client propagate unchanged; callers
        add the context they need.
        """
        if not texts:
            return []
        logger.debug("Requesting %d embeddings from %s", len(texts), self.model_name)
        response = self._client.embeddings.create(model=self.model_name, input=list(texts))
        # The API returns items tagged with their input index
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]
