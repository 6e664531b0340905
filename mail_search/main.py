"""
main.py
-------

High level entry point.  :class:`SearchPipeline` wires the chunker,
embedding cache, both rankers, rank fusion and the optional reranker
into a single ``search`` call.  A pipeline owns its cache store: the
store is opened when the pipeline is built and closed by
:meth:`SearchPipeline.close` (or on leaving a ``with`` block).

If you wish to integrate this into a larger application, feel free to
import the components from their modules directly and build your own
orchestration layer.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Protocol, Sequence

from .cache import CacheStore, EmbeddingCache, JsonFileCacheStore
from .chunking import Chunker
from .config import SearchConfig
from .embedding import OpenAIEmbeddingModel, VectorGenerator
from .errors import MailSearchError, RerankerFailure
from .hybrid_retrieval import LexicalRanker, LexicalScorer, SemanticRanker, bm25_scores
from .rerank import LLMReranker, Reranker
from .rrf import FusedResult, reciprocal_rank_fusion
from .utils import Email, JsonEmailSource, ScoredCandidate, SearchResult

logger = logging.getLogger(__name__)


class EmailSource(Protocol):
    def load(self) -> List[Email]:
        ...


def build_query(keywords: Optional[Sequence[str]], search_query: Optional[str]) -> str:
    """Combine keywords and the free-text query into the reranker query."""
    parts = [" ".join(keywords) if keywords else "", search_query or ""]
    return " ".join(part for part in parts if part)


class SearchPipeline:
    """Hybrid keyword + semantic search over an email archive.

    Parameters
    ----------
    source : EmailSource
        Provides the emails; read once per search.
    generator : VectorGenerator
        Embeds queries and fragments.
    store : CacheStore
        Backing store of the embedding cache.  Opened here.
    reranker : Reranker, optional
        Final relevance judge.  Without one the fused list is returned.
    chunk_size, chunk_overlap : int, optional
        Chunker settings.
    embed_batch_size : int, optional
        Maximum texts per embedding request.
    rerank_top_k : int, optional
        How many candidates each ranking contributes and how many fused
        candidates go to the reranker.
    result_limit : int, optional
        How many results to return when no reranker is used.
    lexical_scorer : callable, optional
        Keyword scoring primitive; BM25 by default.
    """

    def __init__(
        self,
        source: EmailSource,
        generator: VectorGenerator,
        store: CacheStore,
        *,
        reranker: Optional[Reranker] = None,
        chunk_size: int = 1000,
        chunk_overlap: int = 100,
        embed_batch_size: int = 99,
        rerank_top_k: int = 30,
        result_limit: int = 10,
        lexical_scorer: LexicalScorer = bm25_scores,
    ) -> None:
        self.source = source
        self.chunker = Chunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.store = store
        self.reranker = reranker
        self.rerank_top_k = rerank_top_k
        self.result_limit = result_limit
        self.cache = EmbeddingCache(generator, store, batch_size=embed_batch_size)
        self.lexical = LexicalRanker(lexical_scorer)
        self.semantic = SemanticRanker(generator, self.cache)
        self.store.open()

    @classmethod
    def from_config(cls, config: Optional[SearchConfig] = None, *, use_reranker: bool = True) -> "SearchPipeline":
        """Build a pipeline backed by OpenAI and a JSON file cache."""
        if config is None:
            config = SearchConfig.from_env()
        generator = OpenAIEmbeddingModel(config.embedding_model)
        reranker = LLMReranker(config.rerank_model) if use_reranker else None
        return cls(
            JsonEmailSource(config.data_path),
            generator,
            JsonFileCacheStore(config.cache_dir, model_name=config.embedding_model),
            reranker=reranker,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            embed_batch_size=config.embed_batch_size,
            rerank_top_k=config.rerank_top_k,
            result_limit=config.result_limit,
        )

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "SearchPipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _rank(self, keywords: Sequence[str], search_query: Optional[str], fragments) -> List[List[ScoredCandidate]]:
        if keywords and search_query:
            with ThreadPoolExecutor(max_workers=2) as pool:
                lexical = pool.submit(self.lexical.rank, keywords, fragments)
                semantic = pool.submit(self.semantic.rank, search_query, fragments)
                return [lexical.result(), semantic.result()]
        if keywords:
            return [self.lexical.rank(keywords, fragments)]
        if search_query:
            return [self.semantic.rank(search_query, fragments)]
        return []

    def fuse(
        self,
        keywords: Optional[Sequence[str]] = None,
        search_query: Optional[str] = None,
    ) -> List[FusedResult]:
        """Run both rankers and return the fused list, capped to ``rerank_top_k``."""
        keywords = [keyword for keyword in (keywords or []) if keyword.strip()]
        emails = self.source.load()
        fragments = self.chunker.chunk_all(emails)
        rankings = self._rank(keywords, search_query, fragments)
        fused = reciprocal_rank_fusion([ranking[: self.rerank_top_k] for ranking in rankings])
        return fused[: self.rerank_top_k]

    def search(
        self,
        keywords: Optional[Sequence[str]] = None,
        search_query: Optional[str] = None,
        *,
        context: Optional[str] = None,
        rerank: bool = True,
    ) -> List[SearchResult]:
        """Search the archive.

        Parameters
        ----------
        keywords : sequence of str, optional
            Exact terms for the BM25 pass.  The pass is skipped when
            empty.
        search_query : str, optional
            Natural language query for the semantic pass.  Skipped when
            empty.
        context : str, optional
            Conversation context forwarded to the reranker.
        rerank : bool
            Set to False to return the fused ranking even when a
            reranker is configured.

        Returns
        -------
        list of SearchResult
            Best results first.

        Raises
        ------
        MailSearchError
            ``SourceUnavailable``, ``VectorGenerationFailure`` or
            ``RerankerFailure``; nothing partial is returned.
        """
        candidates = self.fuse(keywords, search_query)
        if self.reranker is not None and rerank:
            query = build_query(keywords, search_query)
            try:
                reranked = self.reranker.rerank([result.fragment for result in candidates], query, context)
            except MailSearchError:
                raise
            except Exception as exc:
                raise RerankerFailure(f"Reranker failed: {exc}") from exc
            results = [SearchResult.from_scored(fragment, score) for fragment, score in reranked]
        else:
            results = [
                SearchResult.from_scored(result.fragment, result.score)
                for result in candidates
                if result.score > 0
            ][: self.result_limit]
        logger.info("Search returned %d results", len(results))
        return results


def initialise_pipeline(config: Optional[SearchConfig] = None, *, use_reranker: bool = True) -> SearchPipeline:
    """Thin wrapper around :meth:`SearchPipeline.from_config`."""
    return SearchPipeline.from_config(config, use_reranker=use_reranker)


def search_emails(
    pipeline: SearchPipeline,
    keywords: Optional[Sequence[str]] = None,
    search_query: Optional[str] = None,
    *,
    context: Optional[str] = None,
    rerank: bool = True,
) -> List[SearchResult]:
    """Thin wrapper around :meth:`SearchPipeline.search`."""
    return pipeline.search(keywords, search_query, context=context, rerank=rerank)
