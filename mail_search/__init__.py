"""
Hybrid Email Search
===================

This package finds the email fragments most relevant to a query.  It
combines lexical (BM25) and embedding based retrieval, fuses the two
rankings with Reciprocal Rank Fusion (RRF) and optionally lets an LLM
rerank the fused candidates.

Modules
-------

- :mod:`chunking`: Splits email bodies into overlapping fragments.
- :mod:`embedding`: The vector generator interface and an OpenAI
  implementation.
- :mod:`cache`: Content addressed embedding cache and its stores.
- :mod:`hybrid_retrieval`: The lexical and semantic rankers.
- :mod:`rrf`: Reciprocal Rank Fusion over ranked fragment lists.
- :mod:`rerank`: The reranker interface and an OpenAI chat reranker.
- :mod:`utils`: Data containers, the JSON loader and exact filtering.
- :mod:`main`: :class:`SearchPipeline`, which ties everything together.

Example
-------

>>> from mail_search import SearchPipeline, SearchConfig
>>> with SearchPipeline.from_config(SearchConfig.from_env()) as pipeline:
...     for result in pipeline.search(["invoice"], "late payment reminders"):
...         print(result.email_id, result.subject, round(result.score, 3))
"""

from .cache import EmbeddingCache, JsonFileCacheStore, MemoryCacheStore, cache_key
from .chunking import Chunker
from .config import SearchConfig, load_env
from .embedding import OpenAIEmbeddingModel, VectorGenerator, iter_batches
from .errors import (
    CacheWriteFailure,
    ConfigurationError,
    MailSearchError,
    RerankerFailure,
    SourceUnavailable,
    VectorGenerationFailure,
)
from .hybrid_retrieval import LexicalRanker, SemanticRanker, bm25_scores
from .main import SearchPipeline, initialise_pipeline, search_emails
from .rerank import LLMReranker, Reranker
from .rrf import FusedResult, reciprocal_rank_fusion
from .utils import Email, Fragment, JsonEmailSource, ScoredCandidate, SearchResult, filter_emails, load_emails
