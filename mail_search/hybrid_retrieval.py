"""
hybrid_retrieval.py
-------------------

The two independent rankers of the hybrid search:

- :class:`LexicalRanker`: BM25 over the fragment corpus, built on
  ``rank_bm25``.
- :class:`SemanticRanker`: cosine similarity between the query vector
  and fragment vectors resolved through the embedding cache.

Both return :class:`~mail_search.utils.ScoredCandidate` lists sorted by
descending score.  Ties keep the original fragment order, so running a
ranker twice on the same input gives the same order.  Scores from the
two rankers live on different scales and are only ever combined by
rank, see :mod:`mail_search.rrf`.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Callable, List, Sequence

import numpy as np  # type: ignore
from rank_bm25 import BM25Okapi  # type: ignore
from sklearn.metrics.pairwise import cosine_similarity  # type: ignore

from .cache import EmbeddingCache
from .embedding import VectorGenerator
from .errors import VectorGenerationFailure
from .utils import Fragment, ScoredCandidate

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

LexicalScorer = Callable[[Sequence[str], Sequence[str]], List[float]]


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


class _NonNegativeBM25(BM25Okapi):
    """BM25Okapi with the ``log(1 + (N - n + 0.5) / (n + 0.5))`` IDF.

    The stock Okapi IDF goes negative for terms present in more than
    half of the corpus, which would push matching fragments below
    non-matching ones on small archives.
    """

    def _calc_idf(self, nd):
        for word, freq in nd.items():
            self.idf[word] = math.log((self.corpus_size - freq + 0.5) / (freq + 0.5) + 1)
        # BM25Okapi._calc_idf also publishes the mean IDF
        self.average_idf = sum(self.idf.values()) / len(self.idf) if self.idf else 0.0


def bm25_scores(corpus: Sequence[str], keywords: Sequence[str]) -> List[float]:
    """Score every text in ``corpus`` against ``keywords`` with BM25.

    Returns one score per corpus entry, in corpus order.
    """
    if not corpus:
        return []
    query_tokens = [token for keyword in keywords for token in tokenize(keyword)]
    corpus_tokens = [tokenize(text) for text in corpus]
    if not query_tokens or not any(corpus_tokens):
        return [0.0] * len(corpus)
    bm25 = _NonNegativeBM25(corpus_tokens)
    return [float(score) for score in bm25.get_scores(query_tokens)]


def _sort_descending(fragments: Sequence[Fragment], scores: Sequence[float]) -> List[ScoredCandidate]:
    # sorted() is stable, so equal scores keep fragment order
    order = sorted(range(len(fragments)), key=lambda i: -scores[i])
    return [ScoredCandidate(fragment=fragments[i], score=float(scores[i])) for i in order]


class LexicalRanker:
    """Rank fragments by keyword relevance.

    Parameters
    ----------
    scorer : callable, optional
        ``scorer(corpus, keywords) -> scores``.  Defaults to
        :func:`bm25_scores`.
    """

    def __init__(self, scorer: LexicalScorer = bm25_scores) -> None:
        self.scorer = scorer

    def rank(self, keywords: Sequence[str], fragments: Sequence[Fragment]) -> List[ScoredCandidate]:
        corpus = [fragment.search_text for fragment in fragments]
        scores = self.scorer(corpus, list(keywords))
        if len(scores) != len(fragments):
            raise ValueError(f"Lexical scorer returned {len(scores)} scores for {len(fragments)} fragments")
        logger.info("Lexical ranking: %d fragments for keywords %s", len(fragments), list(keywords))
        return _sort_descending(fragments, scores)


class SemanticRanker:
    """Rank fragments by cosine similarity to the query.

    The query is embedded once per call and never cached; fragment
    vectors come from ``cache``.
    """

    def __init__(self, generator: VectorGenerator, cache: EmbeddingCache) -> None:
        self.generator = generator
        self.cache = cache

    def rank(self, query: str, fragments: Sequence[Fragment]) -> List[ScoredCandidate]:
        """Return fragments ordered by similarity to ``query``.

        Raises
        ------
        VectorGenerationFailure
            If the query cannot be embedded or any fragment is left
            without a vector.
        """
        if not fragments:
            return []
        try:
            query_vector = self.generator.embed_one(query)
        except Exception as exc:
            logger.error("Query embedding failed: %s", exc)
            raise VectorGenerationFailure(f"Query embedding failed: {exc}", stage="query") from exc

        vectors = self.cache.resolve(fragments)
        missing = [fragment.key for fragment in fragments if fragment.key not in vectors]
        if missing:
            raise VectorGenerationFailure(
                f"No vector resolved for {len(missing)} fragments, first {missing[0]}", stage="resolve"
            )

        matrix = np.asarray([vectors[fragment.key] for fragment in fragments], dtype="float64")
        query_matrix = np.asarray(query_vector, dtype="float64").reshape(1, -1)
        sims = np.clip(cosine_similarity(query_matrix, matrix)[0], -1.0, 1.0)
        logger.info("Semantic ranking: %d fragments", len(fragments))
        return _sort_descending(fragments, sims.tolist())
