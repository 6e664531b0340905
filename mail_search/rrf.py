"""
rrf.py
------

Reciprocal Rank Fusion (RRF) is a simple yet effective method for
combining ranked lists from multiple retrieval systems.  Each fragment
receives ``1 / (k + rank)`` from every list it appears in, with
``rank`` starting at 0 for the best item, and the contributions are
summed.  Only rank positions are used, so lists whose scores live on
incompatible scales (BM25 and cosine similarity) can be merged without
normalisation, and an empty list simply contributes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .utils import Fragment, FragmentKey, ScoredCandidate

RRF_K = 60


@dataclass(frozen=True)
class FusedResult:
    """A fragment and its summed rank contributions."""

    fragment: Fragment
    score: float


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[ScoredCandidate]],
    k: int = RRF_K,
    weights: Optional[Sequence[float]] = None,
) -> List[FusedResult]:
    """Fuse already sorted rankings into one list.

    Parameters
    ----------
    rankings : sequence of sequences of ScoredCandidate
        Each ranking is ordered best first.  All rankings refer to the
        same fragment universe.
    k : int, optional
        The RRF constant.  Defaults to 60.
    weights : sequence of floats, optional
        Multiplier for each ranking's contributions.  Must be the same
        length as ``rankings``; all rankings weigh 1.0 when omitted.

    Returns
    -------
    list of FusedResult
        One entry per distinct fragment identity, sorted by descending
        fused score.  Ties keep the order in which fragments were first
        encountered.
    """
    if weights is not None and len(weights) != len(rankings):
        raise ValueError("Length of weights must match number of rankings")
    if weights is None:
        weights = [1.0] * len(rankings)

    scores: Dict[FragmentKey, float] = {}
    fragments: Dict[FragmentKey, Fragment] = {}
    for ranking, weight in zip(rankings, weights):
        for rank, candidate in enumerate(ranking):
            key = candidate.fragment.key
            if key not in fragments:
                fragments[key] = candidate.fragment
            scores[key] = scores.get(key, 0.0) + weight / (k + rank)

    # dicts keep insertion order and sorted() is stable
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [FusedResult(fragment=fragments[key], score=score) for key, score in ordered]
