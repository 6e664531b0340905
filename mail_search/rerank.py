"""
rerank.py
---------

The reranker boundary.  The pipeline hands a capped list of fused
candidates to a :class:`Reranker` and uses whatever comes back as the
final ordering.  :class:`LLMReranker` implements the interface with an
OpenAI chat model that grades each candidate's relevance.
"""

from __future__ import annotations

import json
import logging
import os
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from openai import OpenAI

from .config import load_env
from .errors import ConfigurationError, RerankerFailure
from .utils import Fragment

logger = logging.getLogger(__name__)

RerankedItem = Tuple[Fragment, float]

SYSTEM_PROMPT = (
    "You judge how relevant email excerpts are to a search query. "
    "Reply with a JSON object of the form "
    '{"results": [{"index": <candidate index>, "score": <0 to 1>}]}, '
    "listing only the relevant candidates, most relevant first."
)


@runtime_checkable
class Reranker(Protocol):
    def rerank(
        self,
        candidates: Sequence[Fragment],
        query: str,
        context: Optional[str] = None,
    ) -> List[RerankedItem]:
        """Return a reordered subset of ``candidates`` with scores."""
        ...


class LLMReranker:
    """Rerank candidates with an OpenAI chat completion.

    Parameters
    ----------
    model : str, optional
        Chat model name.  Defaults to ``gpt-4o-mini``.
    client : openai.OpenAI, optional
        Preconfigured client.  When omitted one is created from
        ``OPENAI_API_KEY`` and ``OPENAI_BASE_URL``.
    """

    def __init__(self, model: str = "gpt-4o-mini", *, client: Optional[OpenAI] = None) -> None:
        self.model = model
        if client is None:
            load_env()
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError("OpenAI API key not found; set OPENAI_API_KEY to enable reranking.")
            base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1/")
            client = OpenAI(api_key=api_key, base_url=base_url)
        self._client = client

    def _build_messages(self, candidates: Sequence[Fragment], query: str, context: Optional[str]) -> List[dict]:
        blocks = []
        for index, fragment in enumerate(candidates):
            text = fragment.text.replace("\n", " ").strip()
            blocks.append(f"[{index}] Subject: {fragment.subject}\n{text}")
        user = f"Query: {query}\n\nCandidates:\n\n" + "\n\n".join(blocks)
        if context:
            user = f"Conversation so far:\n{context}\n\n{user}"
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]

    def rerank(
        self,
        candidates: Sequence[Fragment],
        query: str,
        context: Optional[str] = None,
    ) -> List[RerankedItem]:
        if not candidates:
            return []
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(candidates, query, context),
                temperature=0,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            logger.error("Rerank request failed: %s", exc)
            raise RerankerFailure(f"Rerank request failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        try:
            items = json.loads(content)["results"]
            parsed = [(int(item["index"]), float(item["score"])) for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise RerankerFailure(f"Unparsable rerank response: {content[:200]!r}") from exc

        seen = set()
        reranked: List[RerankedItem] = []
        for index, score in parsed:
            if index in seen or not 0 <= index < len(candidates):
                logger.warning("Dropping rerank entry with index %d", index)
                continue
            seen.add(index)
            reranked.append((candidates[index], score))
        reranked.sort(key=lambda item: item[1], reverse=True)
        logger.info("Reranked %d candidates down to %d", len(candidates), len(reranked))
        return reranked
