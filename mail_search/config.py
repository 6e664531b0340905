"""
config.py
---------

Environment based configuration.  Values are read from ``os.environ``
after a local ``.env`` file (if any) has been merged in; variables that
are already set in the environment take precedence over the file.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .errors import ConfigurationError

_ENV_LOADED = False

ENV_PREFIX = "MAIL_SEARCH_"


_ASSIGNMENT = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


def parse_env(text: str) -> Dict[str, str]:
    """Parse dotenv text into a mapping.

    Blank lines, ``#`` comments and lines that are not assignments are
    skipped.  Quoted values keep their content verbatim; unquoted values
    lose a trailing `` # comment``.  Later assignments win.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        match = _ASSIGNMENT.match(line.strip())
        if match is None:
            continue
        name, value = match.groups()
        if value[:1] in ("'", '"') and value.endswith(value[0]) and len(value) > 1:
            value = value[1:-1]
        else:
            value = value.split(" #", 1)[0].rstrip()
        values[name] = value
    return values


def load_env(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """Merge a ``.env`` file into ``os.environ``, once per process.

    Variables already present in the environment are left alone.  A
    missing or unreadable file counts as empty.  Returns the variables
    that were actually set.
    """
    global _ENV_LOADED
    if _ENV_LOADED:
        return {}
    _ENV_LOADED = True
    env_file = Path(path) if path is not None else Path(__file__).resolve().parents[1] / ".env"
    try:
        parsed = parse_env(env_file.read_text(encoding="utf-8"))
    except OSError:
        return {}
    applied = {name: value for name, value in parsed.items() if name not in os.environ}
    os.environ.update(applied)
    return applied


def _positive_int(env: Mapping[str, str], name: str, default: int, *, allow_zero: bool = False) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class SearchConfig:
    """Settings for one search pipeline.

    Attributes
    ----------
    data_path : str
        JSON file holding the email array.
    cache_dir : str
        Directory backing the embedding cache.
    embedding_model : str
        Embedding model name; also part of every cache key.
    rerank_model : str
        Chat model used by the LLM reranker.
    chunk_size, chunk_overlap : int
        Maximum fragment length and the overlap carried between
        consecutive fragments, in characters.
    embed_batch_size : int
        Maximum number of texts per embedding request.
    rerank_top_k : int
        Number of candidates kept from each ranking and handed to the
        reranker.
    result_limit : int
        Number of results surfaced when no reranker is used.
    """

    data_path: str = "data/emails.json"
    cache_dir: str = "data/embeddings"
    embedding_model: str = "text-embedding-3-small"
    rerank_model: str = "gpt-4o-mini"
    chunk_size: int = 1000
    chunk_overlap: int = 100
    embed_batch_size: int = 99
    rerank_top_k: int = 30
    result_limit: int = 10

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SearchConfig":
        """Build a configuration from ``MAIL_SEARCH_*`` variables.

        When ``env`` is omitted the ``.env`` file is loaded and
        ``os.environ`` is used.
        """
        if env is None:
            load_env()
            env = os.environ
        defaults = cls()
        return cls(
            data_path=env.get(ENV_PREFIX + "DATA_PATH") or defaults.data_path,
            cache_dir=env.get(ENV_PREFIX + "CACHE_DIR") or defaults.cache_dir,
            embedding_model=env.get(ENV_PREFIX + "EMBEDDING_MODEL") or defaults.embedding_model,
            rerank_model=env.get(ENV_PREFIX + "RERANK_MODEL") or defaults.rerank_model,
            chunk_size=_positive_int(env, "CHUNK_SIZE", defaults.chunk_size),
            chunk_overlap=_positive_int(env, "CHUNK_OVERLAP", defaults.chunk_overlap, allow_zero=True),
            embed_batch_size=_positive_int(env, "EMBED_BATCH_SIZE", defaults.embed_batch_size),
            rerank_top_k=_positive_int(env, "RERANK_TOP_K", defaults.rerank_top_k),
            result_limit=_positive_int(env, "RESULT_LIMIT", defaults.result_limit),
        )
