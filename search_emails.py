"""CLI entry point to search the email archive."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from mail_search.config import SearchConfig
from mail_search.errors import MailSearchError
from mail_search.main import initialise_pipeline, search_emails


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search emails with keyword and semantic search.")
    parser.add_argument(
        "-k",
        "--keyword",
        action="append",
        dest="keywords",
        default=[],
        help="Exact keyword for BM25 search; repeat for several.",
    )
    parser.add_argument("-q", "--query", help="Natural language query for semantic search.")
    parser.add_argument("--data", help="Path to the email JSON file (default: from environment).")
    parser.add_argument("--cache-dir", help="Embedding cache directory (default: from environment).")
    parser.add_argument("--context", help="Conversation context passed to the reranker.")
    parser.add_argument("--no-rerank", action="store_true", help="Return the fused ranking without reranking.")
    parser.add_argument("--limit", type=int, help="Maximum number of results to print.")
    parser.add_argument("--json", action="store_true", help="Print results as JSON.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.keywords and not args.query:
        parser.error("give at least one --keyword or a --query")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SearchConfig.from_env()
        if args.data:
            config = replace(config, data_path=args.data)
        if args.cache_dir:
            config = replace(config, cache_dir=args.cache_dir)
        with initialise_pipeline(config, use_reranker=not args.no_rerank) as pipeline:
            results = search_emails(pipeline, args.keywords, args.query, context=args.context)
    except MailSearchError as exc:
        logging.getLogger(__name__).error("%s", exc)
        return 1

    if args.limit is not None:
        results = results[: args.limit]
    if args.json:
        print(json.dumps({"emails": [result.to_dict() for result in results]}, indent=2))
    else:
        for rank, result in enumerate(results, 1):
            snippet = result.text.replace("\n", " ").strip()
            print(f"{rank:2d}. [{result.score:.4f}] {result.email_id} {result.subject}")
            print(f"    {snippet[:200]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
