"""CLI utility to filter the email archive on exact criteria."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from mail_search.config import SearchConfig
from mail_search.errors import MailSearchError
from mail_search.utils import filter_emails, load_emails


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Filter emails by sender, recipient, text or date.")
    parser.add_argument("--from", dest="sender", help="Sender email/name (partial, case-insensitive).")
    parser.add_argument("--to", dest="recipient", help="Recipient email/name (partial, case-insensitive).")
    parser.add_argument("--contains", help="Text in subject or body (partial, case-insensitive).")
    parser.add_argument("--before", help="Only emails before this ISO 8601 timestamp.")
    parser.add_argument("--after", help="Only emails after this ISO 8601 timestamp.")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of emails to return (default: %(default)s).",
    )
    parser.add_argument("--data", help="Path to the email JSON file (default: from environment).")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        data_path = args.data or SearchConfig.from_env().data_path
        emails = load_emails(data_path)
    except MailSearchError as exc:
        logging.getLogger(__name__).error("%s", exc)
        return 1

    results = filter_emails(
        emails,
        sender=args.sender,
        recipient=args.recipient,
        contains=args.contains,
        before=args.before,
        after=args.after,
        limit=args.limit,
    )
    print(json.dumps({"emails": [email.to_dict() for email in results]}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
