"""
utils.py
--------

Data containers shared by the pipeline plus helpers for loading the
email archive from disk and filtering it on exact criteria.  Keeping
these in a separate module allows the loader to be swapped without
touching the ranking code.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)

Recipients = Union[str, Tuple[str, ...]]
FragmentKey = Tuple[str, int]


@dataclass(frozen=True)
class Email:
    """A single message from the archive.

    Attributes
    ----------
    id : str
        Unique message identifier.
    thread_id : str
        Identifier of the conversation the message belongs to.
    sender : str
        The ``from`` field.
    to : str or tuple of str
        One recipient or several.
    subject, body : str
        Message text.
    timestamp : str
        ISO 8601 timestamp; compared lexically when filtering.
    """

    id: str
    thread_id: str
    sender: str
    to: Recipients
    subject: str
    body: str
    timestamp: str
    cc: Tuple[str, ...] = ()
    in_reply_to: Optional[str] = None
    references: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()
    arc_id: Optional[str] = None
    phase_id: Optional[int] = None

    @property
    def recipients_text(self) -> str:
        if isinstance(self.to, str):
            return self.to
        return ", ".join(self.to)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Email":
        """Build an email from the archive's camelCase JSON object.

        Missing and ``null`` text fields both come back as ``""``.
        """
        to = payload.get("to") or ""
        if isinstance(to, list):
            to = tuple(to)
        return cls(
            id=str(payload["id"]),
            thread_id=str(payload.get("threadId") or ""),
            sender=payload.get("from") or "",
            to=to,
            subject=payload.get("subject") or "",
            body=payload.get("body") or "",
            timestamp=payload.get("timestamp") or "",
            cc=tuple(payload.get("cc") or ()),
            in_reply_to=payload.get("inReplyTo"),
            references=tuple(payload.get("references") or ()),
            labels=tuple(payload.get("labels") or ()),
            arc_id=payload.get("arcId"),
            phase_id=payload.get("phaseId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "body": self.body,
            "from": self.sender,
            "to": self.to if isinstance(self.to, str) else list(self.to),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Fragment:
    """A bounded slice of an email body with its position.

    ``index`` is zero based and always smaller than ``total_chunks``.
    Two fragments are the same ranking target only if both the email id
    and the index match, see :attr:`key`.
    """

    email_id: str
    subject: str
    text: str
    index: int
    total_chunks: int
    sender: str
    to: Recipients
    timestamp: str

    @property
    def key(self) -> FragmentKey:
        return (self.email_id, self.index)

    @property
    def search_text(self) -> str:
        """Text used for both lexical scoring and embedding."""
        return f"{self.subject} {self.text}"


@dataclass(frozen=True)
class ScoredCandidate:
    """A fragment and the score one ranker gave it."""

    fragment: Fragment
    score: float


@dataclass(frozen=True)
class SearchResult:
    """One record of the pipeline's output."""

    email_id: str
    subject: str
    text: str
    score: float
    fragment: Fragment

    @classmethod
    def from_scored(cls, fragment: Fragment, score: float) -> "SearchResult":
        return cls(
            email_id=fragment.email_id,
            subject=fragment.subject,
            text=fragment.text,
            score=float(score),
            fragment=fragment,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.email_id,
            "subject": self.subject,
            "body": self.text,
            "score": self.score,
            "chunk": self.fragment.index,
            "totalChunks": self.fragment.total_chunks,
        }


def load_emails(path: Union[str, Path], *, encoding: str = "utf-8") -> List[Email]:
    """Load the email archive from a JSON file.

    Parameters
    ----------
    path : str or Path
        File containing a JSON array of email objects.
    encoding : str, optional
        Text encoding of the file.

    Returns
    -------
    list of :class:`Email`
        Emails in file order.

    Raises
    ------
    SourceUnavailable
        If the file cannot be read, is not valid JSON, or does not hold
        an array of email objects.
    """
    file_path = Path(path)
    try:
        payload = json.loads(file_path.read_text(encoding=encoding))
    except OSError as exc:
        raise SourceUnavailable(f"Cannot read email archive {file_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SourceUnavailable(f"Email archive {file_path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise SourceUnavailable(f"Email archive {file_path} must contain a JSON array")
    try:
        emails = [Email.from_dict(item) for item in payload]
    except (KeyError, TypeError, AttributeError) as exc:
        raise SourceUnavailable(f"Malformed email record in {file_path}: {exc}") from exc
    logger.info("Loaded %d emails from %s", len(emails), file_path)
    return emails


class JsonEmailSource:
    """Email source backed by a JSON file, re-read on every ``load``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> List[Email]:
        return load_emails(self.path)


def filter_emails(
    emails: Sequence[Email],
    *,
    sender: Optional[str] = None,
    recipient: Optional[str] = None,
    contains: Optional[str] = None,
    before: Optional[str] = None,
    after: Optional[str] = None,
    limit: Optional[int] = 10,
) -> List[Email]:
    """Filter emails on exact criteria.

    ``sender``, ``recipient`` and ``contains`` are case-insensitive
    substring matches (``contains`` looks at subject and body).
    ``before`` and ``after`` are exclusive bounds compared against the
    ISO 8601 timestamp string.  At most ``limit`` emails are returned in
    archive order; ``None`` returns all matches.
    """
    filtered = list(emails)
    if sender:
        needle = sender.lower()
        filtered = [email for email in filtered if needle in email.sender.lower()]
    if recipient:
        needle = recipient.lower()
        filtered = [email for email in filtered if needle in email.recipients_text.lower()]
    if contains:
        needle = contains.lower()
        filtered = [
            email
            for email in filtered
            if needle in email.subject.lower() or needle in email.body.lower()
        ]
    if before:
        filtered = [email for email in filtered if email.timestamp < before]
    if after:
        filtered = [email for email in filtered if email.timestamp > after]
    if limit is not None:
        filtered = filtered[:limit]
    logger.info("Filtered emails: %d", len(filtered))
    return filtered
