"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

import pytest

from mail_search.cache import MemoryCacheStore
from mail_search.utils import Email

VOCABULARY = ["alpha", "beta", "gamma", "delta", "invoice", "meeting", "budget", "note"]


class FakeEmbedder:
    """Deterministic bag-of-words embedder that records every request."""

    def __init__(self, model_name: str = "fake-embed", fail_on_call: Optional[int] = None) -> None:
        self.model_name = model_name
        self.fail_on_call = fail_on_call
        self.batches: List[List[str]] = []
        self.queries: List[str] = []

    @staticmethod
    def vector_for(text: str) -> List[float]:
        tokens = re.findall(r"\w+", text.lower())
        vector = [float(tokens.count(word)) for word in VOCABULARY]
        vector.append(0.1)
        return vector

    def embed_one(self, text: str) -> List[float]:
        self.queries.append(text)
        return self.vector_for(text)

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        if self.fail_on_call is not None and len(self.batches) == self.fail_on_call:
            self.batches.append(list(texts))
            raise RuntimeError("upstream unavailable")
        self.batches.append(list(texts))
        return [self.vector_for(text) for text in texts]

    @property
    def embedded_texts(self) -> List[str]:
        return [text for batch in self.batches for text in batch]


class StaticSource:
    def __init__(self, emails: Sequence[Email]) -> None:
        self.emails = list(emails)
        self.loads = 0

    def load(self) -> List[Email]:
        self.loads += 1
        return list(self.emails)


def make_email(email_id: str, body: str, subject: str = "note", **overrides) -> Email:
    fields: Dict[str, object] = {
        "id": email_id,
        "thread_id": f"thread-{email_id}",
        "sender": "alice@example.com",
        "to": "bob@example.com",
        "subject": subject,
        "body": body,
        "timestamp": "2024-01-01T00:00:00Z",
    }
    fields.update(overrides)
    return Email(**fields)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def sample_emails() -> List[Email]:
    return [
        make_email("e1", "The invoice for March is attached.", subject="Invoice March", sender="billing@acme.com"),
        make_email(
            "e2",
            "Can we move the budget meeting to Thursday?",
            subject="Budget meeting",
            sender="carol@example.com",
            to=("bob@example.com", "dave@example.com"),
            timestamp="2024-02-10T09:30:00Z",
        ),
        make_email(
            "e3",
            "Reminder: the invoice is overdue.",
            subject="Overdue",
            sender="billing@acme.com",
            timestamp="2024-03-05T12:00:00Z",
        ),
    ]
