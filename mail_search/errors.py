"""
errors.py
---------

Exception hierarchy for the search pipeline.  Every error raised by
this package derives from :class:`MailSearchError` so callers can catch
the whole family at once, while the subclasses say which stage failed.
"""

from __future__ import annotations

from typing import Optional


class MailSearchError(Exception):
    """Base class for all errors raised by :mod:`mail_search`."""


class ConfigurationError(MailSearchError):
    """Invalid configuration, detected at startup."""


class SourceUnavailable(MailSearchError):
    """The email source could not be read or parsed."""


class VectorGenerationFailure(MailSearchError):
    """An embedding request failed.

    Parameters
    ----------
    message : str
        Human readable description.
    stage : str
        Which step issued the request, e.g. ``"query"`` or ``"batch"``.
    batch_index : int, optional
        Zero-based index of the failing batch when ``stage`` is
        ``"batch"``.
    """

    def __init__(self, message: str, *, stage: str, batch_index: Optional[int] = None) -> None:
        self.stage = stage
        self.batch_index = batch_index
        if batch_index is not None:
            message = f"{message} (stage={stage}, batch={batch_index})"
        else:
            message = f"{message} (stage={stage})"
        super().__init__(message)


class CacheWriteFailure(MailSearchError):
    """A vector could not be persisted to the cache store."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Failed to write cache entry {key}: {reason}")


class RerankerFailure(MailSearchError):
    """The external reranker failed or returned an unusable response."""
