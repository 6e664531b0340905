"""
chunking.py
-----------

Split email bodies into overlapping fragments small enough to embed.

Splitting is delegated to LangChain's recursive character splitter,
which tries paragraph breaks first, then line breaks, then word breaks
and finally falls back to cutting between characters.  Each fragment
carries the subject and addressing fields of its email so that it can
be scored and displayed on its own.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from .errors import ConfigurationError
from .utils import Email, Fragment

logger = logging.getLogger(__name__)

SEPARATORS: Sequence[str] = ("\n\n", "\n", " ", "")


class Chunker:
    """Turn emails into :class:`~mail_search.utils.Fragment` objects.

    Parameters
    ----------
    chunk_size : int, optional
        Maximum fragment length in characters.  Defaults to 1000.
    chunk_overlap : int, optional
        Number of characters carried from the end of one fragment into
        the start of the next.  Defaults to 100.

    Raises
    ------
    ConfigurationError
        If ``chunk_size`` is not positive or ``chunk_overlap`` is
        negative or not smaller than ``chunk_size``.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 100) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=list(SEPARATORS),
            length_function=len,
            strip_whitespace=False,
        )

    def split_text(self, text: str) -> List[str]:
        """Split raw text, keeping whitespace but dropping blank pieces."""
        if not text.strip():
            return []
        return [piece for piece in self._splitter.split_text(text) if piece.strip()]

    def chunk(self, email: Email) -> List[Fragment]:
        pieces = self.split_text(email.body)
        total = len(pieces)
        return [
            Fragment(
                email_id=email.id,
                subject=email.subject,
                text=piece,
                index=index,
                total_chunks=total,
                sender=email.sender,
                to=email.to,
                timestamp=email.timestamp,
            )
            for index, piece in enumerate(pieces)
        ]

    def chunk_all(self, emails: Iterable[Email]) -> List[Fragment]:
        """Chunk every email, keeping email order and fragment order."""
        fragments: List[Fragment] = []
        count = 0
        for email in emails:
            fragments.extend(self.chunk(email))
            count += 1
        logger.info("Split %d emails into %d fragments", count, len(fragments))
        return fragments
