"""Reusable validation and derivation helpers."""

from __future__ import annotations

import hashlib
import re
import secrets
import time
from typing import Iterable, Protocol

_WORD_SPLIT = re.compile(r"\s+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class _HasText(Protocol):
    text: str


class PageOrderError(ValueError):
    """Raised when page numbers are not contiguous starting at 1."""


def ensure_contiguous_pages(page_numbers: Iterable[int]) -> list[int]:
    """Validate that ``page_numbers`` is exactly ``1..n`` in order.

    Raises:
        PageOrderError: If a page is missing, duplicated or out of order.
    """

    actual = list(page_numbers)
    expected = list(range(1, len(actual) + 1))
    if actual != expected:
        raise PageOrderError(
            f"Page numbers must be contiguous starting at 1, got {actual}"
        )
    return actual


def count_words(pages: Iterable[_HasText]) -> int:
    return sum(len([word for word in _WORD_SPLIT.split(page.text) if word]) for page in pages)


def compute_text_hash(pages: Iterable[_HasText]) -> str:
    """Short digest of the story text, used to detect text edits."""

    joined = "|".join(page.text for page in pages)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


def generate_book_id() -> str:
    """Return an opaque identifier such as ``book_m1x2y3z4_9f8e7d6c``."""

    millis = int(time.time() * 1000)
    encoded = ""
    while millis:
        millis, remainder = divmod(millis, 36)
        encoded = _BASE36[remainder] + encoded
    return f"book_{encoded or '0'}_{secrets.token_hex(4)}"
