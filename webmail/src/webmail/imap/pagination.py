"""Newest-first page arithmetic over IMAP sequence numbers.

What:
  Translate a 1-based ``(page, limit)`` request into the inclusive message
  sequence range holding that page when the folder is read newest-first.

Why:
  IMAP numbers messages ``1..EXISTS`` oldest-first, while clients browse from
  the newest message backwards. Keeping the arithmetic in a pure function lets
  it be tested exhaustively without a server.

How:
  ``start = max(1, total - page*limit + 1)`` and
  ``end = max(1, total - (page-1)*limit)``; a range with ``start > end`` means
  the page is empty.

Interfaces:
  :func:`page_range`, :func:`sequence_set`.

Invariants & Safety:
  - A returned range never holds more than ``limit`` messages.
  - Page 1 covers the newest ``min(limit, total)`` messages.
  - Pages past the end are not an error. Because ``end`` is clamped to 1, the
    first page past the end of a short folder still yields ``(1, 1)``
    (``total=5, page=2, limit=20``); callers rely on that behaviour.
"""
from __future__ import annotations

from typing import Optional, Tuple


def page_range(total: int, page: int, limit: int) -> Optional[Tuple[int, int]]:
    """Return the inclusive ``(start, end)`` sequence range or ``None``.

    Args:
      total: Number of messages currently in the folder (``EXISTS``).
      page: 1-based page number.
      limit: Page size.

    Returns:
      ``(start, end)`` for a non-empty page, ``None`` when there is nothing to
      fetch.

    Raises:
      ValueError: If ``page`` or ``limit`` is below 1.
    """

    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    if total < 1:
        return None
    start = max(1, total - page * limit + 1)
    end = max(1, total - (page - 1) * limit)
    if start > end:
        return None
    return start, end


def sequence_set(bounds: Tuple[int, int]) -> str:
    """Render ``(start, end)`` as an IMAP sequence set such as ``36:55``."""

    start, end = bounds
    return f"{start}:{end}"
