"""Page grouping over parsed entries, and the automatic page-break policy."""

from __future__ import annotations

from typing import Iterable, Sequence

from .codec import Entry, EntryKind
from .schema import PAGE_SIZE


def paginate(entries: Iterable[Entry]) -> list[list[Entry]]:
    """
    Group entries into pages separated by page breaks.

    Page breaks themselves are consumed. There is always at least one
    page, and a trailing page may be empty.
    """
    pages: list[list[Entry]] = [[]]
    for entry in entries:
        if entry.kind is EntryKind.PAGE_BREAK:
            pages.append([])
        else:
            pages[-1].append(entry)
    return pages


def count_since_last_break(entries: Sequence[Entry]) -> int:
    """Count entries after the last page break (or all of them if none)."""
    count = 0
    for entry in reversed(entries):
        if entry.kind is EntryKind.PAGE_BREAK:
            break
        count += 1
    return count


def should_paginate(entries: Sequence[Entry], page_size: int = PAGE_SIZE) -> bool:
    """Whether the next query should open a new page."""
    return count_since_last_break(entries) >= page_size
