"""
Document parser.

A document is a title line, a metadata comment, a blank line and then
entry blocks. The parser cuts the text at every line that starts with
the "## " marker; the text before the first cut (title and metadata) is
the preamble and never yields an entry.

Only blocks that decode to a known kind are numbered. Index n is the
n-th decodable block, so unknown or empty blocks never shift the
numbering. The store resolves indices with the same functions, which is
what keeps reads and mutations pointing at the same entry.

Content that itself contains a line starting with "## " is cut there
too; the tail becomes a separate (usually unknown) block.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from .codec import Entry, decode
from .schema import DATABASE_COMMENT_PATTERN, HEADER_MARKER, TITLE_MARKER

_BLOCK_START = re.compile(rf"^(?={re.escape(HEADER_MARKER)})", re.MULTILINE)
_DATABASE_COMMENT = re.compile(DATABASE_COMMENT_PATTERN)


@dataclass
class Block:
    """A raw slice of a document, marker included."""

    text: str
    start: int
    end: int


def split_blocks(document: str) -> tuple[str, list[Block]]:
    """
    Cut a document into its preamble and raw blocks.

    Returns:
        (preamble, blocks) where blocks cover the rest of the document
        contiguously and in order
    """
    starts = [m.start() for m in _BLOCK_START.finditer(document)]
    if not starts:
        return document, []

    bounds = starts + [len(document)]
    blocks = [
        Block(text=document[start:end], start=start, end=end)
        for start, end in zip(bounds, bounds[1:])
    ]
    return document[: starts[0]], blocks


def parse(document: str) -> list[Entry]:
    """
    Parse a document into its ordered decodable entries.

    Each entry carries its index and the [start, end) offsets of the
    block it came from, so document[entry.start:entry.end] == entry.raw.
    """
    _, blocks = split_blocks(document)

    entries: list[Entry] = []
    for block in blocks:
        if not block.text.strip():
            continue
        entry = decode(block.text)
        if entry is None:
            continue
        entry.index = len(entries)
        entry.start = block.start
        entry.end = block.end
        entries.append(entry)

    return entries


def parse_title(document: str) -> str | None:
    """Return the session title from the first line, if it is a title line."""
    first_line = document.split("\n", 1)[0]
    if first_line.startswith(TITLE_MARKER):
        return first_line[len(TITLE_MARKER):].strip()
    return None


def parse_database(document: str) -> str | None:
    """Return the bound database from the preamble metadata comment."""
    preamble, _ = split_blocks(document)
    match = _DATABASE_COMMENT.search(preamble)
    return match.group(1) if match else None


def revision(document: str) -> str:
    """Short content digest used to detect documents changed under a caller."""
    return hashlib.sha256(document.encode("utf-8")).hexdigest()[:16]
