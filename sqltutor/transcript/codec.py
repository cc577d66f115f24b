"""
Entry codec.

Each transcript entry is a markdown block introduced by a level-two
heading naming its kind:

    ## Query
    ```sql
    SELECT 1
    ```

encode() produces such a block and decode() turns one back into an Entry.
Blocks with an unknown heading decode to None so callers can skip them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .schema import DEFAULT_SAVED_QUERY_NAME, HEADER_MARKER, MalformedInputError


class EntryKind(str, Enum):
    """Closed set of entry kinds. Values are the block headings."""

    QUERY = "Query"
    RESULT = "Result"
    ERROR = "Error"
    NOTE = "Note"
    DIAGRAM = "Diagram"
    SAVED_QUERY = "Saved Query"
    PAGE_BREAK = "Page Break"

    @property
    def wire_name(self) -> str:
        """Name used for this kind by the web client."""
        return _WIRE_NAMES[self]

    @classmethod
    def from_wire(cls, name: str) -> EntryKind:
        """
        Resolve a client-facing type name ("query", "mermaid", ...).

        Raises:
            MalformedInputError: If the name is not a known entry type
        """
        kind = _WIRE_LOOKUP.get(name.strip().lower())
        if kind is None:
            raise MalformedInputError(f"Unknown entry type: {name!r}")
        return kind


_WIRE_NAMES = {
    EntryKind.QUERY: "query",
    EntryKind.RESULT: "result",
    EntryKind.ERROR: "error",
    EntryKind.NOTE: "note",
    EntryKind.DIAGRAM: "mermaid",
    EntryKind.SAVED_QUERY: "saved-query",
    EntryKind.PAGE_BREAK: "page-break",
}

_WIRE_LOOKUP = {wire: kind for kind, wire in _WIRE_NAMES.items()}
_WIRE_LOOKUP["diagram"] = EntryKind.DIAGRAM

_HEADINGS = {kind.value: kind for kind in EntryKind}

_SQL_FENCE = re.compile(r"```sql([\s\S]*?)```")
_ANY_FENCE = re.compile(r"```([\s\S]*?)```")


@dataclass
class Entry:
    """
    One decoded transcript entry.

    Attributes:
        kind: Entry kind
        content: Semantic payload (SQL for queries and saved queries)
        name: Saved query name (None for other kinds)
        raw: Exact text the entry was decoded from
        index: Position among decodable entries of its document
        start: Offset of the block in its document
        end: Offset just past the block in its document
    """

    kind: EntryKind
    content: str
    name: str | None = None
    raw: str = ""
    index: int = -1
    start: int = -1
    end: int = -1

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "index": self.index,
            "type": self.kind.wire_name,
            "content": self.content,
        }
        if self.kind is EntryKind.SAVED_QUERY:
            data["name"] = self.name
        return data


def encode(kind: EntryKind, content: str = "", *, name: str | None = None) -> str:
    """
    Encode one entry as a markdown block ready to append to a document.

    For saved queries, content is the SQL and name goes on its own line
    above the fence. Without a name, content is taken as an already
    formatted payload and inserted verbatim.

    Args:
        kind: Entry kind
        content: Entry payload
        name: Saved query name

    Returns:
        The block, starting and ending with a newline
    """
    header = f"\n{HEADER_MARKER}{kind.value}\n"

    if kind is EntryKind.QUERY:
        return f"{header}```sql\n{content}\n```\n"
    if kind is EntryKind.ERROR:
        return f"{header}```\n{content}\n```\n"
    if kind is EntryKind.SAVED_QUERY:
        if name is None:
            return f"{header}{content}\n"
        return f"{header}{name}\n```sql\n{content}\n```\n"
    if kind is EntryKind.PAGE_BREAK:
        return header
    # Result, Note and Diagram payloads are verbatim markdown
    return f"{header}{content}\n"


def decode(block: str) -> Entry | None:
    """
    Decode a block back into an Entry.

    The block may still carry its leading "## " marker. Fenced kinds
    fall back to the raw remainder when no fence is present.

    Returns:
        The decoded Entry, or None if the heading is not a known kind
    """
    text = _strip_marker(block)
    if not text:
        return None

    heading, _, remainder = text.partition("\n")
    kind = _HEADINGS.get(heading.strip())
    if kind is None:
        return None

    remainder = remainder.strip()

    if kind is EntryKind.QUERY:
        content = _fenced(_SQL_FENCE, remainder)
    elif kind is EntryKind.ERROR:
        content = _fenced(_ANY_FENCE, remainder)
    elif kind is EntryKind.SAVED_QUERY:
        name, content = split_saved_query(remainder)
        return Entry(kind=kind, content=content, name=name, raw=block)
    elif kind is EntryKind.PAGE_BREAK:
        content = ""
    else:
        content = remainder

    return Entry(kind=kind, content=content, raw=block)


def split_saved_query(payload: str) -> tuple[str, str]:
    """
    Split a saved query payload into (name, sql).

    The name is the first non-empty line unless that line opens the
    fence. When there is no sql fence, the sql is the remaining text.
    """
    name = DEFAULT_SAVED_QUERY_NAME
    body = payload.strip()

    first_line, _, rest = body.partition("\n")
    if first_line.strip() and not first_line.strip().startswith("```"):
        name = first_line.strip()
        body = rest.strip()

    return name, _fenced(_SQL_FENCE, body)


def _fenced(pattern: re.Pattern[str], text: str) -> str:
    match = pattern.search(text)
    return match.group(1).strip() if match else text


def _strip_marker(block: str) -> str:
    text = block.strip()
    if text.startswith(HEADER_MARKER):
        text = text[len(HEADER_MARKER):]
    return text
