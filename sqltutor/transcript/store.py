"""
File-backed transcript store.

One UTF-8 markdown document per session, named "<session id>.md" in the
history directory. All reads and writes of session documents go through
TranscriptStore.

Entries are addressed by the index parse() assigns, which is only
meaningful for the document text it was computed from. Mutations take
an optional revision (see parser.revision) and refuse to act when the
document has changed since. Without one, the last writer wins.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path

from .codec import Entry, EntryKind, encode, split_saved_query
from .paginate import should_paginate
from .parser import parse, parse_database, parse_title, revision
from .schema import (
    DATABASE_COMMENT,
    DEFAULT_DATABASE,
    DEFAULT_SAVED_QUERY_NAME,
    DOCUMENT_SUFFIX,
    GENERAL_SESSION_ID,
    GENERAL_SESSION_TITLE,
    PAGE_SIZE,
    TITLE_MARKER,
    InvalidTargetError,
    MalformedInputError,
    NotFoundError,
    OutOfBoundsError,
    StaleRevisionError,
)

logger = logging.getLogger(__name__)

# Query, Result and Error can be removed but not rewritten.
EDITABLE_KINDS = frozenset({EntryKind.NOTE, EntryKind.DIAGRAM, EntryKind.SAVED_QUERY})
DELETABLE_KINDS = frozenset(kind for kind in EntryKind if kind is not EntryKind.PAGE_BREAK)

_SESSION_ID = re.compile(r"[A-Za-z0-9_-]+")
_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass
class Session:
    """A session as listed in the sidebar."""

    id: str
    name: str
    timestamp: float  # last modification, seconds since epoch


class TranscriptStore:
    """
    Session documents kept as markdown files in one directory.

    Args:
        root: History directory (created on first use)
        page_size: Entries per page before a query opens a new page
        default_database: Database for sessions without a metadata line
    """

    def __init__(
        self,
        root: str | Path,
        *,
        page_size: int = PAGE_SIZE,
        default_database: str = DEFAULT_DATABASE,
    ):
        self.root = Path(root)
        self.page_size = page_size
        self.default_database = default_database

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def path_for(self, session_id: str) -> Path:
        """
        Path of a session's document.

        Raises:
            MalformedInputError: If the id is not a plain identifier
        """
        if not session_id or not _SESSION_ID.fullmatch(session_id):
            raise MalformedInputError(f"Invalid session id: {session_id!r}")
        return self.root / f"{session_id}{DOCUMENT_SUFFIX}"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def list_sessions(self) -> list[Session]:
        """List sessions, most recently modified first. Reserved ids are skipped."""
        self.root.mkdir(parents=True, exist_ok=True)

        sessions = []
        for path in self.root.glob(f"*{DOCUMENT_SUFFIX}"):
            if path.name.startswith("_"):
                continue
            sessions.append(self._session_from_path(path))

        return sorted(sessions, key=lambda s: s.timestamp, reverse=True)

    def get_session(self, session_id: str) -> Session:
        path = self.path_for(session_id)
        if not path.exists():
            raise NotFoundError(f"Session not found: {session_id}")
        return self._session_from_path(path)

    def create(self, name: str, database: str | None = None) -> str:
        """
        Create a session document and return its id.

        The id is the creation time in milliseconds plus the name reduced
        to [a-z0-9_]. Ids are not checked for collisions.
        """
        title = _single_line(name)
        if not title:
            raise MalformedInputError("Name is required")
        database = _single_line(database or "") or self.default_database

        safe_name = _UNSAFE_NAME_CHARS.sub("_", title).lower()
        session_id = f"{int(time.time() * 1000)}_{safe_name}"

        self.root.mkdir(parents=True, exist_ok=True)
        self._write(self.path_for(session_id), _preamble(title, database))

        logger.info("Created session %s (database %s)", session_id, database)
        return session_id

    def delete(self, session_id: str) -> bool:
        """Delete a session document. Returns True if deleted, False if absent."""
        path = self.path_for(session_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted session %s", session_id)
        return True

    def update_title(self, session_id: str, title: str) -> None:
        """Replace the title line, or prepend one if the document has none."""
        title = _single_line(title)
        if not title:
            raise MalformedInputError("Name is required")

        document = self.read(session_id)
        lines = document.split("\n")
        if lines[0].startswith(TITLE_MARKER):
            lines[0] = f"{TITLE_MARKER}{title}"
        else:
            lines[:0] = [f"{TITLE_MARKER}{title}", ""]

        self._write(self.path_for(session_id), "\n".join(lines))

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read(self, session_id: str) -> str:
        """
        Read a session's whole document.

        Raises:
            NotFoundError: If the session has no document
        """
        path = self.path_for(session_id)
        if not path.exists():
            raise NotFoundError(f"Session not found: {session_id}")
        with path.open("r", encoding="utf-8", newline="") as f:
            return f.read()

    def read_or_empty(self, session_id: str) -> str:
        """Read a document, treating a missing one as empty."""
        try:
            return self.read(session_id)
        except NotFoundError:
            return ""

    def get_database(self, session_id: str) -> str:
        """Database bound to a session, falling back to the default."""
        return parse_database(self.read_or_empty(session_id)) or self.default_database

    def entries(self, session_id: str) -> list[Entry]:
        return parse(self.read(session_id))

    # -------------------------------------------------------------------------
    # Appending
    # -------------------------------------------------------------------------

    def append(
        self,
        session_id: str,
        kind: EntryKind,
        content: str = "",
        *,
        name: str | None = None,
    ) -> None:
        """
        Append one entry to a session document.

        A new query opens a new page first when the current page is full.
        The general store is created on first use; other sessions must exist.
        Saved query names are collapsed onto one line.
        """
        if session_id == GENERAL_SESSION_ID and not self.exists(session_id):
            self.root.mkdir(parents=True, exist_ok=True)
            self._write(self.path_for(session_id), f"{TITLE_MARKER}{GENERAL_SESSION_TITLE}\n\n")

        if kind is EntryKind.QUERY and self.should_paginate(session_id):
            self.insert_page_break(session_id)

        if name is not None:
            name = _single_line(name) or DEFAULT_SAVED_QUERY_NAME
        self._append_block(session_id, encode(kind, content, name=name))
        logger.debug("Appended %s entry to %s", kind.value, session_id)

    def should_paginate(self, session_id: str) -> bool:
        """Whether the current page of a session has reached the page size."""
        return should_paginate(self.entries(session_id), self.page_size)

    def insert_page_break(self, session_id: str) -> None:
        self._append_block(session_id, encode(EntryKind.PAGE_BREAK))
        logger.info("Inserted page break in %s", session_id)

    # -------------------------------------------------------------------------
    # Indexed mutation
    # -------------------------------------------------------------------------

    def update_entry(
        self,
        session_id: str,
        index: int,
        content: str,
        *,
        name: str | None = None,
        expected_revision: str | None = None,
    ) -> Entry:
        """
        Replace the content of a note, diagram or saved query.

        Only the target block's text changes; the rest of the document is
        kept byte for byte. A saved query keeps its name unless a new one
        is given. Saved query content may also be a preformatted
        "name, then fenced sql" payload.

        Returns:
            The updated entry as parsed from the new document

        Raises:
            NotFoundError: If the session has no document
            OutOfBoundsError: If index is not a decodable entry
            InvalidTargetError: If the entry kind is not editable
            StaleRevisionError: If expected_revision no longer matches
        """
        document = self.read(session_id)
        _check_revision(document, expected_revision)
        target = _resolve(document, index)

        if target.kind is EntryKind.PAGE_BREAK:
            raise InvalidTargetError("Cannot edit a page break")
        if target.kind not in EDITABLE_KINDS:
            raise InvalidTargetError(
                f"Entry {index} is a {target.kind.value.lower()}; "
                "only notes, diagrams and saved queries can be edited"
            )

        if target.kind is EntryKind.SAVED_QUERY:
            if name is None and "```" in content:
                name, content = split_saved_query(content)
            block = encode(target.kind, content, name=_single_line(name or "") or target.name)
        else:
            block = encode(target.kind, content)

        trailing = target.raw[len(target.raw.rstrip()):] or "\n"
        replacement = block.strip("\n") + trailing
        updated = document[: target.start] + replacement + document[target.end:]

        self._write(self.path_for(session_id), updated)
        logger.info("Updated %s entry %d in %s", target.kind.value, index, session_id)
        return parse(updated)[index]

    def delete_entry(
        self,
        session_id: str,
        index: int,
        *,
        expected_revision: str | None = None,
    ) -> Entry:
        """
        Remove one entry. Page breaks can't be removed.

        Returns:
            The removed entry

        Raises:
            NotFoundError: If the session has no document
            OutOfBoundsError: If index is not a decodable entry
            InvalidTargetError: If the entry is a page break
            StaleRevisionError: If expected_revision no longer matches
        """
        document = self.read(session_id)
        _check_revision(document, expected_revision)
        target = _resolve(document, index)

        if target.kind not in DELETABLE_KINDS:
            raise InvalidTargetError("Cannot delete a page break")

        updated = document[: target.start] + document[target.end:]

        self._write(self.path_for(session_id), updated)
        logger.info("Deleted %s entry %d from %s", target.kind.value, index, session_id)
        return target

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _append_block(self, session_id: str, block: str) -> None:
        path = self.path_for(session_id)
        if not path.exists():
            raise NotFoundError(f"Session not found: {session_id}")
        with path.open("a", encoding="utf-8", newline="") as f:
            f.write(block)

    def _write(self, path: Path, text: str) -> None:
        with path.open("w", encoding="utf-8", newline="") as f:
            f.write(text)

    def _session_from_path(self, path: Path) -> Session:
        with path.open("r", encoding="utf-8", newline="") as f:
            document = f.read()
        return Session(
            id=path.stem,
            name=parse_title(document) or path.stem,
            timestamp=path.stat().st_mtime,
        )


def _resolve(document: str, index: int) -> Entry:
    entries = parse(document)
    if index < 0 or index >= len(entries):
        raise OutOfBoundsError(
            f"Entry index {index} out of bounds ({len(entries)} entries)"
        )
    return entries[index]


def _check_revision(document: str, expected: str | None) -> None:
    if expected is not None and revision(document) != expected:
        raise StaleRevisionError(
            "Session changed since it was read; reload and try again"
        )


def _preamble(title: str, database: str) -> str:
    comment = DATABASE_COMMENT.format(name=database)
    return f"{TITLE_MARKER}{title}\n{comment}\n\n"


def _single_line(text: str) -> str:
    return " ".join(text.splitlines()).strip()
