"""
SQL Tutor transcript engine.

All reading and writing of session documents is encapsulated here. No
other module should touch the history directory directly.

The engine has four parts:
- CODEC: one entry <-> one markdown block
- PARSER: document -> ordered, indexed entries (with offsets)
- PAGINATE: entries -> pages, plus the automatic page-break policy
- STORE: file-backed sessions with append and indexed edit/delete

Usage:
    from sqltutor.transcript import EntryKind, TranscriptStore, paginate, parse

    store = TranscriptStore("conversations")
    session_id = store.create("Demo")
    store.append(session_id, EntryKind.QUERY, "SELECT 1")
    pages = paginate(parse(store.read(session_id)))
"""

from .codec import Entry, EntryKind, decode, encode, split_saved_query
from .paginate import count_since_last_break, paginate, should_paginate
from .parser import Block, parse, parse_database, parse_title, revision, split_blocks
from .schema import (
    DEFAULT_DATABASE,
    GENERAL_SESSION_ID,
    PAGE_SIZE,
    InvalidTargetError,
    MalformedInputError,
    NotFoundError,
    OutOfBoundsError,
    StaleRevisionError,
    TranscriptError,
)
from .store import DELETABLE_KINDS, EDITABLE_KINDS, Session, TranscriptStore

__all__ = [
    # Codec
    "Entry",
    "EntryKind",
    "encode",
    "decode",
    "split_saved_query",
    # Parser
    "Block",
    "split_blocks",
    "parse",
    "parse_title",
    "parse_database",
    "revision",
    # Paginator
    "paginate",
    "count_since_last_break",
    "should_paginate",
    # Store
    "Session",
    "TranscriptStore",
    "EDITABLE_KINDS",
    "DELETABLE_KINDS",
    # Constants
    "DEFAULT_DATABASE",
    "GENERAL_SESSION_ID",
    "PAGE_SIZE",
    # Exceptions
    "TranscriptError",
    "NotFoundError",
    "OutOfBoundsError",
    "InvalidTargetError",
    "MalformedInputError",
    "StaleRevisionError",
]
