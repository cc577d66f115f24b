"""Document layout constants and exceptions for the transcript engine."""

from __future__ import annotations


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class TranscriptError(Exception):
    """Base exception for transcript operations."""

    pass


class NotFoundError(TranscriptError):
    """Raised when a session document doesn't exist."""

    pass


class OutOfBoundsError(TranscriptError):
    """Raised when an entry index is outside the decodable range."""

    pass


class InvalidTargetError(TranscriptError):
    """Raised when an index resolves to an entry that can't be mutated that way."""

    pass


class MalformedInputError(TranscriptError):
    """Raised when required input is missing or unusable."""

    pass


class StaleRevisionError(TranscriptError):
    """Raised when a document changed since the caller last read it."""

    pass


# -----------------------------------------------------------------------------
# Layout
# -----------------------------------------------------------------------------

# Every entry block starts with this marker at the beginning of a line
HEADER_MARKER = "## "
TITLE_MARKER = "# "

DATABASE_COMMENT = "<!-- database: {name} -->"
DATABASE_COMMENT_PATTERN = r"<!-- database: (.*?) -->"

DEFAULT_DATABASE = "learning_db"
DEFAULT_SAVED_QUERY_NAME = "Untitled Query"

# Entries per page before a new query gets an automatic page break
PAGE_SIZE = 20

# Reserved document holding saved queries shared by all sessions
GENERAL_SESSION_ID = "_general_queries"
GENERAL_SESSION_TITLE = "General Queries"

DOCUMENT_SUFFIX = ".md"
