"""Unit tests for document parsing."""

from sqltutor.transcript import (
    EntryKind,
    encode,
    parse,
    parse_database,
    parse_title,
    revision,
    split_blocks,
)

PREAMBLE = "# Demo\n<!-- database: learning_db -->\n\n"


def _document(*blocks: str) -> str:
    return PREAMBLE + "".join(blocks)


def test_parse_query_and_result():
    result = "| ?column? |\n|---|\n| 1 |"
    document = _document(
        encode(EntryKind.QUERY, "SELECT 1"),
        encode(EntryKind.RESULT, result),
    )

    entries = parse(document)

    assert [(e.index, e.kind, e.content) for e in entries] == [
        (0, EntryKind.QUERY, "SELECT 1"),
        (1, EntryKind.RESULT, result),
    ]


def test_unknown_and_blank_blocks_do_not_consume_indices():
    document = _document(
        "\n## Scratch\nignored\n",
        encode(EntryKind.NOTE, "first"),
        "\n## \n",
        "\n## Todo\nalso ignored\n",
        encode(EntryKind.QUERY, "SELECT 2"),
        "\n## Summary\n",
        encode(EntryKind.NOTE, "last"),
    )

    entries = parse(document)

    assert [e.index for e in entries] == [0, 1, 2]
    assert [e.content for e in entries] == ["first", "SELECT 2", "last"]


def test_whitespace_only_document_is_empty():
    assert parse("") == []
    assert parse("  \n\n\t\n") == []


def test_preamble_never_yields_entries():
    assert parse(PREAMBLE) == []


def test_page_breaks_are_indexed():
    document = _document(
        encode(EntryKind.NOTE, "a"),
        encode(EntryKind.PAGE_BREAK),
        encode(EntryKind.NOTE, "b"),
    )

    kinds = [e.kind for e in parse(document)]

    assert kinds == [EntryKind.NOTE, EntryKind.PAGE_BREAK, EntryKind.NOTE]


def test_offsets_cover_raw_block():
    document = _document(
        encode(EntryKind.QUERY, "SELECT 1"),
        encode(EntryKind.NOTE, "hello"),
    )

    for entry in parse(document):
        assert document[entry.start:entry.end] == entry.raw
        assert entry.raw.startswith("## ")


def test_split_blocks_is_contiguous():
    document = _document(
        encode(EntryKind.NOTE, "a"),
        "\n## Other\nx\n",
        encode(EntryKind.NOTE, "b"),
    )

    preamble, blocks = split_blocks(document)

    assert preamble + "".join(b.text for b in blocks) == document
    assert blocks[0].start == len(preamble)
    assert all(a.end == b.start for a, b in zip(blocks, blocks[1:]))


def test_heading_inside_note_starts_a_new_block():
    document = _document(encode(EntryKind.NOTE, "intro\n## Details\nmore"))

    entries = parse(document)

    # The "## Details" tail is an unknown block and is dropped from the note
    assert len(entries) == 1
    assert entries[0].content == "intro"


def test_heading_marker_must_start_the_line():
    document = _document(encode(EntryKind.NOTE, "use ## for headings"))

    assert parse(document)[0].content == "use ## for headings"


def test_parse_title_and_database():
    assert parse_title(PREAMBLE) == "Demo"
    assert parse_database(PREAMBLE) == "learning_db"


def test_parse_title_missing():
    assert parse_title("no title here\n") is None


def test_parse_database_ignores_entry_content():
    document = "# Demo\n\n" + encode(EntryKind.NOTE, "<!-- database: elsewhere -->")

    assert parse_database(document) is None


def test_revision_tracks_content():
    document = _document(encode(EntryKind.NOTE, "a"))

    assert revision(document) == revision(document)
    assert revision(document) != revision(document + encode(EntryKind.NOTE, "b"))
