"""Unit tests for the entry codec."""

import pytest

from sqltutor.transcript import EntryKind, MalformedInputError, decode, encode, split_saved_query


@pytest.mark.parametrize(
    "kind,content",
    [
        (EntryKind.QUERY, "SELECT id, name\nFROM users\nWHERE id = 1;"),
        (EntryKind.RESULT, "| ?column? |\n| --- |\n| 1 |"),
        (EntryKind.ERROR, 'relation "userz" does not exist'),
        (EntryKind.NOTE, "Remember: **LEFT JOIN** keeps unmatched rows."),
        (EntryKind.DIAGRAM, "erDiagram\n  USERS ||--o{ ORDERS : places"),
    ],
)
def test_decode_inverts_encode(kind, content):
    entry = decode(encode(kind, content))

    assert entry is not None
    assert entry.kind is kind
    assert entry.content == content


def test_encode_query_wraps_sql_fence():
    assert encode(EntryKind.QUERY, "SELECT 1") == "\n## Query\n```sql\nSELECT 1\n```\n"


def test_encode_error_wraps_plain_fence():
    assert encode(EntryKind.ERROR, "boom") == "\n## Error\n```\nboom\n```\n"


def test_encode_page_break_has_no_payload():
    assert encode(EntryKind.PAGE_BREAK) == "\n## Page Break\n"


def test_saved_query_round_trip_keeps_name():
    block = encode(EntryKind.SAVED_QUERY, "SELECT * FROM orders", name="All orders")

    assert block == "\n## Saved Query\nAll orders\n```sql\nSELECT * FROM orders\n```\n"
    entry = decode(block)
    assert entry.kind is EntryKind.SAVED_QUERY
    assert entry.name == "All orders"
    assert entry.content == "SELECT * FROM orders"


def test_saved_query_without_name_is_verbatim_payload():
    payload = "Top customers\n```sql\nSELECT 1\n```"
    entry = decode(encode(EntryKind.SAVED_QUERY, payload))

    assert entry.name == "Top customers"
    assert entry.content == "SELECT 1"


def test_page_break_round_trip():
    entry = decode(encode(EntryKind.PAGE_BREAK))

    assert entry.kind is EntryKind.PAGE_BREAK
    assert entry.content == ""


def test_decode_accepts_block_without_marker():
    entry = decode("Note\nplain text")

    assert entry.kind is EntryKind.NOTE
    assert entry.content == "plain text"


def test_decode_unknown_heading_is_none():
    assert decode("## Summary\nsome text") is None


def test_decode_heading_is_case_sensitive():
    assert decode("## query\n```sql\nSELECT 1\n```") is None


def test_decode_heading_must_be_whole_line():
    assert decode("## Query results\n```sql\nSELECT 1\n```") is None


def test_decode_query_without_fence_falls_back_to_remainder():
    entry = decode("## Query\nSELECT 1")

    assert entry.kind is EntryKind.QUERY
    assert entry.content == "SELECT 1"


def test_decode_keeps_raw_block():
    block = "## Note\nhello\n\n"
    assert decode(block).raw == block


def test_split_saved_query_defaults_name():
    assert split_saved_query("```sql\nSELECT 1\n```") == ("Untitled Query", "SELECT 1")


def test_split_saved_query_without_fence_uses_rest():
    assert split_saved_query("Counts\nSELECT count(*) FROM t") == ("Counts", "SELECT count(*) FROM t")


def test_entry_to_dict_uses_wire_names():
    entry = decode(encode(EntryKind.DIAGRAM, "graph TD; A-->B"))
    entry.index = 3

    assert entry.to_dict() == {"index": 3, "type": "mermaid", "content": "graph TD; A-->B"}


def test_from_wire_names():
    assert EntryKind.from_wire("query") is EntryKind.QUERY
    assert EntryKind.from_wire("mermaid") is EntryKind.DIAGRAM
    assert EntryKind.from_wire("diagram") is EntryKind.DIAGRAM
    assert EntryKind.from_wire("Saved-Query") is EntryKind.SAVED_QUERY


def test_from_wire_rejects_unknown_type():
    with pytest.raises(MalformedInputError):
        EntryKind.from_wire("chart")
