from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from stheno.errors import ParseError
from stheno.frontmatter import parse_date, parse_front_matter, split_front_matter

DOC = Path("content/posts/doc.md")


def test_split_front_matter_returns_source_body_and_body_line():
    text = "---\ntitle: Hello\ntags: [a]\n---\nBody line.\n"
    source, body, body_line = split_front_matter(text, DOC)
    assert source == "title: Hello\ntags: [a]\n"
    assert body == "Body line.\n"
    assert body_line == 5


def test_file_without_front_matter_has_empty_front_matter():
    fm = parse_front_matter("# Just a heading\n\nText.\n", DOC)
    assert fm.data == {}
    assert fm.body == "# Just a heading\n\nText.\n"
    assert fm.body_line == 1


def test_delimiter_must_be_the_first_line():
    fm = parse_front_matter("\n---\ntitle: x\n---\n", DOC)
    assert fm.data == {}
    assert fm.body.startswith("\n---")


def test_byte_order_mark_and_crlf_are_accepted():
    fm = parse_front_matter("\ufeff---\r\ntitle: Hi\r\n---\r\nBody\r\n", DOC)
    assert fm.data == {"title": "Hi"}
    assert fm.body == "Body\r\n"


def test_empty_front_matter_block():
    fm = parse_front_matter("---\n---\nBody\n", DOC)
    assert fm.data == {}
    assert fm.body == "Body\n"


def test_unterminated_front_matter_raises_parse_error_at_line_one():
    with pytest.raises(ParseError) as excinfo:
        parse_front_matter("---\ntitle: Hello\nBody without closing\n", DOC)
    assert excinfo.value.line == 1
    assert excinfo.value.source_path == DOC
    assert "unterminated front-matter" in str(excinfo.value)
    assert str(excinfo.value).startswith(f"{DOC}: line 1: ")


def test_key_lines_are_file_lines():
    fm = parse_front_matter("---\ntitle: Hello\n\ndate: 2021-01-01\n---\n", DOC)
    assert fm.line_of("title") == 2
    assert fm.line_of("date") == 4
    assert fm.line_of("missing") is None


def test_duplicate_key_reports_second_occurrence():
    with pytest.raises(ParseError) as excinfo:
        parse_front_matter("---\ntitle: a\ntags: [x]\ntitle: b\n---\n", DOC)
    assert excinfo.value.line == 4
    assert "duplicate key 'title'" in excinfo.value.message
    assert "line 2" in excinfo.value.message


def test_non_mapping_front_matter_is_rejected():
    with pytest.raises(ParseError) as excinfo:
        parse_front_matter("---\n- one\n- two\n---\n", DOC)
    assert excinfo.value.line == 2
    assert "mapping" in excinfo.value.message


def test_invalid_yaml_is_a_parse_error():
    with pytest.raises(ParseError) as excinfo:
        parse_front_matter('---\ntitle: "unclosed\n---\n', DOC)
    assert "invalid YAML" in excinfo.value.message
    assert excinfo.value.original_error is not None


def test_non_scalar_key_is_rejected():
    with pytest.raises(ParseError, match="plain strings"):
        parse_front_matter("---\n? [a, b]\n: value\n---\n", DOC)


def test_parse_date_accepts_yaml_and_iso_values():
    utc = timezone.utc
    assert parse_date(date(2021, 6, 1)) == datetime(2021, 6, 1, tzinfo=utc)
    assert parse_date(datetime(2021, 6, 1, 10, 30)) == datetime(2021, 6, 1, 10, 30, tzinfo=utc)
    assert parse_date("2021-06-01") == datetime(2021, 6, 1, tzinfo=utc)
    assert parse_date("2021-06-01T10:30:00Z") == datetime(2021, 6, 1, 10, 30, tzinfo=utc)


def test_parse_date_normalizes_offsets_to_utc():
    value = parse_date("2021-06-01T10:30:00+02:00")
    assert value.utcoffset() == timedelta(0)
    assert value.hour == 8


@pytest.mark.parametrize("value", ["yesterday", "2021-13-01", 42, ["2021-01-01"]])
def test_parse_date_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_date(value)
