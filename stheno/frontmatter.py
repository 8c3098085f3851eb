"""Front-matter parsing for Stheno.

A document may start with a YAML block delimited by ``---`` lines::

    ---
    title: Hello
    date: 2021-06-01
    tags: [python]
    ---
    Body text.

The opening delimiter must be the very first line of the file and the block
ends at the next ``---`` line; everything after it is the body. Unlike a
lenient reader, malformed front-matter is never silently ignored: an
unterminated block, invalid YAML, a duplicate key or an invalid date raises
:class:`~stheno.errors.ParseError` with the offending file line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .errors import ParseError

DELIMITER = "---"

# File line of the first YAML line: the opening delimiter is line 1
_YAML_LINE_OFFSET = 2


@dataclass(frozen=True)
class FrontMatter:
    """Parsed front-matter block and the body that follows it.

    Attributes:
        data: Mapping of front-matter keys to values.
        key_lines: 1-based file line of each top-level key.
        body: Everything after the closing delimiter.
        body_line: 1-based file line where the body starts.
    """

    data: dict[str, Any] = field(default_factory=dict)
    key_lines: dict[str, int] = field(default_factory=dict)
    body: str = ""
    body_line: int = 1

    def line_of(self, key: str) -> int | None:
        return self.key_lines.get(key)


def split_front_matter(text: str, path: Path) -> tuple[str | None, str, int]:
    """Split raw document text into front-matter source and body.

    Args:
        text: Raw file content.
        path: Source path, used for error reporting.

    Returns:
        Tuple of (YAML source or None when the file has no front-matter,
        body text, 1-based line number where the body starts).

    Raises:
        ParseError: If the opening delimiter is never closed.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        return None, text, 1
    for index in range(1, len(lines)):
        if lines[index].rstrip() == DELIMITER:
            source = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return source, body, index + 2
    raise ParseError(
        path, f"unterminated front-matter: no closing '{DELIMITER}' line", line=1
    )


def parse_front_matter(text: str, path: Path) -> FrontMatter:
    """Parse the front-matter block of a document.

    Args:
        text: Raw file content.
        path: Source path, used for error reporting.

    Returns:
        FrontMatter with data, key line numbers and body.

    Raises:
        ParseError: On an unterminated block, invalid YAML, a non-mapping
            block, a non-string key or a duplicate key.
    """
    source, body, body_line = split_front_matter(text, path)
    if source is None:
        return FrontMatter(body=body, body_line=body_line)

    loader = yaml.SafeLoader(source)
    try:
        node = loader.get_single_node()
        if node is None:
            return FrontMatter(body=body, body_line=body_line)
        if not isinstance(node, yaml.MappingNode):
            raise ParseError(
                path,
                "front-matter must be a mapping of keys to values",
                line=node.start_mark.line + _YAML_LINE_OFFSET,
            )
        key_lines = _key_lines(node, path)
        data = loader.construct_document(node)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        line = mark.line + _YAML_LINE_OFFSET if mark is not None else None
        raise ParseError(path, f"invalid YAML: {exc.problem}", line, exc) from exc
    except yaml.YAMLError as exc:
        raise ParseError(path, f"invalid YAML: {exc}", None, exc) from exc
    finally:
        loader.dispose()

    return FrontMatter(
        data={str(key): value for key, value in data.items()},
        key_lines=key_lines,
        body=body,
        body_line=body_line,
    )


def _key_lines(node: yaml.MappingNode, path: Path) -> dict[str, int]:
    """Record the file line of each top-level key, rejecting duplicates."""
    lines: dict[str, int] = {}
    for key_node, _value_node in node.value:
        line = key_node.start_mark.line + _YAML_LINE_OFFSET
        if not isinstance(key_node, yaml.ScalarNode):
            raise ParseError(path, "front-matter keys must be plain strings", line)
        key = key_node.value
        if key in lines:
            raise ParseError(
                path,
                f"duplicate key '{key}' (first defined on line {lines[key]})",
                line,
            )
        lines[key] = line
    return lines


def parse_date(value: Any) -> datetime:
    """Parse a front-matter date into a canonical UTC timestamp.

    Accepts YAML dates and datetimes as well as ISO 8601 strings such as
    ``2021-06-01``, ``2021-06-01T10:30`` and ``2021-06-01T10:30:00Z``.
    Naive values are interpreted as UTC.

    Raises:
        ValueError: If the value is not a recognizable date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(
                f"invalid date {value!r}; expected YYYY-MM-DD or ISO 8601"
            ) from None
    else:
        raise ValueError(f"invalid date {value!r}; expected YYYY-MM-DD or ISO 8601")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
