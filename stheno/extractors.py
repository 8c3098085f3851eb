"""Metadata extractors for Stheno.

Each extractor derives one group of Document fields from parsed front-matter
and the document body, validating types as it goes. The
:class:`CompositeMetadataExtractor` runs them in order and merges the results.

Key classes:
- TitleExtractor: title from front-matter, first heading or filename.
- DateExtractor: canonical UTC date from front-matter or filename prefix.
- FlagExtractor: draft and raw_html switches.
- RouteExtractor: slug, layout and aliases.
- DescriptionExtractor: description from front-matter or first paragraph.
- TermsExtractor: taxonomy terms for each configured taxonomy kind.
- ParamsExtractor: every remaining custom key.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .errors import ParseError
from .frontmatter import FrontMatter, parse_date
from .utils import (
    extract_date_from_name,
    first_heading,
    first_paragraph,
    normalize_url,
    titleize,
)

RESERVED_KEYS = frozenset(
    {"title", "date", "draft", "slug", "layout", "aliases", "description", "raw_html"}
)


def _optional_str(fm: FrontMatter, key: str, path: Path) -> str | None:
    value = fm.data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(
            path,
            f"'{key}' must be a string, got {type(value).__name__}",
            fm.line_of(key),
        )
    return value.strip() or None


def _bool(fm: FrontMatter, key: str, path: Path) -> bool:
    value = fm.data.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ParseError(
            path, f"'{key}' must be true or false, got {value!r}", fm.line_of(key)
        )
    return value


def _scalar_list(fm: FrontMatter, key: str, path: Path) -> list[str]:
    """Read a string-or-list field as an ordered list of unique strings."""
    value = fm.data.get(key)
    if value is None:
        return []
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        value = [value]
    if not isinstance(value, list):
        raise ParseError(
            path, f"'{key}' must be a string or a list", fm.line_of(key)
        )
    items: list[str] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise ParseError(
                path, f"'{key}' entries must be plain values, got {item!r}", fm.line_of(key)
            )
        text = str(item).strip()
        if text and text not in items:
            items.append(text)
    return items


class TitleExtractor:
    """Title from front-matter, else the first ``# `` heading, else the filename."""

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        title = _optional_str(fm, "title", path)
        if title is None:
            title = first_heading(fm.body) or titleize(path.name)
        return {"title": title}


class DateExtractor:
    """Extracts the publish date.

    Front-matter ``date`` wins; otherwise a ``YYYY-MM-DD-`` filename prefix is
    used. Documents with neither are undated. An unparseable front-matter date
    is fatal, since guessing would silently misorder chronological listings.
    """

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        if "date" in fm.data and fm.data["date"] is not None:
            try:
                return {"date": parse_date(fm.data["date"])}
            except ValueError as exc:
                raise ParseError(path, str(exc), fm.line_of("date"), exc) from exc
        return {"date": extract_date_from_name(path.stem)}


class FlagExtractor:
    """Extracts the ``draft`` and ``raw_html`` switches."""

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        return {
            "draft": _bool(fm, "draft", path),
            "raw_html": _bool(fm, "raw_html", path),
        }


class RouteExtractor:
    """Extracts routing fields: slug override, layout override and aliases.

    Alias segments may not be ``.`` or ``..``.
    """

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        aliases = []
        for alias in _scalar_list(fm, "aliases", path):
            if any(segment in (".", "..") for segment in alias.split("/")):
                raise ParseError(
                    path,
                    f"alias '{alias}' must not contain '.' or '..' segments",
                    fm.line_of("aliases"),
                )
            aliases.append(normalize_url(alias))
        return {
            "slug": _optional_str(fm, "slug", path),
            "layout": _optional_str(fm, "layout", path),
            "aliases": tuple(dict.fromkeys(aliases)),
        }


class DescriptionExtractor:
    """Description from front-matter, else the first prose paragraph."""

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        description = _optional_str(fm, "description", path)
        if description is None:
            description = first_paragraph(fm.body)
        return {"description": description}


class TermsExtractor:
    """Extracts taxonomy terms for each configured taxonomy kind.

    Attributes:
        kinds: Taxonomy kinds to read (front-matter keys such as ``tags``).
    """

    def __init__(self, kinds: Iterable[str]):
        self.kinds = tuple(kinds)

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        terms = {kind: tuple(_scalar_list(fm, kind, path)) for kind in self.kinds}
        return {"terms": terms}


class ParamsExtractor:
    """Collects custom front-matter keys not claimed by another extractor."""

    def __init__(self, claimed: Iterable[str] = ()):
        self.claimed = RESERVED_KEYS | frozenset(claimed)

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        params = {k: v for k, v in fm.data.items() if k not in self.claimed}
        return {"params": params}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    Runs all registered extractors and merges their results; later extractors
    can override earlier ones.
    """

    def __init__(self, extractors: list | None = None):
        self._extractors = list(extractors or [])

    def add_extractor(self, extractor) -> None:
        self._extractors.append(extractor)

    def extract(self, fm: FrontMatter, path: Path) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for extractor in self._extractors:
            result.update(extractor.extract(fm, path))
        return result


def default_metadata_extractor(taxonomies: Iterable[str]) -> CompositeMetadataExtractor:
    """Create the extractor chain used by the document loader.

    Args:
        taxonomies: Configured taxonomy kinds.

    Returns:
        CompositeMetadataExtractor with every built-in extractor.
    """
    kinds = tuple(taxonomies)
    return CompositeMetadataExtractor(
        [
            TitleExtractor(),
            DateExtractor(),
            FlagExtractor(),
            RouteExtractor(),
            DescriptionExtractor(),
            TermsExtractor(kinds),
            ParamsExtractor(kinds),
        ]
    )
