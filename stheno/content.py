"""Content loading for Stheno.

This module walks the content tree, parses each document's front-matter and
produces :class:`Document` records.

Key classes:
- Document: Dataclass representing one source document.
- UrlDeriver: Derives the URL (and so the output path) of a document.
- DocumentLoader: Discovers content files and builds Documents from them.

The loader is the only component that reads content files. A malformed
document fails the whole build with a ParseError naming the file and line.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

from .errors import BuildError, ParseError
from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .frontmatter import parse_front_matter
from .utils import (
    LIST_META_NAME,
    is_html,
    is_ignored,
    is_markdown,
    slugify,
    url_to_output_path,
)

logger = logging.getLogger(__name__)

# Undated documents sort after every dated one
_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(eq=False)
class Document:
    """A content document loaded from the content tree.

    Identity is the source path; two Document objects are only equal when
    they are the same object.

    Attributes:
        source_path: Path relative to the content directory (POSIX form).
        section: First directory component, "" for root-level documents.
        title: Human-readable title.
        body: Raw body text after the front-matter block.
        date: Canonical UTC publish date, or None when undated.
        draft: Whether the document is a draft.
        slug: URL-friendly slug after resolution.
        url: Site-relative URL, always ending in "/".
        layout: Optional content-type template override.
        description: Short description for listings and feeds.
        aliases: Old URLs that redirect to this document.
        raw_html: Whether raw HTML in the Markdown body passes through.
        terms: Taxonomy kind to ordered unique terms.
        params: Custom front-matter keys.
        front_matter: The full parsed front-matter mapping.
        source_type: "markdown" or "html".
        is_list_meta: True for ``_index.md`` list metadata documents.
        file_path: Absolute path of the source file, for error reporting.
        newer: Next newer document in the same section (set by the indexer).
        older: Next older document in the same section (set by the indexer).
    """

    source_path: PurePosixPath
    section: str
    title: str
    body: str
    date: datetime | None
    draft: bool
    slug: str
    url: str
    layout: str | None = None
    description: str = ""
    aliases: tuple[str, ...] = ()
    raw_html: bool = False
    terms: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    front_matter: dict[str, Any] = field(default_factory=dict)
    source_type: str = "markdown"
    is_list_meta: bool = False
    file_path: Path | None = None
    newer: Document | None = field(default=None, repr=False)
    older: Document | None = field(default=None, repr=False)

    @property
    def output_path(self) -> PurePosixPath:
        return url_to_output_path(self.url)

    @property
    def tags(self) -> tuple[str, ...]:
        return self.terms.get("tags", ())

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Chronological key: (date, source path)."""
        return (self.date or _UNDATED, self.source_path.as_posix())

    @property
    def error_path(self) -> Path:
        return self.file_path or Path(self.source_path)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Document({self.source_path.as_posix()!r})"


class UrlDeriver:
    """Derives URLs for documents from their location in the content tree.

    ``posts/2021-01-01-hello.md`` becomes ``/posts/hello/``; a front-matter
    ``slug`` replaces the last segment. ``index.md`` serves its directory and
    ``_index.md`` describes the listing of its directory.
    """

    def derive(self, rel: PurePosixPath, slug: str, is_list_meta: bool = False) -> str:
        segments = [p for p in rel.parent.parts if p]
        if not is_list_meta and slug != "index":
            segments.append(slug)
        path = "/".join(segments)
        return f"/{path}/" if path else "/"


class DocumentLoader:
    """Loads Documents from a content directory.

    Attributes:
        content_dir: Directory containing content documents.
        taxonomies: Configured taxonomy kinds.
        workers: Number of threads used to parse files.
        metadata_extractor: Extractor chain turning front-matter into fields.
    """

    def __init__(
        self,
        content_dir: Path,
        taxonomies: Mapping[str, Any] | tuple[str, ...] = (),
        workers: int = 1,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.content_dir = content_dir
        self.taxonomies = tuple(taxonomies)
        self.workers = workers
        self.metadata_extractor = metadata_extractor or default_metadata_extractor(
            self.taxonomies
        )
        self.url_deriver = UrlDeriver()

    def iter_files(self) -> list[Path]:
        """Return content files in deterministic (sorted) order.

        Raises:
            BuildError: If the content directory does not exist.
        """
        if not self.content_dir.is_dir():
            raise BuildError(self.content_dir, "content directory not found")
        files: list[Path] = []
        for path in sorted(self.content_dir.rglob("*")):
            if path.is_dir():
                continue
            rel = path.relative_to(self.content_dir)
            if is_ignored(rel):
                continue
            if is_markdown(path) or is_html(path):
                files.append(path)
        return files

    def load(self) -> list[Document]:
        """Load every document in the content tree.

        Returns:
            Documents ordered by source path.

        Raises:
            ParseError: On the first malformed document (in path order) or
                when two documents resolve to the same output path.
        """
        files = self.iter_files()
        if self.workers > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                documents = list(pool.map(self.load_file, files))
        else:
            documents = [self.load_file(path) for path in files]
        self._check_unique_urls(documents)
        logger.debug("Loaded %d documents from %s", len(documents), self.content_dir)
        return documents

    def load_file(self, path: Path) -> Document:
        """Build a Document from one source file.

        Args:
            path: Absolute path of the content file.

        Returns:
            Document record.

        Raises:
            ParseError: If the file cannot be read or its front-matter is
                malformed.
        """
        rel = PurePosixPath(path.relative_to(self.content_dir).as_posix())
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(path, f"cannot read file: {exc}", None, exc) from exc

        fm = parse_front_matter(text, path)
        fields = self.metadata_extractor.extract(fm, path)

        is_list_meta = rel.name == LIST_META_NAME
        slug = fields.get("slug") or slugify(rel.stem)
        url = self.url_deriver.derive(rel, slugify(slug), is_list_meta)
        section = rel.parts[0] if len(rel.parts) > 1 else ""

        return Document(
            source_path=rel,
            section=section,
            title=fields["title"],
            body=fm.body,
            date=fields["date"],
            draft=fields["draft"],
            slug=slugify(slug),
            url=url,
            layout=fields.get("layout"),
            description=fields.get("description", ""),
            aliases=fields.get("aliases", ()),
            raw_html=fields["raw_html"],
            terms=fields.get("terms", {}),
            params=fields.get("params", {}),
            front_matter=fm.data,
            source_type="html" if is_html(path) else "markdown",
            is_list_meta=is_list_meta,
            file_path=path,
        )

    def _check_unique_urls(self, documents: list[Document]) -> None:
        seen: dict[str, Document] = {}
        for doc in documents:
            if doc.is_list_meta:
                continue
            other = seen.get(doc.url)
            if other is not None:
                raise ParseError(
                    doc.error_path,
                    f"output path '{doc.output_path}' is already produced by "
                    f"'{other.source_path}'",
                )
            seen[doc.url] = doc
