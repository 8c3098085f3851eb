"""The Site aggregate.

A :class:`Site` owns everything one build knows about: the configuration,
site data, the published documents, list metadata and the indexes built from
them. It lives for a single build and is handed to every stage explicitly.

Drafts are filtered exactly once, in :meth:`Site.assemble`; every later stage
reads ``site.documents`` and so never sees a draft outside preview mode.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import SiteConfig
from .content import Document
from .taxonomy import (
    HOME_KIND,
    SECTION_KIND,
    DocumentCollection,
    SiteIndex,
    TaxonomyIndex,
    TaxonomyIndexer,
)
from .utils import join_root_url, titleize, url_to_output_path

logger = logging.getLogger(__name__)


@dataclass
class Site:
    """Everything a build renders from.

    Attributes:
        config: Validated site configuration.
        data: Site data loaded from the data directory.
        documents: Published documents, ordered by source path.
        list_meta: Section name ("" for home) to its ``_index.md`` document.
        index: Home, section and taxonomy indexes.
    """

    config: SiteConfig
    data: dict[str, Any]
    documents: tuple[Document, ...]
    list_meta: Mapping[str, Document]
    index: SiteIndex
    _by_source: dict[str, Document] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self._by_source = {d.source_path.as_posix(): d for d in self.documents}

    @classmethod
    def assemble(
        cls, config: SiteConfig, data: dict[str, Any], documents: Iterable[Document]
    ) -> Site:
        """Filter drafts, collect list metadata and build the indexes.

        Args:
            config: Site configuration.
            data: Site data mapping.
            documents: Every loaded document, drafts included.

        Returns:
            The assembled Site.
        """
        loaded = list(documents)
        visible = [d for d in loaded if config.drafts or not d.draft]
        skipped = len(loaded) - len(visible)
        if skipped:
            logger.info("Skipping %d draft document(s)", skipped)

        published = tuple(d for d in visible if not d.is_list_meta)
        list_meta = {_listing_key(d): d for d in visible if d.is_list_meta}
        index = TaxonomyIndexer(
            config.page_size, config.taxonomies, include_drafts=config.drafts
        ).build(published)
        return cls(
            config=config,
            data=data,
            documents=published,
            list_meta=list_meta,
            index=index,
        )

    @property
    def title(self) -> str:
        return self.config.title

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def pages(self) -> DocumentCollection:
        """Published documents, newest first."""
        return DocumentCollection(self.documents).sorted()

    @property
    def sections(self) -> Mapping[str, TaxonomyIndex]:
        return self.index.sections

    @property
    def taxonomies(self) -> Mapping[str, Mapping[str, TaxonomyIndex]]:
        return self.index.taxonomies

    @property
    def tags(self) -> Mapping[str, TaxonomyIndex]:
        return self.index.taxonomies.get("tags", {})

    @property
    def last_updated(self) -> datetime | None:
        """Date of the newest published document."""
        dates = [d.date for d in self.documents if d.date is not None]
        return max(dates) if dates else None

    def url_for(self, path: str) -> str:
        """URL of a site path, absolute when ``canonify_urls`` is on.

        External URLs are returned unchanged.
        """
        if path.startswith(("http://", "https://", "//")):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        if self.config.canonify_urls:
            return join_root_url(self.base_url, path)
        return path

    def absolute_url(self, path: str) -> str:
        """Absolute URL of a site path (root-relative without ``base_url``)."""
        return join_root_url(self.base_url, path)

    def output_file(self, url: str) -> Path:
        """Published file that serves ``url``."""
        return self.config.output_dir.joinpath(*url_to_output_path(url).parts)

    def url_of_source(self, source_path: str) -> str | None:
        """URL of the published document at ``source_path``, if any."""
        doc = self._by_source.get(source_path)
        if doc is None:
            return None
        return self.url_for(doc.url)

    def listing_title(self, index: TaxonomyIndex, meta: Document | None = None) -> str:
        """Title of a listing page.

        ``_index.md`` front-matter wins; otherwise the home page uses the site
        title, sections their titleized name and taxonomy pages the term.
        """
        if meta is not None and "title" in meta.front_matter:
            return meta.title
        if index.kind == HOME_KIND:
            return self.title
        if index.kind == SECTION_KIND:
            return titleize(index.term)
        return index.term


def _listing_key(doc: Document) -> str:
    parent = doc.source_path.parent.as_posix()
    return "" if parent == "." else parent
