"""Feed generation for Stheno.

This module generates the machine-readable files of a site (sitemap.xml, RSS
and JSON Feed) from the assembled :class:`~stheno.site.Site`.

Every generator needs an absolute ``base_url``; without one it is skipped.
Feeds never look at the wall clock: dates come from the documents, so two
builds of the same input produce identical files.

Classes:
    FeedGenerator: Base class for feed generators.
    SitemapGenerator: Generates sitemap.xml.
    RSSGenerator: Generates an RSS 2.0 feed (index.xml).
    JSONFeedGenerator: Generates a JSON Feed 1.1 (feed.json).
    FeedRegistry: Registry for managing feed generators.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from markupsafe import escape

if TYPE_CHECKING:
    from .content import Document
    from .site import Site

logger = logging.getLogger(__name__)

RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S +0000"


def _rfc822(value: datetime) -> str:
    return value.strftime(RFC822_FORMAT)


def _feed_items(site: Site) -> list[Document]:
    return list(site.pages[: site.config.feed_limit])


class FeedGenerator(ABC):
    """Abstract base class for feed generators.

    Subclasses implement specific formats; new formats are added by
    registering another subclass with a :class:`FeedRegistry`.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(self, site: Site) -> str | None:
        """Generate feed content for a site.

        Args:
            site: Assembled site.

        Returns:
            Feed content as a string, or None if the feed cannot be
            generated (no base URL configured).
        """
        ...

    def write(self, output_dir: Path, site: Site) -> bool:
        """Generate and write the feed to the output directory.

        Args:
            output_dir: Directory to write the feed file to.
            site: Assembled site.

        Returns:
            True if the feed was written, False if skipped.
        """
        content = self.generate(site)
        if content is None:
            return False
        output_path = output_dir / self.filename
        output_path.write_text(content, encoding="utf-8")
        return True


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml for search engine indexing.

    Lists every document and every listing page (home, sections, taxonomy
    terms and their pagination) sorted by URL. Redirect pages are left out.
    """

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, site: Site) -> str | None:
        if not site.base_url:
            return None

        entries: dict[str, datetime | None] = {}
        for doc in site.documents:
            entries[doc.url] = doc.date
        for index in site.index.all():
            newest = next((d.date for d in index.documents if d.date), None)
            for pager in index.pagers:
                entries[pager.url] = newest

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for url in sorted(entries):
            loc = escape(site.absolute_url(url))
            lastmod = entries[url]
            if lastmod is None:
                lines.append(f"  <url><loc>{loc}</loc></url>")
            else:
                lines.append(
                    f"  <url><loc>{loc}</loc>"
                    f"<lastmod>{lastmod.strftime('%Y-%m-%d')}</lastmod></url>"
                )
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the newest documents.

    Uses the site title for the channel title. ``lastBuildDate`` is the date
    of the newest document.
    """

    @property
    def filename(self) -> str:
        return "index.xml"

    def generate(self, site: Site) -> str | None:
        base_url = site.base_url
        if not base_url:
            return None

        title = site.title or base_url
        items = []
        for doc in _feed_items(site):
            link = escape(site.absolute_url(doc.url))
            parts = [
                f"<item><title>{escape(doc.title)}</title>",
                f"<link>{link}</link>",
                f'<guid isPermaLink="true">{link}</guid>',
                f"<description>{escape(doc.description or doc.title)}</description>",
            ]
            if doc.date is not None:
                parts.append(f"<pubDate>{_rfc822(doc.date)}</pubDate>")
            parts.append("</item>")
            items.append("".join(parts))

        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape(title)}</title>",
            f"<link>{escape(base_url)}/</link>",
            f"<description>{escape(title)}</description>",
        ]
        if site.last_updated is not None:
            rss.append(f"<lastBuildDate>{_rfc822(site.last_updated)}</lastBuildDate>")
        rss.extend(items)
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class JSONFeedGenerator(FeedGenerator):
    """Generates a JSON Feed 1.1 of the newest documents."""

    VERSION = "https://jsonfeed.org/version/1.1"

    @property
    def filename(self) -> str:
        return "feed.json"

    def generate(self, site: Site) -> str | None:
        if not site.base_url:
            return None

        items = []
        for doc in _feed_items(site):
            url = site.absolute_url(doc.url)
            item = {
                "id": url,
                "url": url,
                "title": doc.title,
                "content_text": doc.description or doc.title,
            }
            if doc.date is not None:
                item["date_published"] = doc.date.isoformat()
            if doc.tags:
                item["tags"] = list(doc.tags)
            items.append(item)

        feed = {
            "version": self.VERSION,
            "title": site.title or site.base_url,
            "home_page_url": site.absolute_url("/"),
            "feed_url": site.absolute_url(f"/{self.filename}"),
            "items": items,
        }
        return json.dumps(feed, indent=2, ensure_ascii=False) + "\n"


class FeedRegistry:
    """Registry for managing feed generators.

    Attributes:
        _generators: Registered feed generators, in registration order.
    """

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def __iter__(self) -> Iterator[FeedGenerator]:
        return iter(self._generators)

    def generate_all(
        self,
        output_dir: Path,
        site: Site,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[str]:
        """Generate all registered feeds.

        Args:
            output_dir: Directory to write feed files to.
            site: Assembled site.
            checkpoint: Called before each file is written; raising from it
                stops generation.

        Returns:
            List of filenames that were generated.
        """
        generated = []
        for generator in self._generators:
            if checkpoint is not None:
                checkpoint()
            if generator.write(output_dir, site):
                generated.append(generator.filename)
            else:
                logger.debug("Skipped %s: no base_url configured", generator.filename)
        return generated


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with default feed generators.

    Returns:
        FeedRegistry configured with sitemap, RSS and JSON Feed generators.
    """
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator())
    registry.register(JSONFeedGenerator())
    return registry
