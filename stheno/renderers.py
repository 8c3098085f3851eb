"""Rendering for Stheno.

This module turns document bodies into HTML and applies templates to produce
the final bytes of every page.

Key classes:
- MarkdownRenderer: Markdown to HTML with highlighting, heading ids and a
  raw HTML safety policy.
- HTMLRenderer: Passes trusted ``.html`` document bodies through.
- RendererRegistry: Selects a body renderer by source type.
- PageRenderer: Deterministic (document, template, site) -> bytes.

Safety policy: raw HTML inside Markdown is escaped unless the document sets
``raw_html: true`` in its front-matter. Shortcode output and ``.html``
documents come from the site author's own templates and files and are
inserted as is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import mistune
from jinja2 import Template
from markupsafe import Markup, escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import Document
from .errors import RenderError
from .protocols import BodyRenderer
from .shortcodes import ShortcodeExpander
from .templates import TemplateSet
from .utils import absolutize_html_urls

if TYPE_CHECKING:
    from .site import Site
    from .taxonomy import Pager, TaxonomyIndex

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


@dataclass(frozen=True)
class Heading:
    """A heading extracted from Markdown content for TOC generation.

    Attributes:
        id: Anchor id for the heading.
        text: Plain text of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


@dataclass
class RenderedBody:
    """Converted document body.

    Attributes:
        html: Body HTML, safe to insert into a template.
        headings: Headings in document order.
    """

    html: Markup
    headings: list[Heading] = field(default_factory=list)

    @property
    def toc(self) -> Markup:
        return render_toc(self.headings)


def normalize_body(text: str) -> str:
    """Normalize a document body before conversion.

    Line endings become ``\\n``, a byte order mark is dropped, leading and
    trailing blank lines are removed and the text ends with exactly one
    newline (empty text stays empty). Normalizing twice is a no-op.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly anchor id from heading text."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


def render_toc(headings: list[Heading]) -> Markup:
    """Render headings as a nested ``<ul>`` table of contents.

    Args:
        headings: Headings in document order.

    Returns:
        Markup-safe HTML, or empty Markup when there are no headings.
    """
    if not headings:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []

    for heading in headings:
        level = heading.level

        # Close nested lists if going to a shallower level
        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        else:
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(f'<li><a href="#{escape(heading.id)}">{escape(heading.text)}</a>')

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading ids and Pygments highlighting.

    Attributes:
        headings: Headings collected while rendering.
    """

    def __init__(self, escape_html: bool = True):
        super().__init__(escape=escape_html)
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        plain = Markup(text).striptags()
        base_id = _generate_heading_id(plain)

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        self.headings.append(Heading(id=heading_id, text=plain, level=level))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced code block, highlighted when the language is known."""
        lang = info.split()[0] if info and info.strip() else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown bodies to HTML."""

    source_type = "markdown"

    def render(self, text: str, allow_html: bool = False) -> tuple[str, list[Heading]]:
        """Convert Markdown to HTML.

        Args:
            text: Normalized Markdown source.
            allow_html: Pass raw HTML through instead of escaping it.

        Returns:
            Tuple of (HTML, headings).
        """
        renderer = _HighlightRenderer(escape_html=not allow_html)
        markdown = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
        return markdown(text), renderer.headings


class HTMLRenderer:
    """Passes ``.html`` document bodies through unchanged."""

    source_type = "html"

    def render(self, text: str, allow_html: bool = False) -> tuple[str, list[Heading]]:
        """Return the body as is; an ``.html`` document is explicit raw HTML."""
        return text, []


class RendererRegistry:
    """Registry of body renderers keyed by source type."""

    def __init__(self):
        self._renderers: dict[str, BodyRenderer] = {}
        self.register(MarkdownRenderer())
        self.register(HTMLRenderer())

    def register(self, renderer: BodyRenderer) -> None:
        self._renderers[renderer.source_type] = renderer

    def get_renderer(self, source_type: str) -> BodyRenderer | None:
        return self._renderers.get(source_type)


def _format_error_message(exc: Exception) -> str:
    """Format an exception raised by a template into a readable message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TemplateSyntaxError":
        return f"Template syntax error on line {getattr(exc, 'lineno', '?')}: {error_msg}"
    if error_type in ("TypeError", "AttributeError"):
        return f"{error_type.replace('Error', ' error')}: {error_msg}"

    return f"{error_type}: {error_msg}"


class PageRenderer:
    """Applies templates to documents and listings.

    Rendering is a pure function of its inputs: the same document, template
    and site always give the same bytes. The renderer holds no mutable
    state, so one instance can serve every render worker.

    Attributes:
        site: The site aggregate being built.
        templates: Shared template set (shortcodes live here).
        registry: Body renderers by source type.
    """

    def __init__(
        self,
        site: Site,
        templates: TemplateSet,
        registry: RendererRegistry | None = None,
    ):
        self.site = site
        self.templates = templates
        self.registry = registry or RendererRegistry()

    def base_context(self) -> dict[str, Any]:
        return {
            "site": self.site,
            "data": self.site.data,
            "params": self.site.config.params,
            "url_for": self.site.url_for,
        }

    def convert(self, doc: Document) -> RenderedBody:
        """Convert a document body to HTML, expanding shortcodes.

        Raises:
            RenderError: On an unknown shortcode or unresolved reference.
        """
        renderer = self.registry.get_renderer(doc.source_type)
        if renderer is None:
            raise RenderError(doc.error_path, f"no renderer for '{doc.source_type}' content")
        expander = ShortcodeExpander(
            self.templates, self.site.url_of_source, self.base_context()
        )
        expanded = expander.expand(normalize_body(doc.body), doc)
        html, headings = renderer.render(expanded.text, allow_html=doc.raw_html)
        return RenderedBody(html=Markup(expanded.restore(html)), headings=headings)

    def render_document(self, doc: Document, template: Template) -> bytes:
        """Render a single document page.

        Args:
            doc: Document to render.
            template: Template resolved for the document.

        Returns:
            UTF-8 encoded HTML.

        Raises:
            RenderError: If the body or the template fails to render.
        """
        body = self.convert(doc)
        context = self.base_context()
        context.update(
            kind="single",
            page=doc,
            content=body.html,
            toc=body.toc,
            headings=body.headings,
        )
        return self._render(template, context, doc.error_path)

    def render_listing(
        self,
        template: Template,
        index: TaxonomyIndex,
        pager: Pager,
        kind: str,
        meta: Document | None = None,
    ) -> bytes:
        """Render one page of a listing (home, section or taxonomy term).

        Args:
            template: Template resolved for the listing.
            index: Index being listed.
            pager: Page of the index to render.
            kind: "list" or "taxonomy".
            meta: Optional ``_index.md`` document supplying title and body.

        Returns:
            UTF-8 encoded HTML.
        """
        content = self.convert(meta).html if meta is not None else Markup("")
        context = self.base_context()
        context.update(
            kind=kind,
            page=meta,
            title=self.site.listing_title(index, meta),
            index=index,
            pager=pager,
            documents=index.collection,
            content=content,
            taxonomy=index.kind,
            term=index.term,
        )
        source = meta.error_path if meta is not None else self.site.output_file(pager.url)
        return self._render(template, context, source)

    def _render(self, template: Template, context: dict[str, Any], source: Path) -> bytes:
        try:
            html = template.render(**context)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(
                source,
                f"{_format_error_message(exc)} (in template {template.name})",
                original_error=exc,
            ) from exc
        if self.site.config.canonify_urls:
            html = absolutize_html_urls(html, self.site.config.base_url)
        return html.encode("utf-8")
