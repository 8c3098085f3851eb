"""Template resolution for Stheno.

Templates live in a layered set of directories: the project's ``templates/``
first, then the theme's ``templates/`` when a theme is configured. A page is
matched to a template by walking an explicit, ordered chain of candidate
:class:`TemplateKey` values; the first one that exists wins.

Lookup chain for a page of kind ``single``, ``list`` or ``taxonomy``:
1. ``<scope>/<layout>.html`` then ``_default/<layout>.html`` (only when the
   document sets a ``layout`` override)
2. ``<scope>/<kind>.html`` where scope is the section or taxonomy kind
3. ``_default/<kind>.html``
4. ``_default/default.html``

The home page tries ``index.html`` before ``_default/list.html``.

Key classes:
- TemplateKey: (scope, kind) identity of a template.
- TemplateSet: Loads and compiles every template once and resolves chains.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateSyntaxError,
    select_autoescape,
)

from .errors import ResolutionError

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "_default"
SINGLE = "single"
LIST = "list"
TAXONOMY = "taxonomy"

SHORTCODE_DIR = "shortcodes"
ALIAS_TEMPLATE = f"{DEFAULT_SCOPE}/alias.html"


@dataclass(frozen=True)
class TemplateKey:
    """Identity of a template: a scope (section, taxonomy kind, ``_default``
    or "" for top-level templates) and a kind."""

    scope: str
    kind: str

    @property
    def name(self) -> str:
        if not self.scope:
            return f"{self.kind}.html"
        return f"{self.scope}/{self.kind}.html"


def candidates(kind: str, scope: str = "", layout: str | None = None) -> list[TemplateKey]:
    """Build the ordered lookup chain for a page.

    Args:
        kind: Render kind (single, list or taxonomy).
        scope: Section name or taxonomy kind; "" for root-level documents.
        layout: Optional content-type override from front-matter.

    Returns:
        Candidate keys, most specific first.
    """
    chain: list[TemplateKey] = []
    if layout:
        if scope:
            chain.append(TemplateKey(scope, layout))
        chain.append(TemplateKey(DEFAULT_SCOPE, layout))
    if scope:
        chain.append(TemplateKey(scope, kind))
    chain.append(TemplateKey(DEFAULT_SCOPE, kind))
    chain.append(TemplateKey(DEFAULT_SCOPE, "default"))
    return _dedupe(chain)


def home_candidates() -> list[TemplateKey]:
    """Lookup chain for the home listing."""
    return [
        TemplateKey("", "index"),
        TemplateKey(DEFAULT_SCOPE, LIST),
        TemplateKey(DEFAULT_SCOPE, "default"),
    ]


def _dedupe(chain: list[TemplateKey]) -> list[TemplateKey]:
    return list(dict.fromkeys(chain))


def _format_date(value: datetime | None, fmt: str = "%Y-%m-%d") -> str:
    if value is None:
        return ""
    return value.strftime(fmt)


class TemplateSet:
    """Layered, read-only set of compiled Jinja2 templates.

    Every template is compiled when the set is created, so syntax errors
    surface before any page renders and the set can be shared by render
    workers without locking.

    Attributes:
        search_paths: Template directories, highest priority first.
        env: Jinja2 environment.
    """

    def __init__(self, search_paths: Sequence[Path]):
        self.search_paths = [p for p in search_paths if p.is_dir()]
        self.env = Environment(
            loader=FileSystemLoader([str(p) for p in self.search_paths]),
            autoescape=select_autoescape(["html", "xml"]),
            auto_reload=False,
            cache_size=-1,
            keep_trailing_newline=True,
        )
        self.env.filters["date"] = _format_date
        self._templates: dict[str, Template] = {}
        self._load_all()

    def _load_all(self) -> None:
        names = self.env.list_templates(filter_func=lambda n: n.endswith((".html", ".xml")))
        for name in sorted(names):
            try:
                self._templates[name] = self.env.get_template(name)
            except TemplateSyntaxError as exc:
                raise ResolutionError(
                    Path(exc.filename or name),
                    f"template syntax error on line {exc.lineno}: {exc.message}",
                    [name],
                    exc,
                ) from exc
        logger.debug("Compiled %d templates", len(self._templates))

    @property
    def names(self) -> list[str]:
        return sorted(self._templates)

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def get(self, name: str) -> Template | None:
        return self._templates.get(name)

    def resolve(self, chain: Sequence[TemplateKey], source: Path | None = None) -> Template:
        """Return the first template of ``chain`` that exists.

        Args:
            chain: Candidate keys in lookup order.
            source: Document (or index) the lookup is for, used in errors.

        Returns:
            The compiled template.

        Raises:
            ResolutionError: If no candidate exists.
        """
        for key in chain:
            template = self._templates.get(key.name)
            if template is not None:
                return template
        tried = [key.name for key in chain]
        raise ResolutionError(
            source,
            f"no template found; tried {', '.join(tried)}",
            tried,
        )

    def shortcode(self, name: str) -> Template | None:
        return self._templates.get(f"{SHORTCODE_DIR}/{name}.html")

    def from_string(self, source: str) -> Template:
        return self.env.from_string(source)

