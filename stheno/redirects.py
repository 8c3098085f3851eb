"""Redirect pages for Stheno.

Two kinds of redirect are generated:
- one per front-matter alias, from the old URL to the document;
- ``<index url>page/1/`` to the index URL, since page 1 of every listing is
  served at the index URL itself.

The page body comes from ``_default/alias.html`` when the template set has
one, otherwise from a built-in meta-refresh page.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from markupsafe import escape

from .errors import RenderError
from .templates import ALIAS_TEMPLATE, TemplateSet
from .utils import url_to_output_path

if TYPE_CHECKING:
    from .site import Site

_BUILTIN_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{target}</title>
<link rel="canonical" href="{target}">
<meta name="robots" content="noindex">
<meta http-equiv="refresh" content="0; url={target}">
</head>
<body><p>Moved to <a href="{target}">{target}</a>.</p></body>
</html>
"""


@dataclass(frozen=True)
class Redirect:
    """A generated page that forwards to another URL.

    Attributes:
        url: URL the redirect is served at.
        target: Site-relative URL it points to.
        origin: Document that declared the alias, for error reporting.
    """

    url: str
    target: str
    origin: Path | None = None

    @property
    def output_path(self) -> PurePosixPath:
        return url_to_output_path(self.url)


def plan_redirects(site: Site) -> list[Redirect]:
    """Collect every redirect of a site, ordered by URL.

    Args:
        site: Assembled site.

    Returns:
        Redirects sorted by the URL they are served at.
    """
    redirects = [
        Redirect(url=alias, target=doc.url, origin=doc.error_path)
        for doc in site.documents
        for alias in doc.aliases
    ]
    for index in site.index.all():
        redirects.append(Redirect(url=f"{index.url}page/1/", target=index.url))
    return sorted(redirects, key=lambda r: r.url)


class RedirectRenderer:
    """Renders redirect pages."""

    def __init__(self, site: Site, templates: TemplateSet):
        self.site = site
        self.template = templates.get(ALIAS_TEMPLATE)

    def render(self, redirect: Redirect) -> bytes:
        target = self.site.url_for(redirect.target)
        if self.template is not None:
            try:
                html = self.template.render(
                    site=self.site, target=target, redirect=redirect
                )
            except Exception as exc:
                raise RenderError(
                    redirect.origin or self.site.output_file(redirect.url),
                    f"{type(exc).__name__}: {exc} (in template {ALIAS_TEMPLATE})",
                    original_error=exc,
                ) from exc
        else:
            html = _BUILTIN_PAGE.format(target=escape(target))
        return html.encode("utf-8")
