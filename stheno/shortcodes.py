"""Shortcode expansion for Stheno.

A shortcode embeds a template call in a document body::

    {{< figure src="/img/cat.png" caption="A cat" >}}
    See {{< ref "posts/2021-01-01-hello.md" >}} for details.

``name`` is looked up as ``shortcodes/<name>.html`` in the template set and
rendered with ``args`` (positional), ``kwargs`` (key="value" pairs), ``page``
and ``site``. The built-in ``ref`` shortcode returns the URL of another
document by its source path. ``{{</* name */>}}`` produces the literal text
``{{< name >}}``.

Expansion happens before Markdown conversion: every shortcode is replaced by
an inert placeholder token, the body is converted, and the rendered shortcode
HTML is substituted back. Shortcode output is therefore never escaped by the
Markdown safety policy; it comes from the site's own templates.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from markupsafe import escape

from .content import Document
from .errors import RenderError
from .templates import TemplateSet

SHORTCODE_RE = re.compile(
    r"\{\{<\s*(?P<comment>/\*)?\s*(?P<name>[A-Za-z][\w-]*)(?P<args>.*?)\s*(?P<end>\*/)?\s*>\}\}",
    re.DOTALL,
)
_KWARG_RE = re.compile(r"^(?P<key>[A-Za-z_][\w-]*)=(?P<value>.*)$", re.DOTALL)

BUILTIN_REF = "ref"


def placeholder(index: int) -> str:
    """Inert token that survives Markdown conversion unchanged."""
    return f"STHENOSC{index}END"


@dataclass
class ExpandedBody:
    """Body text with shortcodes replaced by placeholders.

    Attributes:
        text: Body with placeholder tokens.
        fragments: Placeholder token to rendered HTML.
    """

    text: str
    fragments: dict[str, str] = field(default_factory=dict)

    def restore(self, html: str) -> str:
        """Substitute rendered fragments back into converted HTML."""
        for token, fragment in self.fragments.items():
            # A shortcode alone on its line becomes its own block
            html = html.replace(f"<p>{token}</p>\n", fragment)
            html = html.replace(f"<p>{token}</p>", fragment)
            html = html.replace(token, fragment)
        return html


def parse_arguments(text: str) -> tuple[list[str], dict[str, str]]:
    """Split a shortcode argument string into positional and keyword args.

    Raises:
        ValueError: On unbalanced quotes.
    """
    args: list[str] = []
    kwargs: dict[str, str] = {}
    for token in shlex.split(text, posix=True):
        match = _KWARG_RE.match(token)
        if match:
            kwargs[match.group("key")] = match.group("value")
        else:
            args.append(token)
    return args, kwargs


class ShortcodeExpander:
    """Expands shortcodes for one document.

    Attributes:
        templates: Template set holding ``shortcodes/*.html``.
        resolve_ref: Callable mapping a document source path to its URL, or
            None when no such published document exists.
        context: Extra template context (``site`` and friends).
    """

    def __init__(
        self,
        templates: TemplateSet,
        resolve_ref: Callable[[str], str | None],
        context: dict[str, Any] | None = None,
    ):
        self.templates = templates
        self.resolve_ref = resolve_ref
        self.context = dict(context or {})

    def expand(self, text: str, doc: Document) -> ExpandedBody:
        """Replace every shortcode in ``text`` with a placeholder.

        Raises:
            RenderError: On an unknown shortcode, malformed arguments, an
                unresolved ``ref`` or a failing shortcode template.
        """
        expanded = ExpandedBody(text="")

        def repl(match: re.Match) -> str:
            name = match.group("name")
            if match.group("comment"):
                literal = f"{{{{< {name}{match.group('args')} >}}}}"
                fragment = str(escape(literal))
            else:
                fragment = self._render(name, match.group("args"), doc)
            token = placeholder(len(expanded.fragments))
            expanded.fragments[token] = fragment
            return token

        expanded.text = SHORTCODE_RE.sub(repl, text)
        return expanded

    def _render(self, name: str, raw_args: str, doc: Document) -> str:
        try:
            args, kwargs = parse_arguments(raw_args)
        except ValueError as exc:
            raise RenderError(
                doc.error_path,
                f"malformed arguments to shortcode '{name}': {exc}",
                directive=name,
                original_error=exc,
            ) from exc

        if name == BUILTIN_REF:
            return self._ref(args, kwargs, doc)

        template = self.templates.shortcode(name)
        if template is None:
            raise RenderError(
                doc.error_path, f"unknown shortcode '{name}'", directive=name
            )
        try:
            rendered = template.render(
                args=args, kwargs=kwargs, page=doc, **self.context
            )
        except Exception as exc:
            raise RenderError(
                doc.error_path,
                f"shortcode '{name}' failed: {type(exc).__name__}: {exc}",
                directive=name,
                original_error=exc,
            ) from exc
        return rendered.strip()

    def _ref(self, args: list[str], kwargs: dict[str, str], doc: Document) -> str:
        target = args[0] if args else kwargs.get("path", "")
        url = self.resolve_ref(target.strip("/")) if target else None
        if url is None:
            raise RenderError(
                doc.error_path,
                f"ref target '{target}' does not match any published document",
                directive=BUILTIN_REF,
            )
        return str(escape(url))
