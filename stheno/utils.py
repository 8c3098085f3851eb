"""Utility functions for Stheno.

String, path and URL helpers shared by the loader, the renderer and the
assembler.

Key functions:
    slugify: Convert filenames to URL slugs.
    titleize: Convert filenames to human-readable titles.
    extract_date_from_name: Extract date from a YYYY-MM-DD filename prefix.
    first_paragraph: Plain text of the first paragraph, for descriptions.
    is_markdown / is_html / is_ignored: Classify content tree entries.
    join_root_url: Join a base URL with a path.
    absolutize_html_urls: Convert root-relative URLs to absolute in HTML.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

MARKDOWN_SUFFIXES = (".md", ".markdown")
LIST_META_NAME = "_index.md"

_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-|$)")

# URL attribute regex pattern for finding href, src, action attributes
_URL_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:href|src|action)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

# URL prefixes that should not be modified
_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "#",
    "javascript:",
    "data:",
)


def strip_date_prefix(name: str) -> str:
    """Remove a leading ``YYYY-MM-DD-`` prefix from a filename stem."""
    match = _DATE_PREFIX_RE.match(name)
    if not match:
        return name
    return name[match.end() :]


def slugify(name: str) -> str:
    """Convert a filename stem (or any title) to a URL slug.

    A leading date prefix is dropped, every run of characters outside
    ``[a-z0-9]`` becomes a single hyphen.

    Args:
        name: Filename stem or free text.

    Returns:
        URL-friendly slug, ``"index"`` when nothing usable remains.

    Examples:
        >>> slugify("2024-01-15-Hello World")
        'hello-world'
    """
    cleaned = strip_date_prefix(name)
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = strip_date_prefix(Path(filename).stem)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a UTC date from a filename with a YYYY-MM-DD prefix.

    Args:
        name: Filename stem (without extension).

    Returns:
        Timezone-aware datetime at midnight UTC, or None when the stem has no
        valid date prefix.
    """
    match = _DATE_PREFIX_RE.match(name)
    if not match:
        return None
    year, month, day = (int(group) for group in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def first_heading(text: str) -> str | None:
    """Return the text of the first level-1 ATX heading, if any."""
    in_fence = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(("```", "~~~")):
            in_fence = not in_fence
            continue
        if not in_fence and stripped.startswith("# "):
            return stripped[2:].strip()
    return None


def first_paragraph(text: str, limit: int = 160) -> str:
    """Extract and clean the first prose paragraph from Markdown text.

    Headings, images, code fences and shortcode-only paragraphs are skipped.
    HTML tags are stripped and whitespace collapsed.

    Args:
        text: Markdown body.
        limit: Maximum character length of the result.

    Returns:
        Cleaned first paragraph, truncated to ``limit`` characters.
    """
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    for para in paragraphs:
        if para.startswith(("#", "![", "```", "~~~", "{{<", "---")):
            continue
        para = re.sub(r"<[^>]+>", "", para)
        para = re.sub(r"\{\{<.*?>\}\}", "", para)
        para = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", para)
        collapsed = " ".join(para.split())
        if collapsed:
            return collapsed[:limit]
    return ""


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown document."""
    return path.suffix.lower() in MARKDOWN_SUFFIXES


def is_html(path: Path) -> bool:
    """Check if a path is a raw HTML document."""
    return path.suffix.lower() == ".html"


def is_ignored(rel: Path) -> bool:
    """Check whether a path relative to the content root is skipped.

    Any component starting with ``_`` or ``.`` hides the entry, except the
    ``_index.md`` list metadata file itself.
    """
    for part in rel.parts[:-1]:
        if part.startswith(("_", ".")):
            return True
    if rel.name == LIST_META_NAME:
        return False
    return rel.name.startswith(("_", "."))


def url_to_output_path(url: str) -> PurePosixPath:
    """Map a page URL to the file that serves it in the output tree.

    Examples:
        >>> url_to_output_path("/posts/hello/")
        PurePosixPath('posts/hello/index.html')
        >>> url_to_output_path("/")
        PurePosixPath('index.html')
    """
    stripped = url.strip("/")
    if not stripped:
        return PurePosixPath("index.html")
    if url.endswith("/"):
        return PurePosixPath(stripped) / "index.html"
    return PurePosixPath(stripped)


def normalize_url(url: str) -> str:
    """Normalize a site-relative URL to ``/segment/segment/`` form."""
    segments = [s for s in url.strip().split("/") if s]
    if not segments:
        return "/"
    path = "/".join(segments)
    if "." in segments[-1]:
        return f"/{path}"
    return f"/{path}/"


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def absolutize_html_urls(html: str, root_url: str) -> str:
    """Rewrite root-relative URLs in HTML to absolute URLs.

    Processes href, src and action attributes. External URLs, anchors,
    mailto/tel/data links and javascript: URLs are left unchanged.

    Args:
        html: HTML content to process.
        root_url: Base URL to prepend to relative paths.

    Returns:
        HTML with root-relative URLs converted to absolute.
    """
    if not root_url:
        return html

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if not url.startswith("/") or url.startswith(_URL_SKIP_PREFIXES):
            return match.group(0)
        absolute = join_root_url(root_url, url)
        return f"{match.group('prefix')}{absolute}{match.group('suffix')}"

    return _URL_ATTR_RE.sub(repl, html)
