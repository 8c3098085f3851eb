"""Site configuration for Stheno.

Configuration is read from ``stheno.yaml`` at the project root and merged over
:data:`DEFAULT_CONFIG`. The result is validated into a :class:`SiteConfig`
record that is passed explicitly through the build.

Key functions:
- load_config: Load and validate the configuration of a project.
- load_data: Load site data from YAML files in the data directory.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "stheno.yaml"

# Index kinds used for section and home listings
RESERVED_KINDS = frozenset({"section", "home", "page"})

DEFAULT_CONFIG: dict[str, Any] = {
    "base_url": "",
    "title": "",
    "page_size": 10,
    "drafts": False,
    "output_dir": "public",
    "content_dir": "content",
    "templates_dir": "templates",
    "static_dir": "static",
    "data_dir": "data",
    "theme": None,
    "taxonomies": {"tags": []},
    "strict": True,
    "workers": 1,
    "canonify_urls": False,
    "feed_limit": 20,
    "optimize_assets": False,
    "params": {},
}


@dataclass(frozen=True)
class SiteConfig:
    """Validated site configuration.

    Attributes:
        project_root: Directory containing the project.
        base_url: Absolute URL the site is published at ("" when unknown).
        title: Site title.
        page_size: Number of documents per listing page.
        drafts: Preview mode; drafts are published when True.
        output_dir: Absolute path of the published output tree.
        content_dir: Absolute path of the content tree.
        templates_dir: Absolute path of the project template directory.
        static_dir: Absolute path of the passthrough asset directory.
        data_dir: Absolute path of the site data directory.
        theme: Optional theme name under ``themes/``.
        taxonomies: Taxonomy kind to declared terms.
        strict: Fail on the first render error when True.
        workers: Thread pool size for loading and rendering.
        canonify_urls: Rewrite root-relative URLs against base_url.
        feed_limit: Maximum number of feed items.
        optimize_assets: Minify JS and optimize images while copying.
        params: Free-form site metadata exposed to templates.
    """

    project_root: Path
    base_url: str = ""
    title: str = ""
    page_size: int = 10
    drafts: bool = False
    output_dir: Path = Path("public")
    content_dir: Path = Path("content")
    templates_dir: Path = Path("templates")
    static_dir: Path = Path("static")
    data_dir: Path = Path("data")
    theme: str | None = None
    taxonomies: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: {"tags": ()}
    )
    strict: bool = True
    workers: int = 1
    canonify_urls: bool = False
    feed_limit: int = 20
    optimize_assets: bool = False
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def theme_dir(self) -> Path | None:
        if not self.theme:
            return None
        return self.project_root / "themes" / self.theme

    @property
    def template_dirs(self) -> list[Path]:
        """Template search path, highest priority first."""
        dirs = [self.templates_dir]
        if self.theme_dir is not None:
            dirs.append(self.theme_dir / "templates")
        return dirs

    @property
    def static_dirs(self) -> list[Path]:
        """Static asset directories, lowest priority first."""
        dirs = []
        if self.theme_dir is not None:
            dirs.append(self.theme_dir / "static")
        dirs.append(self.static_dir)
        return dirs


def load_config(
    project_root: Path, overrides: Mapping[str, Any] | None = None
) -> SiteConfig:
    """Load site configuration from stheno.yaml.

    Args:
        project_root: Root directory of the project.
        overrides: Values that take precedence over the file (CLI flags).
            ``None`` values are ignored.

    Returns:
        Validated SiteConfig.

    Raises:
        ConfigError: If the file is not a mapping or a value is invalid.
    """
    config_path = project_root / CONFIG_FILENAME
    raw = dict(DEFAULT_CONFIG)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(CONFIG_FILENAME, f"invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(CONFIG_FILENAME, "top level must be a mapping")
        raw.update(loaded)
    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value
    return config_from_mapping(project_root, raw)


def config_from_mapping(project_root: Path, raw: Mapping[str, Any]) -> SiteConfig:
    """Validate a raw configuration mapping into a SiteConfig."""
    unknown = sorted(set(raw) - set(DEFAULT_CONFIG))
    if unknown:
        raise ConfigError(unknown[0], "unknown configuration key")
    values = dict(DEFAULT_CONFIG)
    values.update(raw)

    root = project_root.resolve()
    return SiteConfig(
        project_root=root,
        base_url=_string(values, "base_url").rstrip("/"),
        title=_string(values, "title"),
        page_size=_positive_int(values, "page_size"),
        drafts=_boolean(values, "drafts"),
        output_dir=_directory(root, values, "output_dir"),
        content_dir=_directory(root, values, "content_dir"),
        templates_dir=_directory(root, values, "templates_dir"),
        static_dir=_directory(root, values, "static_dir"),
        data_dir=_directory(root, values, "data_dir"),
        theme=_string(values, "theme") or None,
        taxonomies=_taxonomies(values["taxonomies"]),
        strict=_boolean(values, "strict"),
        workers=_positive_int(values, "workers"),
        canonify_urls=_boolean(values, "canonify_urls"),
        feed_limit=_positive_int(values, "feed_limit"),
        optimize_assets=_boolean(values, "optimize_assets"),
        params=_mapping(values, "params"),
    )


def load_data(data_dir: Path) -> dict[str, Any]:
    """Load site data from YAML files in the data directory.

    ``site.yaml`` is merged at the top level, every other file is stored
    under its stem.

    Args:
        data_dir: Directory holding ``*.yaml`` data files.

    Returns:
        Dictionary containing merged data from all YAML files.
    """
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.glob("*.yaml")):
        with open(path, encoding="utf-8") as f:
            try:
                payload = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(path.name, f"invalid YAML: {exc}") from exc
        if payload is None:
            continue
        if path.name == "site.yaml":
            if not isinstance(payload, dict):
                raise ConfigError(path.name, "site data must be a mapping")
            data.update(payload)
        else:
            data[path.stem] = payload
    return data


def _string(values: Mapping[str, Any], key: str) -> str:
    value = values[key]
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(key, f"expected a string, got {type(value).__name__}")
    return value


def _boolean(values: Mapping[str, Any], key: str) -> bool:
    value = values[key]
    if not isinstance(value, bool):
        raise ConfigError(key, f"expected true or false, got {value!r}")
    return value


def _positive_int(values: Mapping[str, Any], key: str) -> int:
    value = values[key]
    # bool is an int subclass; `page_size: yes` is a mistake, not 1
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(key, f"expected a positive integer, got {value!r}")
    return value


def _mapping(values: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = values[key] or {}
    if not isinstance(value, dict):
        raise ConfigError(key, "expected a mapping")
    return dict(value)


def _directory(root: Path, values: Mapping[str, Any], key: str) -> Path:
    value = values[key]
    if not isinstance(value, (str, Path)) or not str(value):
        raise ConfigError(key, "expected a directory path")
    path = Path(value)
    return path if path.is_absolute() else root / path


def _taxonomies(value: Any) -> dict[str, tuple[str, ...]]:
    """Normalize ``taxonomies`` from list or mapping form.

    ``[tags, categories]`` declares kinds with no up-front terms;
    ``{tags: [python, go]}`` also declares terms that always get a page.
    """
    if value is None:
        return {}
    if isinstance(value, list):
        value = {kind: [] for kind in value}
    if not isinstance(value, dict):
        raise ConfigError("taxonomies", "expected a list or a mapping")
    result: dict[str, tuple[str, ...]] = {}
    for kind, terms in value.items():
        if not isinstance(kind, str) or not kind or "/" in kind:
            raise ConfigError("taxonomies", f"invalid taxonomy kind {kind!r}")
        if kind in RESERVED_KINDS:
            raise ConfigError("taxonomies", f"'{kind}' is reserved for listings")
        if terms is None:
            terms = []
        if not isinstance(terms, list) or not all(
            isinstance(term, (str, int)) for term in terms
        ):
            raise ConfigError("taxonomies", f"declared terms of '{kind}' must be a list")
        result[kind] = tuple(dict.fromkeys(str(term) for term in terms))
    return result
