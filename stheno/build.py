"""Site building functionality for Stheno.

This module contains the Site Assembler: the batch state machine that turns a
project into a published output tree.

    LOADING -> INDEXING -> RESOLVING -> RENDERING -> WRITING -> DONE

Any stage moves to FAILED when it raises.

Only the WRITING stage touches the filesystem. It writes the complete site
into a temporary sibling of the output directory and swaps it into place, so
a failed or cancelled build never leaves a partially updated site behind.

Key members:
- BuildState: Stages of a build.
- SiteReport: Summary of a successful build.
- SiteAssembler: Runs one build; can be cancelled from another thread.
- build: Convenience entry point, ``build(config) -> SiteReport``.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from jinja2 import Template

from .assets import AssetPipeline
from .config import SiteConfig, load_data
from .content import Document, DocumentLoader
from .errors import BuildCancelled, BuildError, RenderError, ResolutionError, WriteError
from .feeds import FeedRegistry, create_default_feed_registry
from .protocols import BuildObserver
from .redirects import Redirect, RedirectRenderer, plan_redirects
from .renderers import PageRenderer
from .site import Site
from .taxonomy import HOME_KIND, SECTION_KIND, Pager, SiteIndex, TaxonomyIndex
from .templates import LIST, SINGLE, TAXONOMY, TemplateSet, candidates, home_candidates
from .utils import url_to_output_path

logger = logging.getLogger(__name__)

REDIRECT = "redirect"


class BuildState(Enum):
    """Stages of a build, in order."""

    LOADING = "loading"
    INDEXING = "indexing"
    RESOLVING = "resolving"
    RENDERING = "rendering"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PlannedPage:
    """One file of the output tree, with everything needed to render it.

    Attributes:
        url: URL the page is served at.
        kind: "single", "list", "taxonomy" or "redirect".
        template: Resolved template (None for redirects).
        document: Document of a single page.
        index: Index of a listing page.
        pager: Page of ``index`` rendered by a listing page.
        meta: ``_index.md`` document of a listing page.
        redirect: Redirect of a redirect page.
    """

    url: str
    kind: str
    template: Template | None = None
    document: Document | None = None
    index: TaxonomyIndex | None = None
    pager: Pager | None = None
    meta: Document | None = None
    redirect: Redirect | None = None

    @property
    def output_path(self) -> PurePosixPath:
        return url_to_output_path(self.url)

    @property
    def source(self) -> Path | None:
        if self.document is not None:
            return self.document.error_path
        if self.meta is not None:
            return self.meta.error_path
        if self.redirect is not None:
            return self.redirect.origin
        return None

    def describe(self) -> str:
        if self.document is not None:
            return f"document '{self.document.source_path}'"
        if self.redirect is not None:
            return f"redirect to '{self.redirect.target}'"
        return f"listing '{self.url}'"


@dataclass
class SiteReport:
    """Summary of a successful build.

    Attributes:
        output_dir: Directory the site was published to.
        documents: Published documents.
        index: Home, section and taxonomy indexes.
        pages: Output paths of every rendered HTML page, redirects included.
        redirects: Number of redirect pages.
        feeds: Feed and sitemap files generated.
        assets: Static assets copied.
        dry_run: True when nothing was written.
        elapsed: Wall time of the build in seconds.
    """

    output_dir: Path
    documents: tuple[Document, ...]
    index: SiteIndex
    pages: list[PurePosixPath] = field(default_factory=list)
    redirects: int = 0
    feeds: list[str] = field(default_factory=list)
    assets: list[PurePosixPath] = field(default_factory=list)
    dry_run: bool = False
    elapsed: float = 0.0


class SiteAssembler:
    """Runs the build pipeline for one configuration.

    An assembler runs a single build. :meth:`cancel` may be called from any
    thread; the build stops at the next checkpoint (between stages, pages and
    written files) and raises :class:`BuildCancelled` without touching the
    published output.

    Attributes:
        config: Site configuration.
        state: Current stage.
        observer: Optional callable notified of every state transition.
        feed_registry: Feed generators run during WRITING.
    """

    def __init__(
        self,
        config: SiteConfig,
        observer: BuildObserver | None = None,
        feed_registry: FeedRegistry | None = None,
    ):
        self.config = config
        self.observer = observer
        self.feed_registry = feed_registry or create_default_feed_registry()
        self.state = BuildState.LOADING
        self._cancelled = threading.Event()
        self._failures_lock = threading.Lock()

    def cancel(self) -> None:
        """Request cancellation of the running build."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def checkpoint(self) -> None:
        """Raise BuildCancelled if cancellation was requested."""
        if self._cancelled.is_set():
            raise BuildCancelled()

    def run(self, dry_run: bool = False) -> SiteReport:
        """Build the site.

        Args:
            dry_run: Stop after rendering; nothing is written.

        Returns:
            SiteReport describing the build.

        Raises:
            ParseError: A document is malformed.
            ResolutionError: A page has no template, or two generated files
                share an output path.
            RenderError: A page failed to render (strict mode).
            BuildError: One or more pages failed to render (lenient mode);
                ``failures`` lists every one of them.
            WriteError: Publishing the output tree failed.
            BuildCancelled: The build was cancelled.
            ConfigError: A site data file is invalid.
        """
        started = time.perf_counter()
        config = self.config
        try:
            self._transition(BuildState.LOADING)
            data = load_data(config.data_dir)
            documents = DocumentLoader(
                config.content_dir, config.taxonomies, workers=config.workers
            ).load()
            self.checkpoint()

            self._transition(BuildState.INDEXING)
            site = Site.assemble(config, data, documents)
            self.checkpoint()

            self._transition(BuildState.RESOLVING)
            templates = TemplateSet(config.template_dirs)
            pages = self._plan(site, templates)
            assets = AssetPipeline(config.static_dirs, config.optimize_assets)
            self._check_collisions(site, pages, assets)
            self.checkpoint()

            self._transition(BuildState.RENDERING)
            rendered = self._render_all(site, templates, pages)
            self.checkpoint()

            report = SiteReport(
                output_dir=config.output_dir,
                documents=site.documents,
                index=site.index,
                pages=sorted(rendered),
                redirects=sum(1 for p in pages if p.kind == REDIRECT),
                dry_run=dry_run,
            )
            if not dry_run:
                self._transition(BuildState.WRITING)
                report.assets, report.feeds = self._publish(site, rendered, assets)
            self._transition(BuildState.DONE)
        except Exception:
            self._transition(BuildState.FAILED)
            raise

        report.elapsed = time.perf_counter() - started
        logger.info(
            "Built %d pages (%d documents) in %.2fs",
            len(report.pages),
            len(report.documents),
            report.elapsed,
        )
        return report

    def _transition(self, state: BuildState) -> None:
        self.state = state
        log = logger.warning if state is BuildState.FAILED else logger.info
        log("Build stage: %s", state.value)
        if self.observer is not None:
            self.observer(state)

    # Resolving

    def _plan(self, site: Site, templates: TemplateSet) -> list[PlannedPage]:
        """Resolve a template for every page of the site."""
        pages: list[PlannedPage] = []

        for doc in site.documents:
            chain = candidates(SINGLE, doc.section, doc.layout)
            template = templates.resolve(chain, doc.error_path)
            pages.append(PlannedPage(doc.url, SINGLE, template, document=doc))

        for index in site.index.all():
            meta = site.list_meta.get(index.term if index.kind == SECTION_KIND else "")
            if index.kind == HOME_KIND:
                kind, chain = LIST, home_candidates()
            elif index.kind == SECTION_KIND:
                kind = LIST
                chain = candidates(LIST, index.term, meta.layout if meta else None)
            else:
                kind, meta = TAXONOMY, None
                chain = candidates(TAXONOMY, index.kind)
            template = templates.resolve(chain, meta.error_path if meta else None)
            for pager in index.pagers:
                pages.append(
                    PlannedPage(
                        pager.url,
                        kind,
                        template,
                        index=index,
                        pager=pager,
                        meta=meta,
                    )
                )

        for redirect in plan_redirects(site):
            pages.append(PlannedPage(redirect.url, REDIRECT, redirect=redirect))

        logger.debug("Planned %d pages", len(pages))
        return pages

    def _check_collisions(
        self, site: Site, pages: list[PlannedPage], assets: AssetPipeline
    ) -> None:
        # feeds are only written when base_url is set
        feeds = (
            {PurePosixPath(generator.filename) for generator in self.feed_registry}
            if site.base_url
            else set()
        )
        claimed: dict[PurePosixPath, PlannedPage] = {}
        for page in pages:
            if page.output_path in feeds:
                raise ResolutionError(
                    page.source,
                    f"{page.describe()} collides with the generated feed "
                    f"'{page.output_path}'",
                )
            other = claimed.get(page.output_path)
            if other is not None:
                raise ResolutionError(
                    page.source or other.source,
                    f"output path '{page.output_path}' is produced by both "
                    f"{other.describe()} and {page.describe()}",
                )
            claimed[page.output_path] = page
        for rel, source in assets.plan().items():
            if rel in feeds:
                raise ResolutionError(
                    source, f"static file collides with the generated feed '{rel}'"
                )
            page = claimed.get(rel)
            if page is not None:
                raise ResolutionError(
                    source,
                    f"static file collides with {page.describe()} at '{rel}'",
                )

    # Rendering

    def _render_all(
        self, site: Site, templates: TemplateSet, pages: list[PlannedPage]
    ) -> dict[PurePosixPath, bytes]:
        """Render every planned page, keyed by output path."""
        page_renderer = PageRenderer(site, templates)
        redirect_renderer = RedirectRenderer(site, templates)
        failures: list[RenderError] = []

        def render(page: PlannedPage) -> tuple[PurePosixPath, bytes | None]:
            self.checkpoint()
            try:
                if page.redirect is not None:
                    html = redirect_renderer.render(page.redirect)
                elif page.document is not None:
                    html = page_renderer.render_document(page.document, page.template)
                else:
                    html = page_renderer.render_listing(
                        page.template, page.index, page.pager, page.kind, page.meta
                    )
            except RenderError as exc:
                if self.config.strict:
                    raise
                with self._failures_lock:
                    failures.append(exc)
                logger.warning("Render failed: %s", exc)
                return page.output_path, None
            return page.output_path, html

        results: dict[PurePosixPath, bytes | None] = {}
        if self.config.workers > 1 and len(pages) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                futures = [pool.submit(render, page) for page in pages]
                try:
                    for future in as_completed(futures):
                        path, html = future.result()
                        results[path] = html
                except BaseException:
                    pool.shutdown(wait=True, cancel_futures=True)
                    raise
        else:
            for page in pages:
                path, html = render(page)
                results[path] = html

        if failures:
            failures.sort(key=lambda exc: (str(exc.source_path), exc.message))
            raise BuildError(
                None,
                f"{len(failures)} page(s) failed to render",
                failures=failures,
            )
        return {path: results[path] for path in sorted(results)}

    # Writing

    def _publish(
        self,
        site: Site,
        rendered: dict[PurePosixPath, bytes],
        assets: AssetPipeline,
    ) -> tuple[list[PurePosixPath], list[str]]:
        """Write the site into a staging directory and swap it into place."""
        output_dir = self.config.output_dir
        try:
            output_dir.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(
                tempfile.mkdtemp(prefix=f".{output_dir.name}.", dir=output_dir.parent)
            )
        except OSError as exc:
            raise WriteError(output_dir, f"cannot create staging directory: {exc}", exc) from exc

        try:
            root = staging.resolve()
            try:
                for rel, html in rendered.items():
                    self.checkpoint()
                    target = staging.joinpath(*rel.parts)
                    if not target.resolve().is_relative_to(root):
                        raise WriteError(
                            output_dir / rel, f"output path '{rel}' escapes the output directory"
                        )
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(html)
                copied = assets.run(staging, self.checkpoint)
                feeds = self.feed_registry.generate_all(staging, site, self.checkpoint)
            except OSError as exc:
                failed = Path(exc.filename) if exc.filename else staging
                raise WriteError(failed, f"cannot write output: {exc.strerror or exc}", exc) from exc
            self.checkpoint()
            self._swap(staging, output_dir)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        logger.info("Published %s", output_dir)
        return copied, feeds

    @staticmethod
    def _swap(staging: Path, output_dir: Path) -> None:
        """Replace ``output_dir`` with ``staging`` using renames only.

        Raises:
            WriteError: If a rename fails; the previous output is restored.
        """
        backup = staging.with_name(f"{staging.name}.old")
        moved_aside = False
        try:
            if output_dir.exists():
                output_dir.rename(backup)
                moved_aside = True
            staging.rename(output_dir)
        except OSError as exc:
            if moved_aside and not output_dir.exists():
                backup.rename(output_dir)
            raise WriteError(output_dir, f"cannot publish output: {exc}", exc) from exc
        if moved_aside:
            shutil.rmtree(backup, ignore_errors=True)


def build(
    config: SiteConfig,
    dry_run: bool = False,
    observer: BuildObserver | None = None,
) -> SiteReport:
    """Build the site described by ``config``.

    Args:
        config: Validated site configuration.
        dry_run: Render everything but write nothing.
        observer: Optional callable notified of every state transition.

    Returns:
        SiteReport of the build.

    Raises:
        BuildError: Or one of its subclasses, when the build fails.
    """
    return SiteAssembler(config, observer=observer).run(dry_run=dry_run)
