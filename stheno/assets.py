"""Static asset pipeline for Stheno.

Static directories are layered: the theme's ``static/`` first, then the
project's ``static/``, whose files override theme files with the same
relative path. Files are copied unmodified unless asset optimization is
enabled, in which case they go through the processors of
:mod:`stheno.asset_processors`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path, PurePosixPath

from .asset_processors import AssetProcessorRegistry, Outcome, create_default_registry

logger = logging.getLogger(__name__)

_LITTER_NAMES = frozenset({".git", ".hg", ".svn", ".DS_Store", "Thumbs.db"})


def _is_litter(name: str) -> bool:
    return name in _LITTER_NAMES or name.endswith((".swp", "~"))


class AssetPipeline:
    """Copies (and optionally optimizes) static assets into an output tree.

    Attributes:
        static_dirs: Static directories, lowest priority first.
        processor_registry: Registry of asset processors.
    """

    def __init__(
        self,
        static_dirs: Sequence[Path],
        optimize: bool = False,
        processor_registry: AssetProcessorRegistry | None = None,
    ):
        self.static_dirs = list(static_dirs)
        self.processor_registry = processor_registry or create_default_registry(optimize)

    def plan(self) -> dict[PurePosixPath, Path]:
        """Map each output path to the source file that wins for it.

        Version control directories and editor or OS litter (``.git``,
        ``.DS_Store``, ``*.swp``, ``*~``) are skipped. Other dotfiles such as
        ``.well-known/`` and ``.nojekyll`` are copied.

        Returns:
            Output path relative to the output root, to source file, in
            sorted order.
        """
        files: dict[PurePosixPath, Path] = {}
        for static_dir in self.static_dirs:
            if not static_dir.is_dir():
                continue
            for item in sorted(static_dir.rglob("*")):
                if item.is_dir():
                    continue
                rel = PurePosixPath(item.relative_to(static_dir).as_posix())
                if any(_is_litter(part) for part in rel.parts):
                    continue
                files[rel] = item
        return dict(sorted(files.items()))

    def run(
        self,
        output_dir: Path,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[PurePosixPath]:
        """Copy every planned asset into ``output_dir``.

        Args:
            output_dir: Root of the output tree being written.
            checkpoint: Called before each file is copied; raising from it
                stops the pipeline.

        Returns:
            Relative paths of the copied assets.
        """
        copied = []
        for rel, source in self.plan().items():
            if checkpoint is not None:
                checkpoint()
            dest = output_dir.joinpath(*rel.parts)
            if self.processor_registry.process(source, dest) is Outcome.OPTIMIZED:
                logger.debug("Optimized %s", rel)
            copied.append(rel)
        logger.debug("Copied %d static assets", len(copied))
        return copied
