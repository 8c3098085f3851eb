"""Asset processors for Stheno.

Static files are copied byte for byte unless ``optimize_assets`` is on. In
that case JavaScript is minified with rjsmin and raster images are
re-encoded with Pillow. An optimizer that cannot handle a file falls back to
a plain copy and logs a warning; optimization never fails a build.

Key classes:
- AssetProcessor: Base class; subclasses set ``priority`` and ``suffixes``.
- ImageOptimizer: Re-encodes PNG, JPEG and WebP images.
- ScriptMinifier: Minifies ``.js`` files (``.min.js`` is left alone).
- PassthroughCopier: Plain copy, accepts everything.
- AssetProcessorRegistry: Picks the processor for a file.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from PIL import Image
from rjsmin import jsmin

logger = logging.getLogger(__name__)


class Outcome(Enum):
    COPIED = "copied"
    OPTIMIZED = "optimized"


class AssetProcessor(ABC):
    """Base class for asset processors.

    Attributes:
        priority: Processors with a higher priority are asked first.
        suffixes: Lowercase file suffixes handled; empty means any file.
    """

    priority: int = 0
    suffixes: frozenset[str] = frozenset()

    def accepts(self, path: Path) -> bool:
        return not self.suffixes or path.suffix.lower() in self.suffixes

    @abstractmethod
    def transform(self, source: Path, dest: Path) -> Outcome:
        """Write ``source`` to ``dest``, optimized when possible."""

    def passthrough(self, source: Path, dest: Path, reason: Exception | None = None) -> Outcome:
        if reason is not None:
            logger.warning("Copying %s unoptimized: %s", source.name, reason)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)
        return Outcome.COPIED


class ImageOptimizer(AssetProcessor):
    """Re-encodes images with Pillow's ``optimize`` flag."""

    priority = 20
    suffixes = frozenset({".png", ".jpg", ".jpeg", ".webp"})

    def transform(self, source: Path, dest: Path) -> Outcome:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with Image.open(source) as image:
                image.save(dest, format=image.format, optimize=True)
        except (OSError, ValueError) as exc:
            return self.passthrough(source, dest, exc)
        return Outcome.OPTIMIZED


class ScriptMinifier(AssetProcessor):
    priority = 10
    suffixes = frozenset({".js"})

    def accepts(self, path: Path) -> bool:
        # already minified upstream
        return super().accepts(path) and not path.name.endswith(".min.js")

    def transform(self, source: Path, dest: Path) -> Outcome:
        try:
            script = source.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            return self.passthrough(source, dest, exc)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(jsmin(script), encoding="utf-8")
        return Outcome.OPTIMIZED


class PassthroughCopier(AssetProcessor):
    def transform(self, source: Path, dest: Path) -> Outcome:
        return self.passthrough(source, dest)


class AssetProcessorRegistry:
    """Ordered collection of processors, highest priority first."""

    def __init__(self, processors: list[AssetProcessor] | None = None):
        self._processors: list[AssetProcessor] = []
        for processor in processors or []:
            self.register(processor)

    def register(self, processor: AssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=lambda p: -p.priority)

    def select(self, path: Path) -> AssetProcessor | None:
        return next((p for p in self._processors if p.accepts(path)), None)

    def process(self, source: Path, dest: Path) -> Outcome | None:
        """Run the selected processor; None when no processor accepts the file."""
        processor = self.select(source)
        if processor is None:
            return None
        return processor.transform(source, dest)


def create_default_registry(optimize: bool = False) -> AssetProcessorRegistry:
    """Build the registry used by :class:`~stheno.assets.AssetPipeline`.

    Args:
        optimize: Include the image optimizer and script minifier.
    """
    processors: list[AssetProcessor] = [PassthroughCopier()]
    if optimize:
        processors += [ImageOptimizer(), ScriptMinifier()]
    return AssetProcessorRegistry(processors)
