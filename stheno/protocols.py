"""Protocol definitions for Stheno.

Interfaces shared between the build stages, so that body renderers and build
observers can be swapped without touching the assembler.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .build import BuildState
    from .renderers import Heading


@runtime_checkable
class BodyRenderer(Protocol):
    """Protocol for turning a document body into HTML.

    Implementations handle one source type (Markdown, HTML).
    """

    source_type: str

    @abstractmethod
    def render(self, text: str, allow_html: bool = False) -> tuple[str, list[Heading]]:
        """Render a body to HTML.

        Args:
            text: Normalized body text (shortcodes already replaced).
            allow_html: Whether raw HTML in the source passes through.

        Returns:
            Tuple of (rendered HTML, list of headings for TOC).
        """
        ...


@runtime_checkable
class BuildObserver(Protocol):
    """Receives state transitions of a build."""

    def __call__(self, state: BuildState) -> None: ...
