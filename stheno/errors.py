"""Exception types raised by the Stheno build pipeline.

Every build failure carries the file it originated from and a human readable
cause, so the CLI can point authors straight at the offending document or
template.

Hierarchy:
- SthenoError: base class for everything raised on purpose.
- ConfigError: invalid site configuration.
- BuildError: a build could not produce a site.
    - ParseError: malformed front-matter or body (fatal).
    - ResolutionError: no template matches a page (fatal).
    - RenderError: a single page failed to render.
    - WriteError: publishing the output tree failed (fatal).
    - BuildCancelled: the build was cancelled before publishing.
"""

from __future__ import annotations

from pathlib import Path


class SthenoError(Exception):
    """Base class for all Stheno errors."""


class ConfigError(SthenoError):
    """Invalid value in the site configuration.

    Attributes:
        key: Configuration key that failed validation.
        message: Human-readable error message.
    """

    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"config '{key}': {message}")


class BuildError(SthenoError):
    """Error during a site build with file context.

    Attributes:
        source_path: Path to the file that caused the error (may be None for
            failures that are not tied to a single file).
        message: Human-readable error message.
        original_error: The original exception that was caught, if any.
        failures: Individual render failures collected by a lenient build.
    """

    def __init__(
        self,
        source_path: Path | None,
        message: str,
        original_error: Exception | None = None,
        failures: list[RenderError] | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        self.failures = list(failures or [])
        if source_path is None:
            super().__init__(message)
        else:
            super().__init__(f"{source_path}: {message}")


class ParseError(BuildError):
    """Malformed front-matter or document body.

    Attributes:
        line: 1-based line number in the source file, when known.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        line: int | None = None,
        original_error: Exception | None = None,
    ):
        self.line = line
        location = f"line {line}: " if line is not None else ""
        super().__init__(source_path, f"{location}{message}", original_error)


class ResolutionError(BuildError):
    """No template in the layered template set matches a page.

    Attributes:
        candidates: Template names that were tried, in lookup order.
    """

    def __init__(
        self,
        source_path: Path | None,
        message: str,
        candidates: list[str] | None = None,
        original_error: Exception | None = None,
    ):
        self.candidates = list(candidates or [])
        super().__init__(source_path, message, original_error)


class RenderError(BuildError):
    """A single page failed to render.

    Attributes:
        directive: Name of the shortcode or template reference that could not
            be resolved, when the failure was caused by one.
    """

    def __init__(
        self,
        source_path: Path | None,
        message: str,
        directive: str | None = None,
        original_error: Exception | None = None,
    ):
        self.directive = directive
        super().__init__(source_path, message, original_error)


class WriteError(BuildError):
    """Filesystem failure while publishing the output tree."""


class BuildCancelled(BuildError):
    """The build was cancelled; the previously published output is untouched."""

    def __init__(self, message: str = "build cancelled"):
        super().__init__(None, message)
