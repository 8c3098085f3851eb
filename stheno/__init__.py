"""Stheno static site compiler.

Stheno turns a tree of Markdown documents with YAML front-matter, a layered set of
Jinja2 templates and a directory of static assets into a deployable static site.

The public entry point is :func:`stheno.build.build`, which runs the whole pipeline
(load, index, resolve, render, write) and either returns a report or raises a
:class:`stheno.errors.BuildError`. The CLI module wraps it for the command line.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
