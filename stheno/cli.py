"""Command-line interface for Stheno.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- list: List the documents of the site.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__
from .config import load_config
from .errors import BuildError, ConfigError


def _relative(path: Path | None, project_root: Path) -> str:
    if path is None:
        return "-"
    try:
        return str(path.resolve().relative_to(project_root.resolve()))
    except ValueError:
        return str(path)


@click.group()
@click.version_option(version=__version__, prog_name="stheno")
@click.option("-v", "--verbose", is_flag=True, help="Log build stages and files")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
def cli(verbose: bool, quiet: bool):
    """Stheno static site compiler."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--lenient", is_flag=True, help="Render every page and report all failures")
@click.option("--dry-run", is_flag=True, help="Render without writing the output")
@click.option("--base-url", help="Absolute URL the site is published at")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory (overrides stheno.yaml)",
)
@click.option("--workers", type=click.IntRange(min=1), help="Render worker threads")
def build(
    drafts: bool,
    lenient: bool,
    dry_run: bool,
    base_url: str | None,
    output: Path | None,
    workers: int | None,
):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import build as build_site

    overrides = {
        "drafts": True if drafts else None,
        "base_url": base_url,
        "output_dir": str(output.resolve()) if output is not None else None,
        "workers": workers,
        "strict": False if lenient else None,
    }
    try:
        config = load_config(project_root, overrides)
        report = build_site(config, dry_run=dry_run)
    except ConfigError as exc:
        click.echo(click.style("Invalid configuration:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  {exc}", fg="white"), err=True)
        raise SystemExit(1) from None
    except BuildError as exc:
        # Display user-friendly error message
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        if exc.source_path is not None:
            rel_path = _relative(exc.source_path, project_root)
            click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        for failure in exc.failures:
            rel_path = _relative(failure.source_path, project_root)
            click.echo(
                click.style(f"  - {rel_path}: ", fg="yellow")
                + click.style(failure.message, fg="white"),
                err=True,
            )
        raise SystemExit(1) from None

    if report.dry_run:
        click.echo(f"Rendered {len(report.pages)} pages (dry run, nothing written)")
    else:
        click.echo(f"Built {len(report.pages)} pages into {report.output_dir}")


@cli.command(name="list")
@click.option("--drafts", is_flag=True, help="Include draft content")
def list_documents(drafts: bool):
    """List the documents of the site."""
    project_root = Path.cwd()
    from .content import DocumentLoader
    from .taxonomy import sort_documents

    try:
        config = load_config(project_root)
        documents = DocumentLoader(config.content_dir, config.taxonomies).load()
    except (ConfigError, BuildError) as exc:
        raise click.ClickException(str(exc)) from None

    for doc in sort_documents(d for d in documents if not d.is_list_meta):
        if doc.draft and not (drafts or config.drafts):
            continue
        date = doc.date.strftime("%Y-%m-%d") if doc.date else "----------"
        flag = click.style("draft", fg="yellow") if doc.draft else "     "
        click.echo(f"{date}  {flag}  {doc.section or '-':<12} {doc.url}")


def main():
    """Entry point for the CLI application."""
    cli()
