"""Command-line interface for Quire.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the output directory.
- serve: Run development server with live reload.
- images: Optimize source images into the built site.
- post: Create a new piece of writing interactively.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .build import load_config
from .utils import slugify


@click.group()
@click.version_option(version=__version__, prog_name="quire")
def cli():
    """Quire static site generator."""


def report_build_error(exc, project_root: Path) -> None:
    """Print a failed build's source file and message to stderr."""
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
def build(drafts: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import BuildError, build_site

    try:
        result = build_site(project_root, include_drafts=drafts)
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    except BuildError as exc:
        report_build_error(exc, project_root)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides quire.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides quire.yaml ws_port)",
)
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(project_root, http_port=port, ws_port=ws_port)
    server.start(include_drafts=drafts)


@cli.command()
@click.option(
    "--source",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of original images (overrides quire.yaml images.source)",
)
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for optimized images (overrides quire.yaml images.output)",
)
@click.option(
    "--quality",
    type=click.IntRange(1, 95),
    help="JPEG quality (overrides quire.yaml images.jpeg_quality)",
)
def images(source: Path | None, output: Path | None, quality: int | None):
    """Optimize JPEG and PNG images into the built site."""
    project_root = Path.cwd()
    from .images import ImageOptimizer

    settings = load_config(project_root)["images"]
    source_dir = source or project_root / settings["source"]
    output_dir = output or project_root / settings["output"]
    try:
        optimizer = ImageOptimizer(
            jpeg_quality=quality or int(settings["jpeg_quality"]),
            png_colors=int(settings["png_colors"]),
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from None
    report = optimizer.run(source_dir, output_dir)
    click.echo(
        f"Optimized {len(report.written)} images into {output_dir} "
        f"(saved {report.saved} bytes)"
    )
    if report.skipped:
        click.echo(
            click.style(f"Skipped {len(report.skipped)} unreadable images", fg="yellow"),
            err=True,
        )


@cli.command()
def post():
    """Create a new piece of writing interactively."""
    project_root = Path.cwd()
    config = load_config(project_root)
    input_dir = project_root / config["input_dir"]

    if not input_dir.exists():
        raise click.ClickException(
            f"No {config['input_dir']}/ directory found. Run this command from a Quire project root."
        )

    target_dir = input_dir / _writing_folder(config["writing_glob"])

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    existing = _get_existing_categories(target_dir)
    if existing:
        category = questionary.autocomplete(
            "Category:", choices=existing, style=_questionary_style()
        ).ask()
    else:
        category = questionary.text("Category:", style=_questionary_style()).ask()
    if category is None:
        raise click.Abort()

    tags_answer = questionary.text(
        "Tags (comma separated):", style=_questionary_style()
    ).ask()
    if tags_answer is None:
        raise click.Abort()

    today = datetime.now()
    slug = slugify(title)
    filename = f"{today:%Y-%m-%d}-{slug}.md"
    target_path = target_dir / filename

    if target_path.exists():
        raise click.ClickException(
            f"File already exists: {target_path.relative_to(project_root)}"
        )
    conflicting = [
        f for f in _iter_markdown(target_dir) if slugify(f.stem) == slug
    ]
    if conflicting:
        raise click.ClickException(
            f"A file with slug '{slug}' already exists: {conflicting[0].name}"
        )

    frontmatter = {"title": title, "date": today.date()}
    if category.strip():
        frontmatter["category"] = category.strip()
    frontmatter["tags"] = [t.strip() for t in tags_answer.split(",") if t.strip()]
    target_dir.mkdir(parents=True, exist_ok=True)
    target_path.write_text(_render_document(frontmatter), encoding="utf-8")
    click.echo(f"Created {target_path.relative_to(project_root)}")


def _writing_folder(writing_glob: str) -> str:
    """Return the literal folder prefix of the writing glob ("writing/**" -> "writing")."""
    parts = []
    for part in writing_glob.strip().lstrip("./").split("/"):
        if any(ch in part for ch in "*?["):
            break
        parts.append(part)
    return "/".join(parts)


def _iter_markdown(folder: Path) -> list[Path]:
    if not folder.exists():
        return []
    return [f for f in folder.rglob("*.md") if f.is_file()]


def _get_existing_categories(folder: Path) -> list[str]:
    """Collect the categories already used in the writing folder."""
    from .extractors import extract_frontmatter
    from .taxonomy import filter_reserved, normalize_labels

    categories: set[str] = set()
    for path in _iter_markdown(folder):
        frontmatter, _ = extract_frontmatter(path.read_text(encoding="utf-8"))
        categories.update(filter_reserved(normalize_labels(frontmatter.get("category"))))
    return sorted(categories)


def _render_document(frontmatter: dict) -> str:
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n\n"


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
