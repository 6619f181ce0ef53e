"""Turn a Quire project into a rendered site.

A build loads configuration and data, processes content, builds collections and the
tag/category indexes, renders templates, copies passthrough files and writes feeds.

Key functions:
- build_site: run a full build into the output directory.
- load_config: read quire.yaml over the defaults.
- load_data: gather the YAML files of the data directory.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jinja2 import TemplateSyntaxError

from .collections import PageCollection, TagCollection, create_default_collections
from .content import ContentProcessor, Page
from .feeds import create_default_feed_registry
from .html_utils import absolutize_html_urls
from .passthrough import PassthroughCopy
from .templates import TemplateEngine
from .utils import build_tags_index, ensure_clean_dir

CONFIG_FILENAME = "quire.yaml"


class BuildError(Exception):
    """A page failed to build.

    Attributes:
        source_path: The source file being rendered.
        message: Readable description of the failure.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


DEFAULT_CONFIG: dict[str, Any] = {
    "input_dir": "src",
    "output_dir": "_site",
    "layouts_dir": "_layouts",
    "includes_dir": "_includes",
    "data_dir": "_data",
    "port": 8080,
    "root_url": "",
    "posts_glob": "posts/**",
    "writing_glob": "writing/**",
    "passthrough": {"src/_assets/images": "assets/images"},
    "watch": ["css/**", "javascript/**"],
    "images": {
        "source": "src/_assets/images",
        "output": "_site/images",
        "jpeg_quality": 75,
        "png_colors": 256,
    },
}


@dataclass
class BuildResult:
    """What a build produced.

    Attributes:
        pages: Every page that was rendered.
        output_dir: Where the site was written.
        data: Site data exposed to templates.
        collections: Named collections, including tagList and categoryList.
        feeds: Feed filenames that were written.
    """

    pages: list[Page]
    output_dir: Path
    data: dict[str, Any]
    collections: dict[str, Any] = field(default_factory=dict)
    feeds: list[str] = field(default_factory=list)


def load_config(project_root: Path) -> dict[str, Any]:
    """Read quire.yaml from the project root over DEFAULT_CONFIG.

    Nested ``images`` settings are merged over their defaults; every other
    key replaces the default wholesale.

    Args:
        project_root: Directory holding quire.yaml.

    Returns:
        The merged configuration.
    """
    config_path = project_root / CONFIG_FILENAME
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if isinstance(loaded, dict):
            images = loaded.pop("images", None)
            config.update(loaded)
            if isinstance(images, dict):
                config["images"].update(images)
    return config


def load_data(data_dir: Path) -> dict[str, Any]:
    """Collect the ``*.yaml`` files of ``data_dir`` into one mapping.

    ``site.yaml`` is merged into the top level; every other file is
    available under its stem.

    Args:
        data_dir: Directory holding the data files.

    Returns:
        The site data, empty when the directory is missing.
    """
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.glob("*.yaml")):
        with open(path, encoding="utf-8") as f:
            payload = yaml.safe_load(f)
        if payload is None:
            continue
        if path.name == "site.yaml":
            if isinstance(payload, dict):
                data.update(payload)
        else:
            data[path.stem] = payload
    return data


def kept_output_globs(project_root: Path, config: dict[str, Any]) -> list[str]:
    """Output-relative globs owned by other tools, which clean builds leave alone.

    These are the ``watch`` globs (CSS and JavaScript written by external
    tooling) and the ``images.output`` directory when it sits inside the
    output directory.
    """
    globs = [str(pattern) for pattern in config.get("watch") or []]
    output_dir = project_root / config["output_dir"]
    images_dir = project_root / str(config.get("images", {}).get("output", ""))
    if images_dir != output_dir and images_dir.is_relative_to(output_dir):
        globs.append(f"{images_dir.relative_to(output_dir).as_posix()}/**")
    return globs


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    root_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Render every page of the project and write the site.

    Args:
        project_root: Directory holding quire.yaml and the input directory.
        include_drafts: Render pages marked as drafts too.
        root_url: Base URL for absolute links; overrides the configured one.
        clean_output: Empty the output directory first.
        output_dir_override: Write here instead of the configured output_dir.

    Returns:
        BuildResult containing all pages, output directory, site data and collections.

    Raises:
        FileNotFoundError: If the input directory does not exist.
        BuildError: If a page fails to render.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    input_dir = project_root / config["input_dir"]
    if not input_dir.exists():
        raise FileNotFoundError(f"Expected input directory at {input_dir}")
    output_dir = output_dir_override or (project_root / config["output_dir"])
    if clean_output:
        ensure_clean_dir(output_dir, keep=kept_output_globs(project_root, config))
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    data = load_data(input_dir / config["data_dir"])
    resolved_root = str(config.get("root_url") or "")
    if resolved_root:
        data.setdefault("root_url", resolved_root)

    pages = ContentProcessor(input_dir, layouts_dir=config["layouts_dir"]).load(
        include_drafts=include_drafts
    )
    corpus = PageCollection(pages, input_dir_name=input_dir.name)
    registry = create_default_collections(
        posts_glob=config["posts_glob"], writing_glob=config["writing_glob"]
    )
    collections = registry.build(corpus)
    tags = TagCollection(build_tags_index(pages))

    engine = TemplateEngine(
        input_dir,
        data,
        root_url=resolved_root,
        layouts_dir=config["layouts_dir"],
        includes_dir=config["includes_dir"],
    )
    engine.update_collections(corpus, collections, tags)
    for page in pages:
        html = _render(engine, page)
        if resolved_root:
            html = absolutize_html_urls(html, resolved_root)
        _write_page(output_dir, page, html)

    PassthroughCopy(project_root, output_dir, config["passthrough"]).run()
    feeds = create_default_feed_registry().generate_all(
        output_dir, collections["posts"], data
    )
    return BuildResult(
        pages=pages,
        output_dir=output_dir,
        data=data,
        collections=collections,
        feeds=feeds,
    )


_ERROR_LABELS = {
    "UndefinedError": "Undefined variable",
    "TypeError": "Type error",
    "AttributeError": "Attribute error",
}


def _render(engine: TemplateEngine, page: Page) -> str:
    """Render one page, wrapping any failure in a BuildError naming its source."""
    try:
        return engine.render_page(page)
    except TemplateSyntaxError as exc:
        message = f"Template syntax error on line {exc.lineno}: {exc.message}"
        raise BuildError(page.path, message, exc) from exc
    except Exception as exc:
        raise BuildError(page.path, _format_error_message(exc), exc) from exc


def _format_error_message(exc: Exception) -> str:
    """Prefix the exception text with a readable label for its type."""
    name = type(exc).__name__
    return f"{_ERROR_LABELS.get(name, name)}: {exc}"


def _write_page(output_dir: Path, page: Page, rendered: str) -> None:
    """Write a rendered page to the output directory.

    URLs ending in ``/`` become ``index.html`` inside that folder; any other
    permalink (``/404.html``, ``/feed.xsl``) is written as a file.
    """
    url_path = page.url.strip("/")
    if page.url.endswith("/") or not url_path:
        target = output_dir / url_path / "index.html"
    else:
        target = output_dir / url_path
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(rendered)
