"""Turn source files into pages.

Markdown and template files under the input directory are read, their front
matter parsed and Markdown converted to HTML. Pages double as the documents of the corpus used for collections and
the tag/category indexes.

Key classes:
- Page: one source file with its metadata and converted content.
- FileContentLoader: Discovers content files under the input directory.
- LayoutResolver: Chooses the layout for a page.
- UrlDeriver: Derives the output URL for a page.
- DefaultPageBuilder: Builds a Page from one source file.
- ContentProcessor: Facade that loads every page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any

from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .renderers import RendererRegistry, default_renderer_registry
from .taxonomy import normalize_labels
from .utils import is_markdown, is_template, slugify, titleize

LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".njk", ".html", "")


@dataclass
class Page:
    """A source file ready for rendering.

    Attributes:
        title: Display title.
        body: Source body with the front matter removed.
        content: Pre-rendered HTML for Markdown, the raw body for templates.
        description: Summary text, defaulting to the first paragraph.
        url: Output URL, starting with a slash.
        slug: Last URL segment derived from the filename.
        date: Publication date used for ordering.
        tags: Tags from front matter, deduplicated, reserved labels kept.
        draft: True for underscore files and `draft: true` front matter.
        layout: Layout name to use.
        group: Top-level folder (e.g. 'posts', 'writing').
        path: Absolute path to the source file.
        input_path: POSIX path relative to the input directory.
        folder: Folder path relative to the input directory.
        filename: Base name of the source file.
        source_type: "markdown" or "template".
        metadata: Parsed front matter.
    """

    title: str
    body: str
    content: str
    description: str
    url: str
    slug: str
    date: datetime
    tags: list[str]
    draft: bool
    layout: str
    group: str
    path: Path
    input_path: str
    folder: str
    filename: str
    source_type: str  # "markdown" | "template"
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def categories(self) -> list[str]:
        """Categories of the page, a bare string counting as one."""
        return normalize_labels(self.metadata.get("category"))


class FileContentLoader:
    """Discovers content files in the input directory.

    Directories starting with ``_`` (layouts, includes, data, assets) are
    never content. Files starting with ``_`` are drafts.
    """

    def __init__(self, input_dir: Path):
        self.input_dir = input_dir

    def iter_files(self, include_drafts: bool = False) -> list[Path]:
        """Return the Markdown and template sources, sorted by path."""
        found: list[Path] = []
        for path in self.input_dir.rglob("*"):
            if not path.is_file():
                continue
            rel = path.relative_to(self.input_dir)
            if any(part.startswith("_") for part in rel.parts[:-1]):
                continue
            if not include_drafts and rel.name.startswith("_"):
                continue
            if is_markdown(path) or is_template(path):
                found.append(path)
        return sorted(found)


class LayoutResolver:
    """Picks the layout template a page renders into.

    Attributes:
        layout_dir: Directory containing layout templates.
    """

    def __init__(self, input_dir: Path, layouts_dir: str = "_layouts"):
        self.input_dir = input_dir
        self.layout_dir = input_dir / layouts_dir

    def resolve(self, folder: str, frontmatter: dict[str, Any]) -> str:
        """Return the layout name for a page in ``folder``.

        A front matter ``layout`` always wins, even when no such file exists.
        Otherwise a layout named after the top-level folder is used when
        present, and ``default`` when not.

        Args:
            folder: Page folder relative to the input directory.
            frontmatter: Parsed front matter of the page.

        Returns:
            Layout name without extension.
        """
        explicit = frontmatter.get("layout")
        if isinstance(explicit, str) and explicit.strip():
            return self._strip_suffix(explicit.strip())

        group = group_from_folder(folder)
        if group and self._exists(group):
            return group
        return "default"

    def _exists(self, name: str) -> bool:
        return any(
            (self.layout_dir / f"{name}{suffix}").is_file() for suffix in LAYOUT_SUFFIXES
        )

    @staticmethod
    def _strip_suffix(name: str) -> str:
        for suffix in LAYOUT_SUFFIXES[:-1]:
            if name.endswith(suffix):
                return name[: -len(suffix)]
        return name


def group_from_folder(folder: str) -> str:
    """Return the first component of a folder path, or empty string."""
    if not folder:
        return ""
    return PurePosixPath(folder).parts[0]


class UrlDeriver:
    """Derives URLs for pages from their location or a permalink."""

    def derive(self, rel: Path, slug: str, permalink: Any = None) -> str:
        """Return the permalink if given, else a directory-style URL for ``rel``."""
        if isinstance(permalink, str) and permalink.strip():
            url = permalink.strip()
            return url if url.startswith("/") else f"/{url}"
        parts = list(rel.parent.parts)
        if slug != "index":
            parts.append(slug)
        joined = "/".join(part for part in parts if part)
        return f"/{joined}/" if joined else "/"


class DefaultPageBuilder:
    """Creates one Page per source file.

    Renderers and extractors can be swapped for tests or custom formats; the
    module-level defaults are used otherwise.
    """

    def __init__(
        self,
        input_dir: Path,
        renderer_registry: RendererRegistry | None = None,
        metadata_extractor: CompositeMetadataExtractor | None = None,
        layouts_dir: str = "_layouts",
    ):
        self.input_dir = input_dir
        self.renderer_registry = renderer_registry or default_renderer_registry
        self.metadata_extractor = metadata_extractor or default_metadata_extractor
        self.layout_resolver = LayoutResolver(input_dir, layouts_dir)
        self.url_deriver = UrlDeriver()

    def build(self, path: Path, draft: bool = False) -> Page:
        """Read ``path`` and return its Page; ``draft`` marks underscore files."""
        rel = path.relative_to(self.input_dir)
        folder = rel.parent.as_posix() if rel.parent != Path(".") else ""
        raw = path.read_text(encoding="utf-8")

        metadata = self.metadata_extractor.extract(raw, path)
        frontmatter = metadata["frontmatter"]
        body = metadata["body"]

        renderer = self.renderer_registry.get_renderer(path)
        if renderer:
            source_type = renderer.source_type
            content = renderer.render(body)
        else:
            source_type = "template"
            content = body

        slug = slugify(rel.name.split(".", 1)[0])

        return Page(
            title=metadata.get("title", titleize(path.name)),
            body=body,
            content=content,
            description=metadata.get("description", ""),
            url=self.url_deriver.derive(rel, slug, frontmatter.get("permalink")),
            slug=slug,
            date=metadata.get("date", datetime.now()),
            tags=metadata.get("tags", []),
            draft=draft or frontmatter.get("draft") is True,
            layout=self.layout_resolver.resolve(folder, frontmatter),
            group=group_from_folder(folder),
            path=path,
            input_path=rel.as_posix(),
            folder=folder,
            filename=path.name,
            source_type=source_type,
            metadata=frontmatter,
        )


class ContentProcessor:
    """Loads every page of an input directory."""

    def __init__(
        self,
        input_dir: Path,
        content_loader: FileContentLoader | None = None,
        page_builder: DefaultPageBuilder | None = None,
        layouts_dir: str = "_layouts",
    ):
        self.input_dir = input_dir
        self._content_loader = content_loader or FileContentLoader(input_dir)
        self._page_builder = page_builder or DefaultPageBuilder(
            input_dir, layouts_dir=layouts_dir
        )

    def load(self, include_drafts: bool = False) -> list[Page]:
        """Return the pages in path order, leaving drafts out unless asked."""
        pages = (
            self._page_builder.build(path, draft=path.name.startswith("_"))
            for path in self._content_loader.iter_files(include_drafts)
        )
        return [page for page in pages if include_drafts or not page.draft]
