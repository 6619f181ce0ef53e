"""Template rendering engine for Quire.

This module uses Jinja2 to render templates and pages.
It manages template loading, filters, shortcodes, global collections, and
rendering of content with layouts.

Key class:
- TemplateEngine: Handles template rendering and provides context to templates.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from markupsafe import Markup
from pygments.formatters import HtmlFormatter

from .collections import PageCollection, TagCollection
from .content import LAYOUT_SUFFIXES, Page
from .filters import FILTERS
from .html_utils import join_root_url
from .renderers import MarkdownRenderer
from .shortcodes import SHORTCODES

__all__ = ["TemplateEngine", "has_template_syntax"]


def has_template_syntax(text: str) -> bool:
    """Return True if the text contains Jinja expressions or statements."""
    return "{{" in text or "{%" in text


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        input_dir: Directory containing content and templates.
        data: Global site data.
        env: Jinja2 environment.
        pages: All pages of the site.
        collections: Named collections (all, posts, tagList, categoryList, ...).
        tags: Mapping of tag to tagged pages.
    """

    def __init__(
        self,
        input_dir: Path,
        data: dict[str, Any],
        root_url: str | None = None,
        layouts_dir: str = "_layouts",
        includes_dir: str = "_includes",
    ):
        """Initialize the template engine.

        Args:
            input_dir: Directory with content, layouts and includes.
            data: Global site data.
            root_url: Optional base URL for links.
            layouts_dir: Layout directory name inside input_dir.
            includes_dir: Includes directory name inside input_dir.
        """
        self.input_dir = input_dir
        self.data = data
        self.root_url = (
            root_url or (data.get("root_url") if isinstance(data, dict) else "")
        ) or ""
        self.env = Environment(
            loader=FileSystemLoader(
                [
                    input_dir / layouts_dir,
                    input_dir / includes_dir,
                    input_dir,
                ]
            ),
            autoescape=select_autoescape(["html", "xml", "njk", "jinja"]),
            enable_async=False,
        )
        self.pages: PageCollection = PageCollection([])
        self.collections: dict[str, Any] = {}
        self.tags: TagCollection = TagCollection({})
        self._markdown = MarkdownRenderer()

        self._install_globals()

    def _install_globals(self) -> None:
        """Install filters, shortcodes and globals in the Jinja environment."""
        self.env.filters.update(FILTERS)
        self.env.globals.update(SHORTCODES)
        self.env.globals["data"] = self.data
        self.env.globals["pages"] = self.pages
        self.env.globals["collections"] = self.collections
        self.env.globals["tags"] = self.tags
        self.env.globals["url_for"] = self._url_for
        self.env.globals["pygments_css"] = self._pygments_css

    @staticmethod
    def _pygments_css() -> str:
        """Return Pygments CSS styles for the .highlight class."""
        return HtmlFormatter().get_style_defs(".highlight")

    def update_collections(
        self,
        pages: PageCollection,
        collections: Mapping[str, Any],
        tags: TagCollection,
    ) -> None:
        """Update the page, named and tag collections.

        Args:
            pages: All pages.
            collections: Named collections built from the corpus.
            tags: Mapping of tag names to pages.
        """
        self.pages = pages
        self.collections = dict(collections)
        self.tags = tags
        self.env.globals["pages"] = self.pages
        self.env.globals["collections"] = self.collections
        self.env.globals["tags"] = self.tags

    def _url_for(self, path: str) -> str:
        """Generate a URL for a path, applying root_url if configured."""
        if path.startswith(("http://", "https://", "//")):
            return path
        if self.root_url:
            return join_root_url(self.root_url, path)
        return path if path.startswith("/") else f"/{path}"

    def render_page(self, page: Page) -> str:
        """Render a page with its layout.

        Args:
            page: Page object to render.

        Returns:
            Rendered HTML string.
        """
        context = {
            "data": self.data,
            "page": page,
            "metadata": page.metadata,
            "pages": self.pages,
            "collections": self.collections,
            "tags": self.tags,
            "url_for": self._url_for,
        }
        body_html = self._render_body(page, context)
        layout_template = self._resolve_layout_template(page.layout)
        if layout_template is None:
            return body_html
        try:
            return layout_template.render(content=Markup(body_html), **context)
        except TemplateNotFound as exc:
            print(f"Template not found during render ({exc}); rendering body only.")
            return body_html

    def _render_body(self, page: Page, context: dict[str, Any]) -> str:
        """Render the page body.

        Template sources are always rendered by Jinja. Markdown containing
        template syntax is expanded by Jinja first and converted afterwards,
        so shortcodes work inside Markdown.
        """
        if page.source_type == "template":
            return self.env.from_string(page.content).render(**context)
        if page.source_type == "markdown" and has_template_syntax(page.body):
            expanded = self.env.from_string(page.body).render(**context)
            return self._markdown.render(expanded)
        return page.content

    def _resolve_layout_template(self, layout: str):
        """Resolve the layout template, falling back to ``default``.

        Returns:
            Jinja2 Template object, or None if no layout exists.
        """
        names = [layout] if layout == "default" else [layout, "default"]
        for name in names:
            for suffix in LAYOUT_SUFFIXES:
                try:
                    return self.env.get_template(f"{name}{suffix}")
                except TemplateNotFound:
                    continue
        return None

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        """Render a template string with the given context."""
        return self.env.from_string(template).render(**context)
