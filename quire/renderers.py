"""Source-to-HTML conversion for the two kinds of content files.

Markdown is converted with mistune and Pygments; HTML, Nunjucks and Jinja
sources pass through untouched for the template engine to expand.

Key classes:
- MarkdownRenderer: Markdown to HTML with heading anchors and highlighting.
- TemplateContentRenderer: Marks HTML/Nunjucks/Jinja sources for the template engine.
- RendererRegistry: Picks the renderer for a source file.
"""

from __future__ import annotations

import re
from pathlib import Path

import mistune
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .utils import is_markdown, is_template

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]

_TAG_RE = re.compile(r"<[^>]+>")
_ANCHOR_JUNK_RE = re.compile(r"[^\w\s-]")
_ANCHOR_SEP_RE = re.compile(r"[-\s]+")


def heading_anchor(text: str) -> str:
    """Anchor id for a heading: markup dropped, lowercased, hyphen separated."""
    plain = _TAG_RE.sub("", text).strip().lower()
    return _ANCHOR_SEP_RE.sub("-", _ANCHOR_JUNK_RE.sub("", plain)).strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Adds ids to headings and runs fenced code through Pygments."""

    def __init__(self):
        super().__init__(escape=False)
        self._seen_anchors: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        anchor = heading_anchor(text)
        repeats = self._seen_anchors.get(anchor)
        self._seen_anchors[anchor] = 0 if repeats is None else repeats + 1
        if repeats is not None:
            anchor = f"{anchor}-{repeats + 1}"
        return f'<h{level} id="{anchor}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else ""
        lexer = _lexer_for(lang)
        if lexer is not None:
            return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


def _lexer_for(lang: str):
    if not lang:
        return None
    try:
        return get_lexer_by_name(lang, stripall=True)
    except ClassNotFound:
        return None


class MarkdownRenderer:
    """Renders Markdown content to HTML."""

    @property
    def source_type(self) -> str:
        return "markdown"

    def can_render(self, path: Path) -> bool:
        return is_markdown(path)

    def render(self, content: str) -> str:
        """Convert ``content`` to HTML.

        Heading ids are unique within one document, so every call gets its
        own renderer.
        """
        convert = mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=MARKDOWN_PLUGINS
        )
        return convert(content)


class TemplateContentRenderer:
    """Handles HTML, Nunjucks and Jinja sources.

    The body is returned unchanged; the TemplateEngine renders it later
    because it needs the site-wide collections in its context.
    """

    @property
    def source_type(self) -> str:
        return "template"

    def can_render(self, path: Path) -> bool:
        return is_template(path)

    def render(self, content: str) -> str:
        return content


class RendererRegistry:
    """Ordered list of renderers; the first that accepts a path wins."""

    def __init__(self):
        self._renderers: list = [MarkdownRenderer(), TemplateContentRenderer()]

    def register(self, renderer) -> None:
        self._renderers.append(renderer)

    def get_renderer(self, path: Path):
        """Return the renderer for ``path``, or None for unknown file types."""
        return next((r for r in self._renderers if r.can_render(path)), None)


default_renderer_registry = RendererRegistry()
