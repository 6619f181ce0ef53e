"""Syndication feeds written after the pages are rendered.

The RSS feed covers the ``posts`` collection. Other formats plug in by
registering another FeedGenerator.

Classes:
    FeedGenerator: Abstract base class for feed generators.
    RSSGenerator: Generates the RSS 2.0 feed.
    FeedRegistry: Runs the registered generators.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from markupsafe import escape

from .html_utils import join_root_url
from .taxonomy import filter_reserved

if TYPE_CHECKING:
    from .content import Page

RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S +0000"


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(
        self,
        pages: Iterable[Page],
        data: dict[str, Any],
    ) -> str | None:
        """Return the feed document for ``pages``.

        Args:
            pages: Pages to include in the feed.
            data: Site data dictionary containing the base URL.

        Returns:
            Feed content, or None if the feed cannot be generated
            (e.g., missing base URL).
        """
        ...

    def write(
        self,
        output_dir: Path,
        pages: Iterable[Page],
        data: dict[str, Any],
    ) -> bool:
        """Write the feed into ``output_dir``; False when it was skipped."""
        document = self.generate(pages, data)
        if document is None:
            return False
        (output_dir / self.filename).write_text(document, encoding="utf-8")
        return True


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed, newest first.

    Site data must carry ``url`` so links can be absolute; ``title`` and
    ``description`` describe the channel.
    """

    def __init__(self, filename: str = "feed.xml"):
        self._filename = filename

    @property
    def filename(self) -> str:
        return self._filename

    def generate(
        self,
        pages: Iterable[Page],
        data: dict[str, Any],
    ) -> str | None:
        base_url = str(data.get("url", "")).rstrip("/")
        if not base_url:
            return None
        title = data.get("title", "Quire Feed")
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            _element("title", title),
            _element("link", f"{base_url}/"),
            _element("description", data.get("description", title)),
            _element("lastBuildDate", datetime.now(timezone.utc).strftime(RFC822_FORMAT)),
        ]
        newest_first = sorted(pages, key=lambda page: page.date, reverse=True)
        lines.extend(self._item(page, base_url) for page in newest_first)
        lines.append("</channel></rss>")
        return "\n".join(lines)

    @staticmethod
    def _item(page: Page, base_url: str) -> str:
        link = join_root_url(base_url, page.url)
        parts = [
            _element("title", page.title),
            _element("link", link),
            _element("guid", link),
            _element("description", page.description or page.title),
        ]
        parts.extend(_element("category", tag) for tag in filter_reserved(page.tags))
        parts.append(_element("pubDate", page.date.strftime(RFC822_FORMAT)))
        return f"<item>{''.join(parts)}</item>"


def _element(tag: str, text: Any) -> str:
    return f"<{tag}>{escape(text)}</{tag}>"


class FeedRegistry:
    """Ordered set of feed generators run together after a build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self,
        output_dir: Path,
        pages: Iterable[Page],
        data: dict[str, Any],
    ) -> list[str]:
        """Write every feed that can be produced and return their filenames."""
        pages = list(pages)
        return [
            generator.filename
            for generator in self._generators
            if generator.write(output_dir, pages, data)
        ]


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with the RSS generator."""
    registry = FeedRegistry()
    registry.register(RSSGenerator())
    return registry
