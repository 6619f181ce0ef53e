"""Metadata extractors for Quire.

This module contains implementations of the MetadataExtractor protocol.
Each extractor handles a single piece of page metadata and prefers an
explicit front matter value over anything inferred from the content.

Key classes:
- TitleExtractor: Title from front matter, first heading, or filename.
- TagExtractor: Normalized front matter tags.
- DateExtractor: Date from front matter, filename prefix, or mtime.
- DescriptionExtractor: Description from front matter or first paragraph.
- CompositeMetadataExtractor: Runs all of the above over one document.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .taxonomy import normalize_labels
from .utils import extract_date_from_name, first_paragraph, titleize, to_datetime

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
        if not isinstance(data, dict):
            return {}, text
        return data, text[match.end() :]
    except yaml.YAMLError:
        return {}, text


class TitleExtractor:
    """Extracts the page title.

    Uses front matter ``title``, then a level-1 heading (# Title) in the
    content, falling back to titleizing the filename.
    """

    def extract(
        self, content: str, path: Path, frontmatter: Mapping[str, Any]
    ) -> dict[str, Any]:
        title = frontmatter.get("title")
        if title:
            return {"title": str(title)}
        for line in content.splitlines():
            stripped = line.strip()
            if stripped.startswith("# "):
                return {"title": stripped.lstrip("# ").strip()}
        return {"title": titleize(path.name)}


class TagExtractor:
    """Extracts tags from front matter.

    Tags are kept unfiltered here so every tag, reserved or not, still gets
    its own collection. Reserved labels are removed when building the tag
    index.
    """

    def extract(
        self, content: str, path: Path, frontmatter: Mapping[str, Any]
    ) -> dict[str, Any]:
        tags: list[str] = []
        for tag in normalize_labels(frontmatter.get("tags")):
            if tag not in tags:
                tags.append(tag)
        return {"tags": tags}


class DateExtractor:
    """Extracts the publication date.

    Looks at front matter ``date`` first, then a YYYY-MM-DD prefix in the
    filename, falling back to file modification time.
    """

    def extract(
        self, content: str, path: Path, frontmatter: Mapping[str, Any]
    ) -> dict[str, Any]:
        raw = frontmatter.get("date")
        if raw is not None:
            try:
                return {"date": to_datetime(raw)}
            except (TypeError, ValueError):
                pass
        date = extract_date_from_name(path.stem)
        if date is None:
            date = datetime.fromtimestamp(path.stat().st_mtime)
        return {"date": date}


class DescriptionExtractor:
    """Extracts a short description.

    Uses front matter ``description`` or the first paragraph of the body
    truncated to 160 characters.
    """

    def extract(
        self, content: str, path: Path, frontmatter: Mapping[str, Any]
    ) -> dict[str, Any]:
        description = frontmatter.get("description")
        if description:
            return {"description": str(description)}
        return {"description": first_paragraph(content)}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    The front matter is parsed once and handed to every extractor along
    with the remaining body. Later extractors can override earlier ones.
    """

    def __init__(self, extractors: list | None = None):
        """Initialize with a list of extractors.

        Args:
            extractors: List of MetadataExtractor implementations.
                       If None, uses default extractors.
        """
        if extractors is None:
            self._extractors = [
                TitleExtractor(),
                TagExtractor(),
                DateExtractor(),
                DescriptionExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor) -> None:
        """Add an extractor to the composite."""
        self._extractors.append(extractor)

    def extract(self, text: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from a raw source file.

        Args:
            text: Raw file content including any front matter block.
            path: Path to the source file.

        Returns:
            Dictionary with 'frontmatter' and 'body' keys plus every key
            produced by the registered extractors.
        """
        frontmatter, body = extract_frontmatter(text)
        result: dict[str, Any] = {"frontmatter": frontmatter, "body": body}
        for extractor in self._extractors:
            result.update(extractor.extract(body, path, frontmatter))
        return result


# Default composite extractor instance
default_metadata_extractor = CompositeMetadataExtractor()
