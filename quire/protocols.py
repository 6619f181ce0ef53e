"""Protocol definitions for Quire.

This module defines the interfaces (protocols) used throughout Quire so that
components depend on abstractions rather than on each other.

These protocols enable:
- Loose coupling between content loading, taxonomy extraction and rendering
- Easy testing through small fake implementations
- Extensibility without modifying existing code
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ContentDocument(Protocol):
    """A read-only content document as seen by collection and taxonomy code.

    Only the front matter mapping is required. Corpus membership by path is
    decided by the corpus, not by the document.
    """

    metadata: Mapping[str, Any]


@runtime_checkable
class Corpus(Protocol):
    """Read interface over the full set of loaded content documents."""

    @abstractmethod
    def get_all_documents(self) -> Sequence[ContentDocument]:
        """Return every document in load order."""
        ...

    @abstractmethod
    def get_documents_matching(self, pattern: str) -> Sequence[ContentDocument]:
        """Return the documents whose input path matches a glob pattern.

        Args:
            pattern: Glob relative to the input directory (e.g. ``writing/**``).

        Returns:
            Matching documents in load order.
        """
        ...


@runtime_checkable
class ContentRenderer(Protocol):
    """Protocol for rendering content from source files.

    Implementations handle specific content types (Markdown, templates).
    """

    @abstractmethod
    def can_render(self, path: Path) -> bool:
        """Check if this renderer can handle the given file.

        Args:
            path: Path to the source file.

        Returns:
            True if this renderer can process the file.
        """
        ...

    @abstractmethod
    def render(self, content: str) -> str:
        """Render content to HTML.

        Args:
            content: Source content to render.

        Returns:
            Rendered HTML.
        """
        ...

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier ('markdown' or 'template')."""
        ...


@runtime_checkable
class MetadataExtractor(Protocol):
    """Protocol for extracting metadata from content.

    Implementations extract one kind of metadata (title, tags, date, etc.).
    """

    @abstractmethod
    def extract(
        self, content: str, path: Path, frontmatter: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Extract metadata from content.

        Args:
            content: Source content with the front matter block removed.
            path: Path to the source file.
            frontmatter: Parsed front matter of the document.

        Returns:
            Dictionary of extracted metadata.
        """
        ...
