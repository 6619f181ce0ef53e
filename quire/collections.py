"""Collections for Quire.

Key classes:
- PageCollection: Sequence of pages; the corpus read interface.
- TagCollection: Mapping of tag name to the pages carrying it.
- CollectionRegistry: Named collections built from the corpus for templates.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from fnmatch import fnmatchcase
from typing import Any

from .content import Page
from .taxonomy import WRITING_GLOB, build_category_index, build_tag_index
from .utils import extract_number_from_name, strip_number_prefix

POSTS_GLOB = "posts/**"


def _order_key(page: Page, missing_number: float) -> tuple:
    stem = page.path.stem
    number = extract_number_from_name(stem)
    return (
        page.date,
        missing_number if number is None else number,
        strip_number_prefix(stem).lower(),
    )


class PageCollection(Sequence[Page]):
    """An ordered, immutable selection of pages with filter helpers.

    Implements the Corpus protocol: documents are matched by their path
    relative to the input directory.
    """

    def __init__(self, pages: Iterable[Page], input_dir_name: str = ""):
        self._pages = list(pages)
        self._input_dir_name = input_dir_name
        self._sorted_cache: PageCollection | None = None

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def _derive(self, pages: Iterable[Page]) -> PageCollection:
        return PageCollection(pages, self._input_dir_name)

    def get_all_documents(self) -> PageCollection:
        return self._derive(self._pages)

    def get_documents_matching(self, pattern: str) -> PageCollection:
        """Return the pages whose input path matches a glob.

        ``*`` and ``**`` both match across directory separators. A leading
        ``./`` and a leading input directory segment are ignored, so
        ``./src/posts/**`` and ``posts/**`` select the same pages.
        """
        normalized = self._normalize_pattern(pattern)
        return self._derive(
            p for p in self._pages if fnmatchcase(p.input_path, normalized)
        )

    def _normalize_pattern(self, pattern: str) -> str:
        normalized = pattern.strip()
        while normalized.startswith("./"):
            normalized = normalized[2:]
        prefix = f"{self._input_dir_name}/" if self._input_dir_name else ""
        if prefix and normalized.startswith(prefix):
            normalized = normalized[len(prefix) :]
        return normalized

    def group(self, name: str) -> PageCollection:
        return self._derive(p for p in self._pages if p.group == name)

    def with_tag(self, tag: str) -> PageCollection:
        return self._derive(p for p in self._pages if tag in p.tags)

    def in_category(self, category: str) -> PageCollection:
        return self._derive(p for p in self._pages if category in p.categories)

    def drafts(self) -> PageCollection:
        return self._derive(p for p in self._pages if p.draft)

    def published(self) -> PageCollection:
        return self._derive(p for p in self._pages if not p.draft)

    def sorted(self, reverse: bool = True) -> PageCollection:
        """Order by date, then number prefix, then name without prefixes.

        ``reverse=True`` (the default) puts the newest page first and is
        cached; ascending order is computed on every call. Pages without a
        number prefix sort as if numbered 0 ascending, or infinity descending.
        """
        if reverse and self._sorted_cache is not None:
            return self._sorted_cache
        missing = float("inf") if reverse else 0
        ordered = self._derive(
            sorted(self._pages, key=lambda p: _order_key(p, missing), reverse=reverse)
        )
        if reverse:
            self._sorted_cache = ordered
        return ordered

    def latest(self, count: int = 5) -> PageCollection:
        return self._derive(self.sorted()[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"


class TagCollection(Mapping[str, PageCollection]):
    """Tag name to the PageCollection of pages carrying it."""

    def __init__(self, mapping: dict[str, Iterable[Page]]):
        self._mapping = {tag: PageCollection(pages) for tag, pages in mapping.items()}

    def __getitem__(self, key: str) -> PageCollection:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"


CollectionBuilder = Callable[[PageCollection], Any]


class CollectionRegistry:
    """Registry of named collections exposed to templates as ``collections``.

    Each builder receives the full corpus and returns whatever the templates
    iterate over. Builders run once per build, in registration order.
    """

    def __init__(self) -> None:
        self._builders: dict[str, CollectionBuilder] = {}

    def register(self, name: str, builder: CollectionBuilder) -> None:
        """Register (or replace) a named collection builder."""
        self._builders[name] = builder

    def names(self) -> list[str]:
        return list(self._builders)

    def build(self, corpus: PageCollection) -> dict[str, Any]:
        """Build every registered collection from the corpus.

        Args:
            corpus: Snapshot of all loaded pages.

        Returns:
            Dictionary mapping collection name to its value.
        """
        return {name: builder(corpus) for name, builder in self._builders.items()}


def create_default_collections(
    posts_glob: str = POSTS_GLOB, writing_glob: str = WRITING_GLOB
) -> CollectionRegistry:
    """Create a registry with the built-in collections.

    - ``all``: every page in load order.
    - ``posts``: pages matching ``posts_glob``, newest first.
    - ``tagList``: unique non-reserved tags of the whole site.
    - ``categoryList``: sorted non-reserved categories of the writing subtree.

    Args:
        posts_glob: Glob selecting posts, relative to the input directory.
        writing_glob: Glob selecting the writing subtree for categories.

    Returns:
        Configured CollectionRegistry.
    """
    registry = CollectionRegistry()
    registry.register("all", lambda corpus: corpus.get_all_documents())
    registry.register(
        "posts", lambda corpus: corpus.get_documents_matching(posts_glob).sorted()
    )
    registry.register("tagList", build_tag_index)
    registry.register(
        "categoryList", lambda corpus: build_category_index(corpus, writing_glob)
    )
    return registry
