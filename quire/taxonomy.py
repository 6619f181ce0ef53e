"""Tag and category indexes for Quire.

This module derives the site's taxonomy from the content corpus. Both indexes
are rebuilt from scratch on every call and never persisted.

Key functions:
    build_tag_index: Unique tags across the whole corpus (unordered).
    build_category_index: Unique categories of the writing subtree (sorted).
    filter_reserved: Drop structural labels such as ``posts`` or ``nav``.
    normalize_labels: Coerce a raw ``tags``/``category`` value to a list of strings.

Reserved labels are the names of built-in collections and navigation markers.
They look like taxonomy entries in front matter but must never be listed as one.
Templates that hide these names from navigation rely on ``RESERVED_LABELS``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .protocols import Corpus

RESERVED_LABELS = frozenset({"all", "nav", "post", "posts"})

WRITING_GLOB = "writing/**"


def is_reserved(label: str) -> bool:
    """Return True if ``label`` is a reserved structural label.

    Comparison is exact: case-sensitive and without trimming.
    """
    return label in RESERVED_LABELS


def filter_reserved(labels: Iterable[str]) -> list[str]:
    """Return the labels that are not reserved, preserving their order.

    Args:
        labels: Candidate label strings.

    Returns:
        Labels with every entry of RESERVED_LABELS removed.

    Examples:
        >>> filter_reserved(["go", "nav", "Posts"])
        ['go', 'Posts']
    """
    return [label for label in labels if not is_reserved(label)]


def normalize_labels(value: Any) -> list[str]:
    """Coerce a front matter taxonomy value to a list of strings.

    A bare string is a single label and a list, tuple or set contributes its
    string members. Anything else (missing, numbers, mappings, dates) and any
    non-string member is skipped rather than treated as an error.

    Args:
        value: Raw value of a ``tags`` or ``category`` field.

    Returns:
        List of label strings, possibly empty.

    Examples:
        >>> normalize_labels("design")
        ['design']
        >>> normalize_labels(["design", 3, "nav"])
        ['design', 'nav']
        >>> normalize_labels(None)
        []
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [item for item in value if isinstance(item, str)]
    return []


def _collect(documents: Iterable, field: str) -> set[str]:
    labels: set[str] = set()
    for document in documents:
        raw = document.metadata.get(field)
        labels.update(filter_reserved(normalize_labels(raw)))
    return labels


def build_tag_index(corpus: Corpus) -> list[str]:
    """Build the list of unique tags used anywhere in the corpus.

    Args:
        corpus: Corpus to scan; every document is considered.

    Returns:
        Unique, non-reserved tags. The order is not defined and callers
        must not depend on it.
    """
    return list(_collect(corpus.get_all_documents(), "tags"))


def build_category_index(corpus: Corpus, pattern: str = WRITING_GLOB) -> list[str]:
    """Build the sorted list of categories used in the writing subtree.

    Only documents matching ``pattern`` contribute. Categories are meaningful
    for long-form writing only, unlike tags which apply site-wide.

    Args:
        corpus: Corpus to scan.
        pattern: Glob selecting the writing subtree.

    Returns:
        Unique, non-reserved categories in ascending lexical order.
    """
    return sorted(_collect(corpus.get_documents_matching(pattern), "category"))
