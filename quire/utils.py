"""Utility functions for Quire.

Small helpers shared across the codebase for filename parsing, path
classification, date coercion and output directory handling.

Filenames follow two optional prefix conventions, ``YYYY-MM-DD-`` for a
publication date and ``NN-`` for an ordering number, in that order:
``2024-01-15-02-second-part.md``.
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Iterable
from datetime import date, datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any

TEMPLATE_SUFFIXES = (".html", ".njk", ".jinja")

_DATE_PREFIX_RE = re.compile(r"^(\d+)-(\d+)-(\d+)(?:-|$)")
_NUMBER_PREFIX_RE = re.compile(r"^(\d+)(?:-|$)")


def split_date_prefix(name: str) -> tuple[tuple[int, int, int] | None, str]:
    """Split a ``YYYY-MM-DD-`` prefix off a filename stem.

    Returns:
        ``((year, month, day), rest)`` when the stem starts with three numeric
        parts, otherwise ``(None, name)``. The date is not validated.
    """
    match = _DATE_PREFIX_RE.match(name)
    if not match:
        return None, name
    year, month, day = (int(part) for part in match.groups())
    return (year, month, day), name[match.end() :]


def slugify(name: str) -> str:
    """Turn a filename stem into a URL slug, dropping any date prefix.

    >>> slugify("2024-01-15-Hello World")
    'hello-world'
    """
    _, rest = split_date_prefix(name)
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", rest or name).strip("-").lower()
    return slug or "index"


def titleize(filename: str) -> str:
    """Turn a filename into a title: ``2024-01-15-hello-world.md`` -> ``Hello World``."""
    base = filename.split(".", 1)[0]
    _, rest = split_date_prefix(base)
    words = [word for word in re.split(r"[\s\-_]+", rest or base) if word]
    return " ".join(word.capitalize() for word in words) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Return the date of a ``YYYY-MM-DD`` filename prefix, or None if invalid."""
    parts, _ = split_date_prefix(name)
    if parts is None:
        return None
    try:
        return datetime(*parts)
    except ValueError:
        return None


def to_datetime(value: Any) -> datetime:
    """Coerce a date-like value to a datetime.

    YAML front matter yields ``date`` objects for bare dates and
    ``datetime`` objects for timestamps; strings are parsed as ISO 8601.

    Timezone-aware values are converted to naive UTC so they sort alongside
    naive filename and mtime dates.

    Args:
        value: A datetime, date or ISO 8601 string.

    Returns:
        The value as a naive datetime.

    Raises:
        TypeError: If the value is not date-like.
        ValueError: If a string is not valid ISO 8601.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Expected a date, datetime or ISO string, got {type(value).__name__}")


def first_paragraph(text: str, limit: int = 160) -> str:
    """Return the first prose paragraph as plain text, truncated to ``limit``.

    Headings, code fences and paragraphs opening with a template statement
    are skipped; HTML tags and template expressions are removed.
    """
    for block in text.split("\n\n"):
        block = block.strip()
        if not block or block.startswith(("#", "```", "{%")):
            continue
        plain = re.sub(r"<[^>]+>", "", block)
        plain = re.sub(r"\{[%#{].*?[%#}]\}", "", plain, flags=re.DOTALL)
        plain = " ".join(plain.split())
        if plain:
            return plain[:limit]
    return ""


def ensure_clean_dir(path: Path, keep: Iterable[str] = ()) -> None:
    """Create ``path`` if needed and remove everything inside it.

    The directory itself is kept so a server serving from it keeps a valid
    working directory. Files whose ``path``-relative POSIX path matches one of
    the ``keep`` globs survive, along with the directories holding them.
    """
    path.mkdir(parents=True, exist_ok=True)
    keep = tuple(keep)
    for child in path.iterdir():
        _remove_unkept(child, path, keep)


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    """Return True if a POSIX path matches one of the globs (``*`` spans ``/``)."""
    return any(fnmatchcase(rel_path, pattern) for pattern in patterns)


def _remove_unkept(entry: Path, root: Path, keep: tuple[str, ...]) -> bool:
    """Delete ``entry`` unless it is kept; return True if it is gone."""
    if keep and matches_any(entry.relative_to(root).as_posix(), keep):
        return False
    if not entry.is_dir() or entry.is_symlink():
        entry.unlink()
        return True
    if not keep:
        shutil.rmtree(entry)
        return True
    survivors = [child for child in entry.iterdir() if not _remove_unkept(child, root, keep)]
    if survivors:
        return False
    entry.rmdir()
    return True


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file (case-insensitive .md)."""
    return path.suffix.lower() == ".md"


def is_template(path: Path) -> bool:
    """Check if a path is rendered by the template engine.

    HTML files are templates too: they go through Jinja like ``.njk``
    and ``.jinja`` sources.
    """
    return path.suffix.lower() in TEMPLATE_SUFFIXES


def extract_number_from_name(name: str) -> int | None:
    """Return the ordering number of ``01-intro`` or ``2024-01-15-01-intro``."""
    _, rest = split_date_prefix(name)
    match = _NUMBER_PREFIX_RE.match(rest)
    return int(match.group(1)) if match else None


def strip_number_prefix(name: str) -> str:
    """Drop date and number prefixes, leaving the name used for sorting."""
    _, rest = split_date_prefix(name)
    stripped = _NUMBER_PREFIX_RE.sub("", rest, count=1)
    return stripped or name


def build_tags_index(pages: Iterable) -> dict[str, list]:
    """Map each tag to the pages carrying it, in page order."""
    index: dict[str, list] = {}
    for page in pages:
        for tag in page.tags:
            index.setdefault(tag, []).append(page)
    return index
