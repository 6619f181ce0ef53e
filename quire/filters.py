"""Template filters for Quire.

Filters registered on the Jinja environment under the names layouts use:

- ``dateDisplay``: friendly date, ``Oct 17, 2026`` unless a format is given.
  ``{{ page.date | dateDisplay }}`` or ``{{ page.date | dateDisplay('%d %B %Y') }}``
- ``htmlDateString``: ``YYYY-MM-DD`` for ``<time datetime="...">`` attributes.
"""

from __future__ import annotations

from typing import Any

from .utils import to_datetime

HTML_DATE_FORMAT = "%Y-%m-%d"


def date_display(value: Any, fmt: str | None = None) -> str:
    """Format a date for display.

    Args:
        value: A date, datetime or ISO 8601 string.
        fmt: Optional strftime format. Defaults to abbreviated month,
            unpadded day and full year.

    Returns:
        Formatted date string.

    Raises:
        TypeError: If the value is not date-like.
    """
    moment = to_datetime(value)
    if fmt is None:
        return f"{moment:%b} {moment.day}, {moment:%Y}"
    return moment.strftime(fmt)


def html_date_string(value: Any) -> str:
    """Format a date as YYYY-MM-DD."""
    return date_display(value, HTML_DATE_FORMAT)


FILTERS = {
    "dateDisplay": date_display,
    "htmlDateString": html_date_string,
}
