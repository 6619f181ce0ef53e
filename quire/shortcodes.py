"""Template shortcodes for Quire.

Shortcodes are template globals returning ready-to-insert markup.

- ``figure``: an image with an aspect-ratio box and optional caption.
  ``{{ figure('desk.jpg', 'My desk', 'Where the writing happens', '4/3') }}``
"""

from __future__ import annotations

from markupsafe import Markup, escape


def figure(
    filename: str, alt: str = "", caption: str = "", ratio: str = "16/9"
) -> Markup:
    """Render a figure for an image stored next to the page.

    Args:
        filename: Image path relative to the page's output folder.
        alt: Alternative text.
        caption: Optional caption; omitted from the markup when empty.
        ratio: CSS aspect ratio for the wrapper, e.g. ``16/9``.

    Returns:
        Markup-safe HTML. No line is blank so the figure stays one HTML
        block when used inside Markdown.
    """
    lines = [
        f'<figure><div style="--aspect-ratio: {escape(ratio)};">',
        f'  <img class="shadow" src="./{escape(filename)}" alt="{escape(alt)}" /></div>',
    ]
    if caption:
        lines.append(
            f'  <figcaption class="mt-1 text-gray-600 text-sm">{escape(caption)}</figcaption>'
        )
    lines.append("</figure>")
    return Markup("\n".join(lines))


SHORTCODES = {
    "figure": figure,
}
