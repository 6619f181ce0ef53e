"""Quire static site generator.

This package builds a writing-focused static site from Markdown and Jinja templates
with YAML front matter. It derives collections and tag/category indexes from the
content corpus, renders pages through layouts, copies static assets through, writes
an RSS feed, and provides an image optimizer and a live-reloading development server.

The main entry point is the CLI module, which provides commands for building the
site, serving it locally, optimizing images, and creating new writing.

Architecture:
- Content loading, metadata extraction and rendering each live in their own module.
- Collections and taxonomy indexes are pure functions of a corpus snapshot.
- Registries (renderers, collections, feeds) allow extension without modification.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
