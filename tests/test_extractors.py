from datetime import datetime
from pathlib import Path

from quire.extractors import (
    CompositeMetadataExtractor,
    DateExtractor,
    TagExtractor,
    TitleExtractor,
    extract_frontmatter,
)
from quire.renderers import MarkdownRenderer, RendererRegistry, TemplateContentRenderer


def test_extract_frontmatter():
    data, body = extract_frontmatter("---\ntitle: Hi\ntags: [a, b]\n---\nBody")
    assert data == {"title": "Hi", "tags": ["a", "b"]}
    assert body == "Body"

    assert extract_frontmatter("No front matter") == ({}, "No front matter")
    # malformed YAML and non-mapping payloads leave the text untouched
    broken = "---\ntitle: [unclosed\n---\nBody"
    assert extract_frontmatter(broken) == ({}, broken)
    listy = "---\n- a\n- b\n---\nBody"
    assert extract_frontmatter(listy) == ({}, listy)


def test_title_extractor_order():
    extractor = TitleExtractor()
    path = Path("2024-01-01-some-post.md")
    assert extractor.extract("# Heading", path, {"title": "Front"}) == {"title": "Front"}
    assert extractor.extract("Intro\n# Heading", path, {}) == {"title": "Heading"}
    assert extractor.extract("No heading", path, {}) == {"title": "Some Post"}


def test_tag_extractor_normalizes():
    extractor = TagExtractor()
    path = Path("a.md")
    assert extractor.extract("", path, {"tags": "solo"}) == {"tags": ["solo"]}
    assert extractor.extract("", path, {"tags": ["a", "nav", "a", 3]}) == {
        "tags": ["a", "nav"]
    }
    assert extractor.extract("", path, {"tags": 12}) == {"tags": []}
    assert extractor.extract("", path, {}) == {"tags": []}


def test_date_extractor_fallbacks(tmp_path):
    extractor = DateExtractor()
    dated = tmp_path / "2024-02-03-post.md"
    dated.write_text("x", encoding="utf-8")
    assert extractor.extract("", dated, {"date": "2023-01-01"})["date"] == datetime(2023, 1, 1)
    assert extractor.extract("", dated, {"date": "not a date"})["date"] == datetime(2024, 2, 3)
    assert extractor.extract("", dated, {})["date"] == datetime(2024, 2, 3)

    plain = tmp_path / "plain.md"
    plain.write_text("x", encoding="utf-8")
    expected = datetime.fromtimestamp(plain.stat().st_mtime)
    assert extractor.extract("", plain, {})["date"] == expected


def test_composite_extractor(tmp_path):
    path = tmp_path / "2024-05-01-hello.md"
    text = "---\ntags: go\ncategory: infra\n---\n# Hello\n\nA first paragraph."
    path.write_text(text, encoding="utf-8")
    result = CompositeMetadataExtractor().extract(text, path)
    assert result["frontmatter"] == {"tags": "go", "category": "infra"}
    assert result["body"].startswith("# Hello")
    assert result["title"] == "Hello"
    assert result["tags"] == ["go"]
    assert result["date"] == datetime(2024, 5, 1)
    assert result["description"] == "A first paragraph."


def test_composite_extractor_custom_extractors(tmp_path):
    class WordCount:
        def extract(self, content, path, frontmatter):
            return {"words": len(content.split())}

    composite = CompositeMetadataExtractor([TitleExtractor()])
    composite.add_extractor(WordCount())
    result = composite.extract("# One two", tmp_path / "x.md")
    assert result["title"] == "One two"
    assert result["words"] == 3
    assert "tags" not in result


def test_markdown_renderer_headings_and_code():
    html = MarkdownRenderer().render(
        "# Intro\n\n## Intro\n\n```python\nprint('hi')\n```\n\n```nope\n<x>\n```\n"
    )
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h2 id="intro-1">Intro</h2>' in html
    assert 'class="highlight"' in html
    assert '<pre><code class="language-nope">&lt;x&gt;' in html


def test_markdown_renderer_passes_raw_html():
    html = MarkdownRenderer().render('<div class="hero">Raw</div>\n\nText ~~gone~~')
    assert '<div class="hero">Raw</div>' in html
    assert "<del>gone</del>" in html


def test_renderer_registry():
    registry = RendererRegistry()
    assert isinstance(registry.get_renderer(Path("a.md")), MarkdownRenderer)
    assert isinstance(registry.get_renderer(Path("a.njk")), TemplateContentRenderer)
    assert isinstance(registry.get_renderer(Path("a.html")), TemplateContentRenderer)
    assert registry.get_renderer(Path("a.txt")) is None
    assert TemplateContentRenderer().render("{{ x }}") == "{{ x }}"


def test_components_implement_protocols(tmp_path):
    from quire.content import ContentProcessor
    from quire.extractors import DescriptionExtractor
    from quire.protocols import ContentDocument, ContentRenderer, MetadataExtractor

    assert isinstance(MarkdownRenderer(), ContentRenderer)
    assert isinstance(TemplateContentRenderer(), ContentRenderer)
    for extractor in (TitleExtractor(), TagExtractor(), DateExtractor(), DescriptionExtractor()):
        assert isinstance(extractor, MetadataExtractor)

    (tmp_path / "a.md").write_text("# A", encoding="utf-8")
    page = ContentProcessor(tmp_path).load()[0]
    assert isinstance(page, ContentDocument)


def test_heading_anchor():
    from quire.renderers import heading_anchor

    assert heading_anchor("Hello <em>World</em>!") == "hello-world"
    assert heading_anchor("  Spaced -- out  ") == "spaced-out"
    html = MarkdownRenderer().render("# A\n\n# A\n\n# A\n")
    assert 'id="a-2"' in html
