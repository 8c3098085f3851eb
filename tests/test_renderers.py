from pathlib import Path, PurePosixPath

import pytest
from markupsafe import Markup

from stheno.config import config_from_mapping
from stheno.content import Document
from stheno.errors import RenderError
from stheno.renderers import (
    Heading,
    MarkdownRenderer,
    PageRenderer,
    RendererRegistry,
    normalize_body,
    render_toc,
)
from stheno.protocols import BodyRenderer
from stheno.site import Site
from stheno.templates import TemplateSet


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def make_doc(source, body="", raw_html=False, source_type="markdown", **fields):
    rel = PurePosixPath(source)
    return Document(
        source_path=rel,
        section=rel.parts[0] if len(rel.parts) > 1 else "",
        title=fields.pop("title", rel.stem.title()),
        body=body,
        date=None,
        draft=False,
        slug=rel.stem,
        url=f"/{rel.with_suffix('').as_posix()}/",
        raw_html=raw_html,
        source_type=source_type,
        **fields,
    )


def create_renderer(tmp_path: Path, documents, settings=None):
    templates_dir = tmp_path / "templates"
    write(templates_dir / "_default" / "single.html", "<main>{{ content }}</main>")
    write(templates_dir / "shortcodes" / "note.html", '<aside class="{{ kwargs.kind }}">{{ args[0] }}</aside>')
    write(templates_dir / "shortcodes" / "title.html", "{{ page.title }}@{{ site.title }}")
    write(templates_dir / "shortcodes" / "broken.html", "{{ args[0].nope() }}")
    config = config_from_mapping(tmp_path, {"title": "Site", **(settings or {})})
    site = Site.assemble(config, {}, documents)
    templates = TemplateSet([templates_dir])
    return PageRenderer(site, templates), templates


def test_normalize_body_is_idempotent():
    text = "\r\n\r\n# Title\r\n\r\nBody\r\n\r\n\r\n"
    once = normalize_body(text)
    assert once == "# Title\n\nBody\n"
    assert normalize_body(once) == once
    assert normalize_body("\n\n") == ""


def test_raw_html_is_escaped_by_default():
    html, _ = MarkdownRenderer().render("<script>alert(1)</script>\n\nText\n")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_raw_html_passes_when_allowed():
    html, _ = MarkdownRenderer().render("<div class=\"x\">hi</div>\n", allow_html=True)
    assert '<div class="x">hi</div>' in html


def test_headings_get_unique_ids_and_toc():
    html, headings = MarkdownRenderer().render("# Intro\n\n## Usage\n\n## Usage\n")
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h2 id="usage-1">Usage</h2>' in html
    assert headings == [
        Heading("intro", "Intro", 1),
        Heading("usage", "Usage", 2),
        Heading("usage-1", "Usage", 2),
    ]
    toc = render_toc(headings)
    assert isinstance(toc, Markup)
    assert toc.startswith('<ul><li><a href="#intro">Intro</a><ul>')
    assert render_toc([]) == ""


def test_fenced_code_is_highlighted_or_escaped():
    html, _ = MarkdownRenderer().render("```python\nprint('hi')\n```\n")
    assert 'class="highlight"' in html
    html, _ = MarkdownRenderer().render("```nosuchlang\n<b>\n```\n")
    assert '<code class="language-nosuchlang">&lt;b&gt;' in html


def test_markdown_plugins_are_enabled():
    html, _ = MarkdownRenderer().render("~~old~~\n\n| a | b |\n|---|---|\n| 1 | 2 |\n")
    assert "<del>old</del>" in html
    assert "<table>" in html


def test_registry_selects_by_source_type():
    registry = RendererRegistry()
    assert all(isinstance(registry.get_renderer(t), BodyRenderer) for t in ("markdown", "html"))
    assert registry.get_renderer("markdown").source_type == "markdown"
    assert registry.get_renderer("html").render("<p>x</p>") == ("<p>x</p>", [])
    assert registry.get_renderer("rst") is None


def test_render_document_is_deterministic_bytes(tmp_path):
    doc = make_doc("posts/a.md", "# A\n\nHello *world*.\n")
    renderer, templates = create_renderer(tmp_path, [doc])
    template = templates.get("_default/single.html")

    first = renderer.render_document(doc, template)
    second = renderer.render_document(doc, template)

    assert isinstance(first, bytes)
    assert first == second
    assert b"<em>world</em>" in first


def test_html_documents_are_trusted(tmp_path):
    doc = make_doc("page.html", "<div id=\"raw\"><script>1</script></div>", source_type="html")
    renderer, _ = create_renderer(tmp_path, [doc])
    assert renderer.convert(doc).html == '<div id="raw"><script>1</script></div>\n'


def test_shortcodes_render_through_templates(tmp_path):
    body = 'Intro\n\n{{< note "Careful" kind="warning" >}}\n\nTitle: {{< title >}}\n'
    doc = make_doc("posts/a.md", body, title="Post A")
    renderer, _ = create_renderer(tmp_path, [doc])

    html = str(renderer.convert(doc).html)

    assert '<aside class="warning">Careful</aside>' in html
    assert "<p><aside" not in html
    assert "Title: Post A@Site" in html


def test_shortcode_output_is_not_escaped_by_the_safety_policy(tmp_path):
    doc = make_doc("posts/a.md", '{{< note "x" >}} and <b>raw</b>\n')
    renderer, _ = create_renderer(tmp_path, [doc])
    html = str(renderer.convert(doc).html)
    assert '<aside class="">x</aside>' in html
    assert "&lt;b&gt;raw&lt;/b&gt;" in html


def test_ref_shortcode_resolves_document_urls(tmp_path):
    target = make_doc("posts/b.md", "B")
    doc = make_doc("posts/a.md", 'See [B]({{< ref "posts/b.md" >}}).\n')
    renderer, _ = create_renderer(tmp_path, [doc, target])
    assert '<a href="/posts/b/">B</a>' in str(renderer.convert(doc).html)


def test_commented_shortcode_renders_literally(tmp_path):
    doc = make_doc("posts/a.md", "Use `x` or {{</* note \"hi\" */>}} in text.\n")
    renderer, _ = create_renderer(tmp_path, [doc])
    html = str(renderer.convert(doc).html)
    assert "{{&lt; note &#34;hi&#34; &gt;}}" in html
    assert "<aside" not in html


@pytest.mark.parametrize(
    "body, directive, message",
    [
        ("{{< missing >}}\n", "missing", "unknown shortcode 'missing'"),
        ('{{< ref "posts/nope.md" >}}\n', "ref", "does not match any published document"),
        ('{{< note "unbalanced >}}\n', "note", "malformed arguments"),
        ('{{< broken "x" >}}\n', "broken", "shortcode 'broken' failed"),
    ],
)
def test_shortcode_failures_are_render_errors(tmp_path, body, directive, message):
    doc = make_doc("posts/a.md", body)
    renderer, _ = create_renderer(tmp_path, [doc])
    with pytest.raises(RenderError) as excinfo:
        renderer.convert(doc)
    assert excinfo.value.directive == directive
    assert message in excinfo.value.message
    assert excinfo.value.source_path == Path("posts/a.md")


def test_template_runtime_errors_become_render_errors(tmp_path):
    doc = make_doc("posts/a.md", "Body")
    renderer, templates = create_renderer(tmp_path, [doc])
    template = templates.from_string("{{ page.params.missing.deeper }}")
    with pytest.raises(RenderError) as excinfo:
        renderer.render_document(doc, template)
    assert excinfo.value.message.startswith("Undefined variable:")


def test_canonify_urls_rewrites_root_relative_links(tmp_path):
    doc = make_doc("posts/a.md", "[home](/) [ext](https://x.org/) ![img](/img/a.png)\n")
    renderer, templates = create_renderer(
        tmp_path,
        [doc],
        {"base_url": "https://example.com/blog", "canonify_urls": True},
    )
    html = renderer.render_document(doc, templates.get("_default/single.html")).decode()
    assert 'href="https://example.com/blog/"' in html
    assert 'href="https://x.org/"' in html
    assert 'src="https://example.com/blog/img/a.png"' in html
