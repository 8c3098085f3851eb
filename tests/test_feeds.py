import json
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from stheno.config import config_from_mapping
from stheno.content import Document
from stheno.feeds import (
    FeedRegistry,
    JSONFeedGenerator,
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
)
from stheno.redirects import RedirectRenderer, plan_redirects
from stheno.site import Site
from stheno.templates import TemplateSet


def make_doc(source, date=None, tags=(), **fields):
    rel = PurePosixPath(source)
    return Document(
        source_path=rel,
        section=rel.parts[0] if len(rel.parts) > 1 else "",
        title=fields.pop("title", rel.stem.title()),
        body="",
        date=datetime(*date, tzinfo=timezone.utc) if date else None,
        draft=fields.pop("draft", False),
        slug=rel.stem,
        url=f"/{rel.with_suffix('').as_posix()}/",
        terms={"tags": tuple(tags)},
        **fields,
    )


def create_site(tmp_path: Path, documents, **settings) -> Site:
    values = {"base_url": "https://example.com", "title": "Example & Co"}
    values.update(settings)
    return Site.assemble(config_from_mapping(tmp_path, values), {}, documents)


def sample_documents():
    return [
        make_doc("posts/old.md", (2021, 1, 1), tags=["x"], description="Old <one>"),
        make_doc("posts/new.md", (2021, 6, 1), tags=["x"]),
        make_doc("about.md"),
        make_doc("posts/secret.md", (2022, 1, 1), draft=True),
    ]


def test_feeds_are_skipped_without_base_url(tmp_path):
    site = create_site(tmp_path, sample_documents(), base_url="")
    registry = create_default_feed_registry()
    assert registry.generate_all(tmp_path, site) == []
    assert list(tmp_path.iterdir()) == []


def test_sitemap_lists_documents_and_listings_sorted(tmp_path):
    site = create_site(tmp_path, sample_documents())
    sitemap = SitemapGenerator().generate(site)
    locs = [line.split("<loc>")[1].split("</loc>")[0] for line in sitemap.splitlines() if "<loc>" in line]
    assert locs == [
        "https://example.com/",
        "https://example.com/about/",
        "https://example.com/posts/",
        "https://example.com/posts/new/",
        "https://example.com/posts/old/",
        "https://example.com/tags/x/",
    ]
    assert "<loc>https://example.com/about/</loc></url>" in sitemap
    assert "<lastmod>2021-06-01</lastmod>" in sitemap
    assert "secret" not in sitemap


def test_rss_is_escaped_and_dated_from_content(tmp_path):
    site = create_site(tmp_path, sample_documents())
    rss = RSSGenerator().generate(site)
    assert "<title>Example &amp; Co</title>" in rss
    assert "<description>Old &lt;one&gt;</description>" in rss
    assert "<lastBuildDate>Tue, 01 Jun 2021 00:00:00 +0000</lastBuildDate>" in rss
    assert rss.index("/posts/new/") < rss.index("/posts/old/")
    assert "secret" not in rss


def test_feed_limit_applies(tmp_path):
    site = create_site(tmp_path, sample_documents(), feed_limit=1)
    feed = json.loads(JSONFeedGenerator().generate(site))
    assert [item["url"] for item in feed["items"]] == ["https://example.com/posts/new/"]
    assert feed["version"] == "https://jsonfeed.org/version/1.1"
    assert feed["feed_url"] == "https://example.com/feed.json"
    assert feed["items"][0]["tags"] == ["x"]
    assert feed["items"][0]["date_published"] == "2021-06-01T00:00:00+00:00"


def test_registry_writes_files_and_calls_checkpoint(tmp_path):
    site = create_site(tmp_path, sample_documents())
    out = tmp_path / "out"
    out.mkdir()
    calls = []
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator())

    generated = registry.generate_all(out, site, checkpoint=lambda: calls.append(1))

    assert generated == ["sitemap.xml", "index.xml"]
    assert len(calls) == 2
    assert (out / "index.xml").read_text(encoding="utf-8").startswith("<?xml")
    assert [g.filename for g in registry] == ["sitemap.xml", "index.xml"]


def test_redirect_plan_and_builtin_page(tmp_path):
    docs = [make_doc("posts/a.md", aliases=("/old/a/",))]
    site = create_site(tmp_path, docs, base_url="")
    redirects = plan_redirects(site)
    assert [(r.url, r.target) for r in redirects] == [
        ("/old/a/", "/posts/a/"),
        ("/page/1/", "/"),
        ("/posts/page/1/", "/posts/"),
    ]
    html = RedirectRenderer(site, TemplateSet([])).render(redirects[0]).decode()
    assert '<meta http-equiv="refresh" content="0; url=/posts/a/">' in html
    assert '<link rel="canonical" href="/posts/a/">' in html


def test_redirect_uses_alias_template(tmp_path):
    templates_dir = tmp_path / "templates" / "_default"
    templates_dir.mkdir(parents=True)
    (templates_dir / "alias.html").write_text("go {{ target }}", encoding="utf-8")
    docs = [make_doc("posts/a.md", aliases=("/old/",))]
    site = create_site(tmp_path, docs, canonify_urls=True)
    (redirect,) = [r for r in plan_redirects(site) if r.url == "/old/"]
    renderer = RedirectRenderer(site, TemplateSet([tmp_path / "templates"]))
    assert renderer.render(redirect) == b"go https://example.com/posts/a/"
