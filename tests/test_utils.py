from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from stheno import utils


def test_slugify_and_titleize_strip_date():
    assert utils.slugify("2024-01-02-post-title") == "post-title"
    assert utils.slugify("Hello, World!") == "hello-world"
    assert utils.slugify("mixed-case-slug") == "mixed-case-slug"
    assert utils.slugify("!!!") == "index"
    assert utils.slugify("2024-01-02") == "index"
    assert utils.titleize("2024-01-02-post-title.md") == "Post Title"
    assert utils.titleize("snake_case_name.md") == "Snake Case Name"
    assert utils.strip_date_prefix("2024-01-02-x") == "x"
    assert utils.strip_date_prefix("20240102-x") == "20240102-x"


def test_extract_date_from_name():
    assert utils.extract_date_from_name("2024-01-15-cool") == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert utils.extract_date_from_name("invalid") is None
    assert utils.extract_date_from_name("2024-13-32-post") is None


def test_first_heading_ignores_fenced_code():
    text = "```\n# not a heading\n```\n\nIntro\n\n# Real Title\n"
    assert utils.first_heading(text) == "Real Title"
    assert utils.first_heading("## Sub only\n") is None


def test_first_paragraph():
    text = "# Title\n\n![img](/a.png)\n\nFirst <em>paragraph</em> with [a link](/x/).\n\nSecond."
    assert utils.first_paragraph(text) == "First paragraph with a link."
    assert utils.first_paragraph("") == ""
    assert utils.first_paragraph("word " * 100, limit=9) == "word word"


def test_content_file_filters():
    assert utils.is_markdown(Path("a.MD"))
    assert utils.is_markdown(Path("a.markdown"))
    assert utils.is_html(Path("a.html"))
    assert not utils.is_markdown(Path("a.txt"))
    assert utils.is_ignored(Path("_drafts/a.md"))
    assert utils.is_ignored(Path("posts/.hidden.md"))
    assert utils.is_ignored(Path("posts/_partial.md"))
    assert not utils.is_ignored(Path("posts/_index.md"))
    assert not utils.is_ignored(Path("posts/a.md"))


def test_url_helpers():
    assert utils.url_to_output_path("/") == PurePosixPath("index.html")
    assert utils.url_to_output_path("/posts/a/") == PurePosixPath("posts/a/index.html")
    assert utils.url_to_output_path("/feed.html") == PurePosixPath("feed.html")
    assert utils.normalize_url("old/path") == "/old/path/"
    assert utils.normalize_url("//") == "/"
    assert utils.normalize_url("/a/b.html") == "/a/b.html"
    assert utils.join_root_url("https://example.com/", "about") == "https://example.com/about"
    assert utils.join_root_url("", "/about/") == "/about/"


def test_absolutize_html_urls():
    html = '<a href="/a/">a</a><a href="#top">t</a><img src="//cdn/x.png"><a href="mailto:x@y">m</a>'
    result = utils.absolutize_html_urls(html, "https://example.com")
    assert 'href="https://example.com/a/"' in result
    assert 'href="#top"' in result
    assert 'src="//cdn/x.png"' in result
    assert 'href="mailto:x@y"' in result
    assert utils.absolutize_html_urls(html, "") == html
