from pathlib import Path, PurePosixPath

from PIL import Image

from stheno.asset_processors import (
    AssetProcessorRegistry,
    ImageOptimizer,
    Outcome,
    PassthroughCopier,
    ScriptMinifier,
    create_default_registry,
)
from stheno.assets import AssetPipeline


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_project_static_overrides_theme(tmp_path):
    theme = tmp_path / "theme"
    project = tmp_path / "static"
    write(theme / "css" / "site.css", "theme")
    write(theme / "js" / "theme.js", "theme js")
    write(project / "css" / "site.css", "project")
    out = tmp_path / "out"

    copied = AssetPipeline([theme, project]).run(out)

    assert copied == [PurePosixPath("css/site.css"), PurePosixPath("js/theme.js")]
    assert (out / "css" / "site.css").read_text() == "project"
    assert (out / "js" / "theme.js").read_text() == "theme js"


def test_litter_and_missing_dirs_are_skipped(tmp_path):
    static = tmp_path / "static"
    write(static / ".DS_Store", "x")
    write(static / ".git" / "HEAD", "ref")
    write(static / "css" / "site.css.swp", "x")
    write(static / "robots.txt~", "x")
    write(static / "robots.txt", "User-agent: *\n")

    plan = AssetPipeline([tmp_path / "missing", static]).plan()

    assert list(plan) == [PurePosixPath("robots.txt")]


def test_deploy_dotfiles_are_copied(tmp_path):
    static = tmp_path / "static"
    write(static / ".nojekyll", "")
    write(static / ".well-known" / "security.txt", "Contact: mailto:a@b.c\n")
    out = tmp_path / "out"

    copied = AssetPipeline([static]).run(out)

    assert copied == [PurePosixPath(".nojekyll"), PurePosixPath(".well-known/security.txt")]
    assert (out / ".well-known" / "security.txt").read_text() == "Contact: mailto:a@b.c\n"


def test_files_are_copied_unmodified_by_default(tmp_path):
    static = tmp_path / "static"
    source = "function  add( a, b ) {\n  return a + b;\n}\n"
    write(static / "app.js", source)
    out = tmp_path / "out"

    AssetPipeline([static]).run(out)

    assert (out / "app.js").read_text() == source


def test_checkpoint_runs_before_each_copy(tmp_path):
    static = tmp_path / "static"
    write(static / "a.txt", "a")
    write(static / "b.txt", "b")
    calls = []
    AssetPipeline([static]).run(tmp_path / "out", checkpoint=lambda: calls.append(1))
    assert len(calls) == 2


def test_js_is_minified_when_optimizing(tmp_path):
    static = tmp_path / "static"
    write(static / "app.js", "function  add( a, b ) {\n  return a + b;\n}\n")
    write(static / "vendor.min.js", "var  keep = 1;\n")
    out = tmp_path / "out"

    AssetPipeline([static], optimize=True).run(out)

    minified = (out / "app.js").read_text()
    assert "function add(a,b)" in minified
    assert (out / "vendor.min.js").read_text() == "var  keep = 1;\n"


def test_images_are_optimized_with_pillow(tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    Image.new("RGB", (8, 8), "red").save(static / "dot.png")
    out = tmp_path / "out"

    assert ImageOptimizer().transform(static / "dot.png", out / "dot.png") is Outcome.OPTIMIZED
    with Image.open(out / "dot.png") as img:
        assert img.size == (8, 8)


def test_unreadable_image_falls_back_to_copy(tmp_path):
    source = write(tmp_path / "broken.png", "not an image")
    dest = tmp_path / "out" / "broken.png"
    assert ImageOptimizer().transform(source, dest) is Outcome.COPIED
    assert dest.read_text() == "not an image"


def test_registry_orders_by_priority():
    registry = create_default_registry(optimize=True)
    assert isinstance(registry.select(Path("a.PNG")), ImageOptimizer)
    assert isinstance(registry.select(Path("a.js")), ScriptMinifier)
    assert isinstance(registry.select(Path("a.min.js")), PassthroughCopier)
    assert isinstance(create_default_registry().select(Path("a.js")), PassthroughCopier)
    assert AssetProcessorRegistry().process(Path("a"), Path("b")) is None
