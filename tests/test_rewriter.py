from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from webp_migrate.config import ConvertConfig, RewriteConfig
from webp_migrate.converter import convert_tree
from webp_migrate.index import build_reference_index
from webp_migrate.models import ReferenceIndex, ReferenceStyle
from webp_migrate.rewriter import compile_reference_pattern, rewrite_text, rewrite_tree, scan_text


def _index(*assets: str) -> ReferenceIndex:
    return ReferenceIndex(root=Path("/assets"), assets=frozenset(assets))


def _config(tmp_path: Path, **kwargs) -> RewriteConfig:
    return RewriteConfig(source_root=tmp_path / "src", asset_root=tmp_path / "webp", **kwargs)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode("utf-8"))
    return path


@pytest.mark.parametrize(
    "before, after",
    [
        ('src="/images/a/b/name.png"', 'src="/images-webp/a/b/name.webp"'),
        ("img('/images/a/b/name.JPG')", "img('/images-webp/a/b/name.webp')"),
        ("`/images/a/b/name.jpeg`", "`/images-webp/a/b/name.webp`"),
        ("background: url('/images/a/b/name.png');", "background: url('/images-webp/a/b/name.webp');"),
        ('url("/images/a/b/name.gif")', 'url("/images-webp/a/b/name.webp")'),
        ("url(/images/a/b/name.png)", "url(/images-webp/a/b/name.webp)"),
        ("url( '/images/a/b/name.png' )", "url( '/images-webp/a/b/name.webp' )"),
    ],
)
def test_hit_is_rewritten_preserving_style(tmp_path, before, after):
    text, count, unresolved = rewrite_text(before, Path("f.jsx"), _index("a/b/name"), _config(tmp_path))

    assert text == after
    assert count == 1
    assert unresolved == []


def test_miss_is_left_untouched(tmp_path):
    source = "const a = '/images/missing.png';"
    text, count, unresolved = rewrite_text(source, Path("f.jsx"), _index("hero"), _config(tmp_path))

    assert text == source
    assert count == 0
    assert [ref.path for ref in unresolved] == ["/images/missing.png"]
    assert unresolved[0].asset == "missing"


def test_non_matching_literals_are_ignored(tmp_path):
    source = "\n".join(
        [
            'a = "/images/hero.webp";',
            'b = "/img/hero.png";',
            'c = "/images/hero.png\';',
            'd = "https://cdn.example.com/images/hero.png";',
            "e = /images/hero.png;",
        ]
    )
    text, count, unresolved = rewrite_text(source, Path("f.js"), _index("hero"), _config(tmp_path))

    assert text == source
    assert count == 0
    assert unresolved == []


def test_scan_text_classifies_styles():
    pattern = compile_reference_pattern("/images/", {".png"})
    text = "url('/images/a.png') + \"/images/b.png\""

    refs = list(scan_text(text, Path("x.css"), pattern, "/images/"))

    assert [(ref.path, ref.style) for ref in refs] == [
        ("/images/a.png", ReferenceStyle.CSS_URL),
        ("/images/b.png", ReferenceStyle.QUOTED),
    ]
    assert refs[0].matched == "url('/images/a.png')"


def test_custom_prefixes(tmp_path):
    config = _config(tmp_path, prefix="/static/img/", dest_prefix="/static/webp/")
    text, count, _ = rewrite_text('"/static/img/x.png"', Path("f"), _index("x"), config)

    assert text == '"/static/webp/x.webp"'
    assert count == 1


@pytest.mark.parametrize(
    "kwargs",
    [{"prefix": "images/"}, {"prefix": "/images"}, {"dest_prefix": "/images-webp"}, {"dest_prefix": "/images/"}],
)
def test_invalid_prefixes(tmp_path, kwargs):
    with pytest.raises(ValueError):
        _config(tmp_path, **kwargs)


def test_tree_rewrite_counts_and_dedupes_broken(tmp_path):
    src = tmp_path / "src"
    _write(src / "App.jsx", '<img src="/images/a/b/name.png" />\n<img src="/images/gone.png" />\n')
    _write(src / "pages" / "Home.jsx", "const bg = url('/images/gone.png');\n")
    _write(src / "pages" / "About.tsx", 'const x = "/images/gone.png";\n')
    untouched = _write(src / "util.js", "export const n = 1;\n")
    _write(src / "README.md", '"/images/a/b/name.png"')

    report = rewrite_tree(_config(tmp_path), _index("a/b/name"))

    assert report.files_scanned == 4
    assert report.files_updated == 1
    assert report.replacements == 1
    assert list(report.broken) == ["/images/gone.png"]
    assert report.broken["/images/gone.png"].files == ["App.jsx", "pages/About.tsx", "pages/Home.jsx"]
    assert (src / "App.jsx").read_text() == (
        '<img src="/images-webp/a/b/name.webp" />\n<img src="/images/gone.png" />\n'
    )
    assert untouched.read_text() == "export const n = 1;\n"
    assert (src / "README.md").read_text() == '"/images/a/b/name.png"'

    data = report.to_dict()
    assert data["broken_count"] == 1
    assert data["broken_references"][0]["path"] == "/images/gone.png"


def test_unchanged_files_are_not_rewritten(tmp_path):
    path = _write(tmp_path / "src" / "a.js", "const a = '/images/gone.png';\n")
    os.utime(path, (1_000_000, 1_000_000))

    rewrite_tree(_config(tmp_path), _index("hero"))

    assert path.stat().st_mtime == 1_000_000


def test_second_run_makes_no_replacements(tmp_path):
    _write(tmp_path / "src" / "a.jsx", 'a("/images/hero.png"); b(url(/images/hero.png)); c("/images/x.png")')
    index = _index("hero")

    first = rewrite_tree(_config(tmp_path), index)
    second = rewrite_tree(_config(tmp_path), index)

    assert first.replacements == 2
    assert second.replacements == 0
    assert second.files_updated == 0
    assert list(second.broken) == ["/images/x.png"]


def test_line_endings_survive(tmp_path):
    path = _write(tmp_path / "src" / "a.css", ".a {\r\n  background: url('/images/hero.png');\r\n}\r\n")

    rewrite_tree(_config(tmp_path), _index("hero"))

    assert path.read_bytes() == b".a {\r\n  background: url('/images-webp/hero.webp');\r\n}\r\n"


def test_unreadable_file_is_recorded_and_skipped(tmp_path):
    _write(tmp_path / "src" / "a.js", "'/images/hero.png'")
    (tmp_path / "src" / "b.js").write_bytes(b"\xff\xfe\x00bad")

    report = rewrite_tree(_config(tmp_path), _index("hero"))

    assert report.files_updated == 1
    assert [item["file"] for item in report.failed_files] == ["b.js"]


def test_dry_run_writes_nothing(tmp_path):
    path = _write(tmp_path / "src" / "a.js", "'/images/hero.png'")

    report = rewrite_tree(_config(tmp_path, dry_run=True), _index("hero"))

    assert report.replacements == 1
    assert report.files_updated == 1
    assert path.read_text() == "'/images/hero.png'"


def test_cancelled_rewrite_stops_between_files(tmp_path):
    path = _write(tmp_path / "src" / "a.js", "'/images/hero.png'")
    cancel = threading.Event()
    cancel.set()

    report = rewrite_tree(_config(tmp_path), _index("hero"), cancel)

    assert report.cancelled
    assert report.files_scanned == 0
    assert path.read_text() == "'/images/hero.png'"


def test_end_to_end_hero_and_unused(tmp_path, make_image):
    images = tmp_path / "public" / "images"
    webp = tmp_path / "public" / "images-webp"
    make_image(images / "hero.png", size=(256, 256))
    (images / "unused.jpg").write_bytes(b"corrupt jpeg payload")
    component = _write(
        tmp_path / "src" / "Hero.jsx",
        '<img src="/images/hero.png" />\n'
        "<div style={{ background: url('/images/unused.jpg') }} />\n",
    )

    records, stats = convert_tree(ConvertConfig(source_root=images, dest_root=webp, quality=85))
    assert stats.converted == 1
    assert stats.failed == 1
    assert sorted(p.name for p in webp.rglob("*") if p.is_file()) == ["hero.webp"]

    index = build_reference_index(webp)
    assert set(index) == {"hero"}

    report = rewrite_tree(RewriteConfig(source_root=tmp_path / "src", asset_root=webp), index)

    assert component.read_text() == (
        '<img src="/images-webp/hero.webp" />\n'
        "<div style={{ background: url('/images/unused.jpg') }} />\n"
    )
    assert report.replacements == 1
    assert list(report.broken) == ["/images/unused.jpg"]
    assert report.broken["/images/unused.jpg"].style is ReferenceStyle.CSS_URL


def test_names_with_spaces_and_parentheses(tmp_path):
    path = _write(
        tmp_path / "src" / "Gallery.jsx",
        'a("/images/My Photo.png");\n'
        "b(url('/images/cover (1).jpg'));\n"
        'c("/images/Gone Now.png");\n',
    )

    report = rewrite_tree(_config(tmp_path), _index("My Photo", "cover (1)"))

    assert path.read_text() == (
        'a("/images-webp/My Photo.webp");\n'
        "b(url('/images-webp/cover (1).webp'));\n"
        'c("/images/Gone Now.png");\n'
    )
    assert report.replacements == 2
    assert list(report.broken) == ["/images/Gone Now.png"]


def test_bare_url_stops_at_whitespace(tmp_path):
    source = "background: url(/images/a b.png);"
    text, count, unresolved = rewrite_text(source, Path("a.css"), _index("a b"), _config(tmp_path))

    assert text == source
    assert count == 0
    assert unresolved == []


def test_write_error_is_recorded_and_batch_continues(tmp_path, monkeypatch):
    from webp_migrate import rewriter

    first = _write(tmp_path / "src" / "a.js", "'/images/hero.png'")
    second = _write(tmp_path / "src" / "b.js", "'/images/hero.png'")
    real_write = rewriter.write_text_atomic

    def flaky_write(path, text):
        if path.name == "a.js":
            raise OSError("disk full")
        real_write(path, text)

    monkeypatch.setattr(rewriter, "write_text_atomic", flaky_write)

    report = rewrite_tree(_config(tmp_path), _index("hero"))

    assert report.failed_files == [{"file": "a.js", "error": "disk full"}]
    assert report.files_updated == 1
    assert report.replacements == 1
    assert first.read_text() == "'/images/hero.png'"
    assert second.read_text() == "'/images-webp/hero.webp'"
