"""Unit tests for sitemap entries and generation."""

from __future__ import annotations

import json
import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from siteutil import sitemap
from siteutil.config import (
    HtmlFiles,
    LastmodStrategy,
    MarkdownFiles,
    SiteConfiguration,
    SitemapDictionary,
    site_config,
)
from siteutil.sitemap import (
    InvalidSitemapURL,
    SitemapDiscoveryError,
    SitemapEntry,
    SitemapWriteError,
    discover_html_files,
    generate,
    git_lastmod,
    path_to_url,
    write_sitemap,
)
from siteutil.xmlutil import xml_escape

NOW = datetime(2025, 12, 1, 8, 30, tzinfo=UTC)
HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'


def _entry_xml(url: str, lastmod: str) -> str:
    return f"<url>\n  <loc>{url}</loc>\n  <lastmod>{lastmod}</lastmod>\n</url>\n"


def _site(root: Path, name: str = "21-dev", strategy: LastmodStrategy = LastmodStrategy.CURRENT_DATE) -> SiteConfiguration:
    return SiteConfiguration(
        name=name,
        base_url="https://21.dev",
        output_directory=str(root),
        discovery=HtmlFiles(str(root)),
        lastmod_strategy=strategy,
    )


def _touch(root: Path, *names: str) -> None:
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("<html><head></head></html>", encoding="utf-8")


def test_entry_accepts_url_at_length_limit() -> None:
    """2048 characters is the largest accepted URL."""
    prefix = "https://21.dev/"
    url = prefix + "a" * (2048 - len(prefix))

    assert len(SitemapEntry(url=url, lastmod=NOW).url) == 2048


def test_entry_rejects_url_over_length_limit() -> None:
    """Longer URLs fail construction with the length reason."""
    url = "https://21.dev/" + "a" * 2042

    with pytest.raises(InvalidSitemapURL, match="2048 character limit"):
        SitemapEntry(url=url, lastmod=NOW)


@pytest.mark.parametrize("url", ["/about", "ftp://21.dev/file", "https://", "", "https://21.dev/a b"])
def test_entry_rejects_non_absolute_http_urls(url: str) -> None:
    """Only absolute http(s) URLs with a host are accepted."""
    with pytest.raises(InvalidSitemapURL):
        SitemapEntry(url=url, lastmod=NOW)


def test_entry_xml_escapes_location() -> None:
    """Reserved XML characters in the URL are escaped."""
    entry = SitemapEntry(url="https://21.dev/search?q=a&page=2", lastmod=NOW)

    assert entry.to_xml() == _entry_xml("https://21.dev/search?q=a&amp;page=2", "2025-12-01T08:30:00Z")


def test_entry_dict_round_trip() -> None:
    """Entries serialize with an ISO-8601 UTC lastmod."""
    entry = SitemapEntry(url="https://21.dev/", lastmod=NOW)

    assert entry.to_dict() == {"url": "https://21.dev/", "lastmod": "2025-12-01T08:30:00Z"}
    assert SitemapEntry.from_dict(entry.to_dict()) == entry


@pytest.mark.parametrize(
    ("file_path", "expected"),
    [
        ("Websites/21-dev/index.html", "https://21.dev/"),
        ("Websites/21-dev/about/index.html", "https://21.dev/about/"),
        ("Websites/21-dev/about.html", "https://21.dev/about.html"),
        ("Websites/21-dev/api/overview.md", "https://21.dev/api/overview.md"),
    ],
)
def test_path_to_url(file_path: str, expected: str) -> None:
    """Index documents collapse to their directory; other files keep their extension."""
    assert path_to_url(file_path, "https://21.dev/", "Websites/21-dev") == expected


def test_discover_html_files_is_sorted_and_filtered(tmp_path: Path) -> None:
    """Discovery returns sorted relative paths for the requested extension only."""
    _touch(tmp_path, "index.html", "b/index.html", "a.html", "notes.md")

    assert discover_html_files(tmp_path) == ["a.html", "b/index.html", "index.html"]


def test_discover_rejects_missing_or_file_path(tmp_path: Path) -> None:
    """Missing directories and plain files abort discovery."""
    file_path = tmp_path / "file.txt"
    file_path.write_text("x", encoding="utf-8")

    with pytest.raises(SitemapDiscoveryError, match="URL discovery failed"):
        discover_html_files(tmp_path / "missing")
    with pytest.raises(SitemapDiscoveryError):
        discover_html_files(file_path)


def test_generate_is_deterministic_for_fixed_clock(tmp_path: Path) -> None:
    """Same tree and clock give byte-identical output in sorted URL order."""
    _touch(tmp_path, "index.html", "about/index.html", "blog.html")
    config = _site(tmp_path)

    first = generate(config, now=NOW)
    second = generate(config, now=NOW)

    lastmod = "2025-12-01T08:30:00Z"
    assert first == second
    assert first == (
        HEADER
        + _entry_xml("https://21.dev/about/", lastmod)
        + _entry_xml("https://21.dev/blog.html", lastmod)
        + _entry_xml("https://21.dev/", lastmod)
        + "</urlset>"
    )


def test_generate_empty_tree_has_only_envelope(tmp_path: Path) -> None:
    """No pages still yields a well-formed document."""
    assert generate(_site(tmp_path), now=NOW) == HEADER + "</urlset>"


def test_generate_drops_entries_with_invalid_urls(tmp_path: Path) -> None:
    """Pages whose URL cannot be a sitemap entry are left out."""
    _touch(tmp_path, "index.html", "my page.html")

    xml = generate(_site(tmp_path), now=NOW)

    assert "my page" not in xml
    assert xml.count("<url>") == 1


def test_generate_uses_git_commit_date(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Git strategy stamps each file with its last commit time in UTC."""
    _touch(tmp_path, "index.html")
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="2024-03-01T10:00:00+01:00\n", stderr="")

    monkeypatch.setattr(sitemap.subprocess, "run", fake_run)

    xml = generate(_site(tmp_path, strategy=LastmodStrategy.GIT_COMMIT_DATE), now=NOW)

    assert "<lastmod>2024-03-01T09:00:00Z</lastmod>" in xml
    assert calls[0][:4] == ["git", "log", "-1", "--format=%cI"]
    assert calls[0][-1] == f"{tmp_path}/index.html"


@pytest.mark.parametrize(
    "behaviour",
    [
        subprocess.TimeoutExpired(cmd="git", timeout=30),
        FileNotFoundError("git"),
        subprocess.CompletedProcess(["git"], 128, stdout="", stderr="fatal"),
        subprocess.CompletedProcess(["git"], 0, stdout="", stderr=""),
        subprocess.CompletedProcess(["git"], 0, stdout="garbage\n", stderr=""),
    ],
)
def test_git_lastmod_falls_back_to_now(behaviour: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    """Timeouts, missing git, failures and unparsable output fall back to the clock."""

    def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        if isinstance(behaviour, BaseException):
            raise behaviour
        return behaviour

    monkeypatch.setattr(sitemap.subprocess, "run", fake_run)

    assert git_lastmod("untracked.html", now=NOW) == NOW


def test_generate_uses_state_lastmod(tmp_path: Path) -> None:
    """Version-gated sites take lastmod from the state file."""
    site_dir = tmp_path / "md"
    (site_dir / "api").mkdir(parents=True)
    (site_dir / "api" / "overview.md").write_text("# Overview\n", encoding="utf-8")
    state_path = tmp_path / "state.json"
    state_path.write_text(
        json.dumps(
            {
                "package_version": "0.21.0",
                "generated_date": "2025-12-02T00:00:00Z",
                "subdomains": {"md-21-dev": {"lastmod": "2025-11-20T12:00:00Z"}},
            }
        ),
        encoding="utf-8",
    )
    config = SiteConfiguration(
        name="md-21-dev",
        base_url="https://md.21.dev",
        output_directory=str(site_dir),
        discovery=MarkdownFiles(str(site_dir)),
        lastmod_strategy=LastmodStrategy.PACKAGE_VERSION_STATE,
    )

    xml = generate(config, now=NOW, state_path=state_path)

    assert _entry_xml("https://md.21.dev/api/overview.md", "2025-11-20T12:00:00Z") in xml


def test_generate_without_state_uses_clock(tmp_path: Path) -> None:
    """A missing state file falls back to the current time."""
    _touch(tmp_path, "index.html")
    config = _site(tmp_path, name="docs-21-dev", strategy=LastmodStrategy.PACKAGE_VERSION_STATE)

    xml = generate(config, now=NOW, state_path=tmp_path / "missing.json")

    assert "<lastmod>2025-12-01T08:30:00Z</lastmod>" in xml


def test_generate_from_tracked_paths(tmp_path: Path) -> None:
    """Renderer-tracked paths are mapped without touching the disk."""
    config = SiteConfiguration(
        name="21-dev",
        base_url="https://21.dev",
        output_directory="Websites/21-dev",
        discovery=SitemapDictionary(),
        lastmod_strategy=LastmodStrategy.CURRENT_DATE,
    )

    xml = generate(config, now=NOW, tracked_paths=["/packages/index.html", "index.html"])

    assert xml.index("https://21.dev/</loc>") < xml.index("https://21.dev/packages/</loc>")
    with pytest.raises(SitemapDiscoveryError):
        generate(config, now=NOW)


def test_site_config_table() -> None:
    """Known sites resolve to their discovery and lastmod strategies."""
    docs = site_config("docs-21-dev")

    assert docs.base_url == "https://docs.21.dev"
    assert docs.discovery == HtmlFiles("Websites/docs-21-dev/documentation")
    assert docs.lastmod_strategy is LastmodStrategy.PACKAGE_VERSION_STATE
    assert site_config("md-21-dev").discovery == MarkdownFiles("Websites/md-21-dev")
    assert site_config("21-dev").sitemap_path == "Websites/21-dev/sitemap.xml"
    with pytest.raises(ValueError, match="Invalid site name"):
        site_config("example")


def test_write_sitemap_replaces_file(tmp_path: Path) -> None:
    """Writing replaces any previous sitemap in full."""
    target = tmp_path / "out" / "sitemap.xml"
    write_sitemap("old", target)
    write_sitemap(HEADER + "</urlset>", target)

    assert target.read_text(encoding="utf-8") == HEADER + "</urlset>"
    assert [path.name for path in target.parent.iterdir()] == ["sitemap.xml"]


def test_write_sitemap_wraps_os_errors(tmp_path: Path) -> None:
    """Filesystem failures surface as SitemapWriteError."""
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")

    with pytest.raises(SitemapWriteError, match="Failed to write sitemap"):
        write_sitemap(HEADER, blocker / "sitemap.xml")


def test_xml_escape_covers_all_reserved_characters() -> None:
    """Both quote styles are escaped along with &, < and >."""
    assert xml_escape("""a&b<c>'d"e""") == "a&amp;b&lt;c&gt;&apos;d&quot;e"
