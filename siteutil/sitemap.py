"""
Sitemap generation for the built 21.dev sites.

Output files are discovered under the site's build directory, mapped to
absolute URLs and stamped with a lastmod value from the site's strategy:
git commit date, the persisted package-version state, or the current time.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from siteutil.config import (
    DEFAULT_DOCUMENT,
    DEFAULT_STATE_PATH,
    GIT_TIMEOUT,
    HtmlFiles,
    LastmodStrategy,
    MarkdownFiles,
    SiteConfiguration,
)
from siteutil.dates import format_iso, parse_iso, utc_now
from siteutil.fileio import atomic_write_text
from siteutil.state import subdomain_lastmod
from siteutil.xmlutil import sitemap_footer, sitemap_header, sitemap_url_entry, url_rejection


class SitemapError(Exception):
    pass


class InvalidSitemapURL(SitemapError):
    def __init__(self, url: str, reason: str | None = None) -> None:
        self.url = url
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid sitemap URL: {url}{detail}")


class SitemapDiscoveryError(SitemapError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"URL discovery failed: {reason}")


class SitemapWriteError(SitemapError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to write sitemap: {reason}")


@dataclass(frozen=True)
class SitemapEntry:
    url: str
    lastmod: datetime

    def __post_init__(self) -> None:
        reason = url_rejection(self.url)
        if reason is not None:
            raise InvalidSitemapURL(self.url, reason)

    def to_xml(self) -> str:
        return sitemap_url_entry(self.url, format_iso(self.lastmod))

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "lastmod": format_iso(self.lastmod)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SitemapEntry:
        return cls(url=str(data["url"]), lastmod=parse_iso(str(data["lastmod"])))


def discover_files(directory: str | Path, extension: str) -> list[str]:
    """Return sorted POSIX paths, relative to `directory`, of files ending in `extension`."""
    root = Path(directory)
    if not root.exists():
        raise SitemapDiscoveryError(f"Directory does not exist: {directory}")
    if not root.is_dir():
        raise SitemapDiscoveryError(f"Not a directory: {directory}")
    try:
        os.listdir(root)
    except OSError as exc:
        raise SitemapDiscoveryError(f"Cannot enumerate directory: {directory} ({exc})") from exc

    files: list[str] = []
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(extension):
                files.append((Path(dirpath) / name).relative_to(root).as_posix())
    return sorted(files)


def discover_html_files(directory: str | Path) -> list[str]:
    return discover_files(directory, ".html")


def discover_markdown_files(directory: str | Path) -> list[str]:
    return discover_files(directory, ".md")


def path_to_url(file_path: str, base_url: str, output_directory: str) -> str:
    relative = file_path
    if relative.startswith(output_directory):
        relative = relative[len(output_directory) :]
    if not relative.startswith("/"):
        relative = "/" + relative
    if relative.endswith("/" + DEFAULT_DOCUMENT):
        relative = relative[: -len(DEFAULT_DOCUMENT)]
    return base_url.rstrip("/") + relative


def git_lastmod(file_path: str, timeout: int = GIT_TIMEOUT, now: datetime | None = None) -> datetime:
    """Last commit date of a file; the current time when git cannot tell."""
    fallback = now or utc_now()
    try:
        proc = subprocess.run(
            ["git", "log", "-1", "--format=%cI", "--", file_path],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return fallback
    except OSError:
        return fallback
    if proc.returncode != 0:
        return fallback
    output = (proc.stdout or "").strip()
    if not output:
        return fallback
    try:
        return parse_iso(output)
    except ValueError:
        return fallback


def resolve_lastmod(
    strategy: LastmodStrategy,
    file_path: str,
    now: datetime,
    state_lastmod: datetime | None = None,
) -> datetime:
    if strategy is LastmodStrategy.GIT_COMMIT_DATE:
        return git_lastmod(file_path, now=now)
    if strategy is LastmodStrategy.PACKAGE_VERSION_STATE:
        return state_lastmod or now
    return now


def _join(directory: str, relative: str) -> str:
    return directory + relative if directory.endswith("/") else f"{directory}/{relative}"


def generate(
    config: SiteConfiguration,
    now: datetime | None = None,
    state_path: str | Path = DEFAULT_STATE_PATH,
    tracked_paths: Iterable[str] | None = None,
) -> str:
    """Build the sitemap XML for a site.

    `tracked_paths` carries the output paths for sites whose URLs are
    recorded by the page renderer instead of discovered on disk. Entries
    whose URL fails validation are left out of the document.
    """
    clock = now or utc_now()
    discovery = config.discovery
    if isinstance(discovery, HtmlFiles):
        directory = discovery.directory
        files = [_join(directory, name) for name in discover_html_files(directory)]
    elif isinstance(discovery, MarkdownFiles):
        directory = discovery.directory
        files = [_join(directory, name) for name in discover_markdown_files(directory)]
    elif tracked_paths is not None:
        files = sorted(_join(config.output_directory, path.lstrip("/")) for path in tracked_paths)
    else:
        raise SitemapDiscoveryError("sitemap dictionary strategy requires tracked paths from the caller")

    state_lastmod = None
    if config.lastmod_strategy is LastmodStrategy.PACKAGE_VERSION_STATE:
        state_lastmod = subdomain_lastmod(state_path, config.name)

    entries: list[SitemapEntry] = []
    for full_path in files:
        url = path_to_url(full_path, config.base_url, config.output_directory)
        lastmod = resolve_lastmod(config.lastmod_strategy, full_path, clock, state_lastmod)
        try:
            entries.append(SitemapEntry(url=url, lastmod=lastmod))
        except InvalidSitemapURL:
            continue

    return sitemap_header() + "".join(entry.to_xml() for entry in entries) + sitemap_footer()


def write_sitemap(xml: str, path: str | Path) -> None:
    try:
        atomic_write_text(path, xml)
    except OSError as exc:
        raise SitemapWriteError(str(exc)) from exc
