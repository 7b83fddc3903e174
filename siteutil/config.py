"""
Site table and shared constants for the siteutil commands.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
DEFAULT_DOCUMENT = "index.html"
PAGE_EXTENSION = ".html"
MAX_URL_LENGTH = 2048
GIT_TIMEOUT = 30

DEFAULT_STATE_PATH = "Resources/sitemap-state.json"
DEFAULT_RESOLVED_PATH = "Package.resolved"
TRACKED_PACKAGE = "swift-secp256k1"
STATE_SUBDOMAINS = ("docs-21-dev", "md-21-dev")

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; siteutil/0.1; +https://21.dev)",
    "Accept": "application/xml,text/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
}


class LastmodStrategy(str, Enum):
    GIT_COMMIT_DATE = "gitCommitDate"
    PACKAGE_VERSION_STATE = "packageVersionState"
    CURRENT_DATE = "currentDate"


@dataclass(frozen=True)
class HtmlFiles:
    directory: str


@dataclass(frozen=True)
class MarkdownFiles:
    directory: str


@dataclass(frozen=True)
class SitemapDictionary:
    """URLs tracked by the page renderer at build time, handed in by the caller."""


DiscoveryStrategy = HtmlFiles | MarkdownFiles | SitemapDictionary


@dataclass(frozen=True)
class SiteConfiguration:
    name: str
    base_url: str
    output_directory: str
    discovery: DiscoveryStrategy
    lastmod_strategy: LastmodStrategy

    @property
    def sitemap_path(self) -> str:
        return f"{self.output_directory}/sitemap.xml"

    def with_input(self, directory: str) -> SiteConfiguration:
        """Point discovery and the output directory at another build tree."""
        if isinstance(self.discovery, MarkdownFiles):
            discovery: DiscoveryStrategy = MarkdownFiles(directory)
        else:
            discovery = HtmlFiles(directory)
        return SiteConfiguration(
            name=self.name,
            base_url=self.base_url,
            output_directory=directory,
            discovery=discovery,
            lastmod_strategy=self.lastmod_strategy,
        )


SITES = {
    "21-dev": "https://21.dev",
    "docs-21-dev": "https://docs.21.dev",
    "md-21-dev": "https://md.21.dev",
}


def output_directory_for(name: str) -> str:
    return f"Websites/{name}"


def site_config(name: str) -> SiteConfiguration:
    if name not in SITES:
        valid = ", ".join(SITES)
        raise ValueError(f"Invalid site name: {name}. Valid values: {valid}")
    out_dir = output_directory_for(name)
    if name == "21-dev":
        return SiteConfiguration(
            name=name,
            base_url=SITES[name],
            output_directory=out_dir,
            discovery=HtmlFiles(out_dir),
            lastmod_strategy=LastmodStrategy.GIT_COMMIT_DATE,
        )
    if name == "docs-21-dev":
        return SiteConfiguration(
            name=name,
            base_url=SITES[name],
            output_directory=out_dir,
            discovery=HtmlFiles(f"{out_dir}/documentation"),
            lastmod_strategy=LastmodStrategy.PACKAGE_VERSION_STATE,
        )
    return SiteConfiguration(
        name=name,
        base_url=SITES[name],
        output_directory=out_dir,
        discovery=MarkdownFiles(out_dir),
        lastmod_strategy=LastmodStrategy.PACKAGE_VERSION_STATE,
    )
