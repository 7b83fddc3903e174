"""
Sitemap XML fragments and the URL rule shared by entries and the validator.
"""

from __future__ import annotations

from urllib.parse import urlsplit
from xml.sax.saxutils import escape

from siteutil.config import MAX_URL_LENGTH, SITEMAP_NS


def xml_escape(text: str) -> str:
    return escape(text, {"'": "&apos;", '"': "&quot;"})


def sitemap_header() -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<urlset xmlns="{SITEMAP_NS}">\n'


def sitemap_footer() -> str:
    return "</urlset>"


def sitemap_url_entry(url: str, lastmod: str) -> str:
    return f"<url>\n  <loc>{xml_escape(url)}</loc>\n  <lastmod>{lastmod}</lastmod>\n</url>\n"


def url_rejection(url: str) -> str | None:
    """Return why a URL cannot go into a sitemap, or None when it can.

    Checks run in order: length, parseability, scheme, host.
    """
    if len(url) > MAX_URL_LENGTH:
        return f"URL exceeds {MAX_URL_LENGTH} character limit ({len(url)} chars)"
    if not url or any(ch.isspace() for ch in url):
        return "URL is not well-formed"
    try:
        parsed = urlsplit(url)
        host = parsed.hostname
    except ValueError:
        return "URL is not well-formed"
    if parsed.scheme not in ("http", "https"):
        return "URL must use http or https"
    if not host:
        return "URL must be absolute (missing host)"
    return None


def is_valid_sitemap_url(url: str) -> bool:
    return url_rejection(url) is None
