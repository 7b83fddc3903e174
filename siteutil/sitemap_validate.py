"""
Structural validation of finished sitemap XML, independent of how it was built.
"""

from __future__ import annotations

import re
from pathlib import Path

import requests

from siteutil.config import HEADERS, MAX_URL_LENGTH, SITEMAP_NS, SiteConfiguration
from siteutil.validation import ValidationIssue, ValidationResult
from siteutil.xmlutil import is_valid_sitemap_url

LOC_RE = re.compile(r"<loc>([^<]+)</loc>")
NAMESPACE_DECL = f'xmlns="{SITEMAP_NS}"'


def extract_locs(xml_text: str) -> list[str]:
    """Every <loc> value in document order.

    Pattern based; swap for an XML parser here without touching callers.
    """
    return LOC_RE.findall(xml_text)


def validate_url(url: str) -> ValidationResult:
    if len(url) > MAX_URL_LENGTH:
        return ValidationResult.failure(
            [
                ValidationIssue(
                    "URL_TOO_LONG",
                    f"URL exceeds {MAX_URL_LENGTH} character limit ({len(url)} chars)",
                    url[:50] + "...",
                )
            ]
        )
    if not is_valid_sitemap_url(url):
        return ValidationResult.failure(
            [ValidationIssue("INVALID_URL", "Invalid sitemap URL: must be absolute HTTP/HTTPS URL", url)]
        )
    return ValidationResult.success()


def validate_xml(xml_text: str) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[str] = []

    if "<?xml" not in xml_text:
        errors.append(ValidationIssue("MISSING_XML_DECLARATION", 'Missing XML declaration (<?xml version="1.0"?>)'))
    if "<urlset" not in xml_text:
        errors.append(ValidationIssue("MISSING_URLSET", "Missing <urlset> root element"))
    if NAMESPACE_DECL not in xml_text:
        warnings.append("Missing sitemap namespace declaration")

    for loc in extract_locs(xml_text):
        errors.extend(validate_url(loc).errors)

    return ValidationResult.from_issues(errors, warnings)


def validate_file(path: str | Path) -> ValidationResult:
    sitemap_path = Path(path)
    if not sitemap_path.exists():
        return ValidationResult.failure([ValidationIssue("FILE_NOT_FOUND", "Sitemap file not found", str(path))])
    try:
        xml_text = sitemap_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ValidationResult.failure(
            [ValidationIssue("READ_ERROR", f"Failed to read sitemap file: {exc}", str(path))]
        )
    return validate_xml(xml_text)


def validate(config: SiteConfiguration) -> ValidationResult:
    return validate_file(config.sitemap_path)


def fetch_text(url: str, timeout: int) -> str:
    response = requests.get(url, headers=HEADERS, timeout=timeout, allow_redirects=True)
    response.raise_for_status()
    return response.text


def validate_remote(url: str, timeout: int = 20) -> ValidationResult:
    """Fetch a published sitemap and validate it like a local file."""
    try:
        xml_text = fetch_text(url, timeout)
    except requests.exceptions.RequestException as exc:
        return ValidationResult.failure([ValidationIssue("FETCH_ERROR", f"Failed to fetch sitemap: {exc}", url)])
    return validate_xml(xml_text)
