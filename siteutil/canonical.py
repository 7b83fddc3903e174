"""
Canonical URL derivation and auditing for generated HTML trees.

The expected canonical for a page comes from the site base URL plus the
page's path inside the build output:

    index.html          -> https://21.dev/
    about/index.html    -> https://21.dev/about/
    blog/post-1.html    -> https://21.dev/blog/post-1
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag

from siteutil.config import DEFAULT_DOCUMENT, PAGE_EXTENSION

HEAD_TAG_RE = re.compile(r"<head(?=[\s>/])", re.IGNORECASE)
PATH_SAFE = "/!$&'()*+,;=:@-._~"


class CanonicalCheckError(Exception):
    pass


class CanonicalStatus(str, Enum):
    VALID = "valid"
    MISMATCH = "mismatch"
    MISSING = "missing"
    ERROR = "error"


@dataclass(frozen=True)
class CanonicalResult:
    file_path: str
    relative_path: str
    status: CanonicalStatus
    existing_url: str | None
    expected_url: str
    error_message: str | None = None


@dataclass(frozen=True)
class CheckReport:
    results: tuple[CanonicalResult, ...]
    base_url: str
    scan_directory: str

    def _count(self, status: CanonicalStatus) -> int:
        return sum(1 for result in self.results if result.status is status)

    @property
    def valid_count(self) -> int:
        return self._count(CanonicalStatus.VALID)

    @property
    def mismatch_count(self) -> int:
        return self._count(CanonicalStatus.MISMATCH)

    @property
    def missing_count(self) -> int:
        return self._count(CanonicalStatus.MISSING)

    @property
    def error_count(self) -> int:
        return self._count(CanonicalStatus.ERROR)

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def issue_count(self) -> int:
        return self.mismatch_count + self.missing_count + self.error_count

    @property
    def is_all_valid(self) -> bool:
        return self.issue_count == 0


def derive_url(base_url: str, relative_path: str) -> str:
    """Map a page's output path to the single canonical URL it should declare.

    Default documents become directory-style URLs with a trailing slash;
    other pages lose their extension and get no trailing slash.
    """
    path = relative_path
    is_directory = False
    suffix = "/" + DEFAULT_DOCUMENT
    if path == DEFAULT_DOCUMENT:
        path = ""
        is_directory = True
    elif path.endswith(suffix):
        path = path[: -len(suffix)]
        is_directory = True
    elif path.endswith(PAGE_EXTENSION):
        path = path[: -len(PAGE_EXTENSION)]

    parts = urlsplit(base_url)
    base_path = unquote(parts.path)
    if base_path.endswith("/"):
        base_path = base_path[:-1]

    if not path:
        full_path = base_path + "/"
    else:
        full_path = f"{base_path}/{path}" + ("/" if is_directory else "")
    return urlunsplit((parts.scheme, parts.netloc, quote(full_path, safe=PATH_SAFE), parts.query, parts.fragment))


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def has_explicit_head(html: str) -> bool:
    return HEAD_TAG_RE.search(html) is not None


def is_canonical_link(tag: Tag) -> bool:
    rel = tag.get("rel")
    if not rel:
        return False
    tokens = rel if isinstance(rel, list) else str(rel).split()
    return any(token.lower() == "canonical" for token in tokens)


def canonical_links(head: Tag) -> list[Tag]:
    return [tag for tag in head.find_all("link") if is_canonical_link(tag)]


def normalize_href(raw: object) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    if not value or any(ch.isspace() for ch in value):
        return None
    try:
        urlsplit(value)
    except ValueError:
        return None
    return value


def check_html(html: str, file_path: str, relative_path: str, base_url: str) -> CanonicalResult:
    expected_url = derive_url(base_url, relative_path)

    def outcome(status: CanonicalStatus, existing: str | None = None, message: str | None = None) -> CanonicalResult:
        return CanonicalResult(
            file_path=file_path,
            relative_path=relative_path,
            status=status,
            existing_url=existing,
            expected_url=expected_url,
            error_message=message,
        )

    try:
        # html.parser never invents a <head>, but a lenient parser would;
        # only an explicit tag in the source counts.
        if not has_explicit_head(html):
            return outcome(CanonicalStatus.ERROR, message="No <head> section found")
        head = parse_html(html).head
        if head is None:
            return outcome(CanonicalStatus.ERROR, message="No <head> section found")

        links = canonical_links(head)
        if len(links) > 1:
            return outcome(CanonicalStatus.ERROR, message=f"Found multiple canonical tags ({len(links)})")
        if not links:
            return outcome(CanonicalStatus.MISSING)

        existing = normalize_href(links[0].get("href"))
        if existing is None:
            return outcome(CanonicalStatus.ERROR, message="Invalid or empty canonical href")

        status = CanonicalStatus.VALID if existing == expected_url else CanonicalStatus.MISMATCH
        return outcome(status, existing)
    except Exception as exc:
        return outcome(CanonicalStatus.ERROR, message=f"Parse error: {exc}")


def iter_html_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            if name.lower().endswith(PAGE_EXTENSION):
                yield Path(dirpath) / name


def relative_to_root(path: Path, root: Path) -> tuple[str, str]:
    """Return (resolved absolute path, POSIX path relative to the scan root)."""
    resolved = str(path.resolve())
    prefix = str(root) if str(root).endswith(os.sep) else str(root) + os.sep
    if resolved.startswith(prefix):
        relative = resolved[len(prefix) :]
    else:
        # symlinked file pointing outside the tree
        relative = str(path.relative_to(root))
    return resolved, relative.replace(os.sep, "/")


def check_directory(directory: str | Path, base_url: str) -> CheckReport:
    root = Path(directory).resolve()
    if not root.is_dir():
        raise CanonicalCheckError(f"Cannot enumerate directory: {directory}")
    try:
        os.listdir(root)
    except OSError as exc:
        raise CanonicalCheckError(f"Cannot enumerate directory: {directory} ({exc})") from exc

    results: list[CanonicalResult] = []
    for path in iter_html_files(root):
        file_path, relative_path = relative_to_root(path, root)
        try:
            html = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            results.append(
                CanonicalResult(
                    file_path=file_path,
                    relative_path=relative_path,
                    status=CanonicalStatus.ERROR,
                    existing_url=None,
                    expected_url=derive_url(base_url, relative_path),
                    error_message=f"Cannot read file: {exc}",
                )
            )
            continue
        results.append(check_html(html, file_path, relative_path, base_url))

    return CheckReport(results=tuple(results), base_url=base_url, scan_directory=str(directory))
