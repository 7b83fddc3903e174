"""
Insert or rewrite canonical <link> tags based on an audit report.

Edits are spliced into the original source at the positions the parser
reports, so everything outside the touched tag stays byte-for-byte as it was.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from html import escape
from pathlib import Path

from bs4 import BeautifulSoup, Tag

from siteutil.canonical import (
    CanonicalResult,
    CanonicalStatus,
    CheckReport,
    canonical_links,
    has_explicit_head,
    parse_html,
)
from siteutil.fileio import atomic_write_text

HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)
TAG_REST_RE = re.compile(r"""(?:[^>"']|"[^"]*"|'[^']*')*>""")
ATTR_RE = re.compile(r"""([^\s"'>/=]+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s"'=<>`]+))?""")


class CanonicalFixError(Exception):
    pass


class FixAction(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class FixResult:
    file_path: str
    action: FixAction
    error_message: str | None = None


@dataclass(frozen=True)
class FixReport:
    results: tuple[FixResult, ...]

    def _count(self, action: FixAction) -> int:
        return sum(1 for result in self.results if result.action is action)

    @property
    def added_count(self) -> int:
        return self._count(FixAction.ADDED)

    @property
    def updated_count(self) -> int:
        return self._count(FixAction.UPDATED)

    @property
    def skipped_count(self) -> int:
        return self._count(FixAction.SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(FixAction.FAILED)

    @property
    def modified_count(self) -> int:
        return self.added_count + self.updated_count

    @property
    def is_success(self) -> bool:
        return self.failed_count == 0


def canonical_tag(canonical_url: str) -> str:
    return f'<link rel="canonical" href="{escape(canonical_url)}">'


def _head_of(html: str, soup: BeautifulSoup) -> Tag:
    head = soup.head if has_explicit_head(html) else None
    if head is None:
        raise CanonicalFixError("No <head> section found in HTML")
    return head


def _start_tag_span(html: str, tag: Tag) -> tuple[int, int]:
    """Offsets of `tag`'s start tag in `html`, from the parser's line/column."""
    if tag.sourceline is None or tag.sourcepos is None:
        raise CanonicalFixError(f"Cannot locate <{tag.name}> in source")
    start = 0
    for _ in range(tag.sourceline - 1):
        start = html.find("\n", start) + 1
        if start == 0:
            raise CanonicalFixError(f"Cannot locate <{tag.name}> in source")
    start += tag.sourcepos

    opener = f"<{tag.name}"
    if html[start : start + len(opener)].lower() != opener:
        raise CanonicalFixError(f"Cannot locate <{tag.name}> in source")
    rest = TAG_REST_RE.match(html, start + len(opener))
    if rest is None:
        raise CanonicalFixError(f"Unterminated <{tag.name}> tag")
    return start, rest.end()


def _with_href(start_tag: str, canonical_url: str) -> str:
    quoted = f'"{escape(canonical_url)}"'
    name_end = len("<link")
    for attr in ATTR_RE.finditer(start_tag, name_end, len(start_tag) - 1):
        if attr.group(1).lower() != "href":
            continue
        if attr.group(2) is None:
            begin, end = attr.span()
            return start_tag[:begin] + f"href={quoted}" + start_tag[end:]
        begin, end = attr.span(2)
        return start_tag[:begin] + quoted + start_tag[end:]

    closer = 2 if start_tag.endswith("/>") else 1
    return start_tag[:-closer].rstrip() + f" href={quoted}" + start_tag[-closer:]


def insert_canonical(html: str, canonical_url: str) -> str:
    """Splice a canonical link in just before </head>, or after <head> when it is never closed."""
    head = _head_of(html, parse_html(html))
    _, head_open_end = _start_tag_span(html, head)
    closing = HEAD_CLOSE_RE.search(html, head_open_end)
    at = closing.start() if closing else head_open_end
    return html[:at] + canonical_tag(canonical_url) + html[at:]


def replace_canonical(html: str, canonical_url: str) -> str:
    head = _head_of(html, parse_html(html))
    links = canonical_links(head)
    if not links:
        return insert_canonical(html, canonical_url)
    start, end = _start_tag_span(html, links[0])
    return html[:start] + _with_href(html[start:end], canonical_url) + html[end:]



def fix(html: str, check_result: CanonicalResult, force: bool) -> tuple[str, FixAction]:
    status = check_result.status
    if status is CanonicalStatus.MISSING:
        return insert_canonical(html, check_result.expected_url), FixAction.ADDED
    if status is CanonicalStatus.MISMATCH:
        if force:
            return replace_canonical(html, check_result.expected_url), FixAction.UPDATED
        return html, FixAction.SKIPPED
    if status is CanonicalStatus.VALID:
        return html, FixAction.SKIPPED
    return html, FixAction.FAILED


def fix_directory(report: CheckReport, force: bool, dry_run: bool) -> FixReport:
    """Apply `fix` to every audited file, re-reading each one from disk."""
    results: list[FixResult] = []
    for check_result in report.results:
        try:
            html = Path(check_result.file_path).read_text(encoding="utf-8")
            fixed_html, action = fix(html, check_result, force)
            if not dry_run and action in (FixAction.ADDED, FixAction.UPDATED):
                atomic_write_text(check_result.file_path, fixed_html)
        except Exception as exc:
            results.append(FixResult(check_result.file_path, FixAction.FAILED, str(exc)))
            continue
        message = check_result.error_message if action is FixAction.FAILED else None
        results.append(FixResult(check_result.file_path, action, message))
    return FixReport(results=tuple(results))
