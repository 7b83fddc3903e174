"""
Parsing and policy checks for Cloudflare `_headers` files.

    /*
      X-Frame-Options: DENY
      Referrer-Policy: strict-origin-when-cross-origin
    /static/*
      Cache-Control: public, max-age=31536000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from siteutil.validation import ValidationIssue, ValidationResult

ENVIRONMENTS = ("prod", "dev")
CATCH_ALL = "/*"
REQUIRED_PROD_HEADERS = [
    "X-Frame-Options",
    "X-Content-Type-Options",
    "Referrer-Policy",
]


class HeadersError(Exception):
    pass


class HeadersFileNotFound(HeadersError):
    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        super().__init__(f"Headers file not found: {path}")


class HeadersReadError(HeadersError):
    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        super().__init__(f"Cannot read headers file {path}: {reason}")


class HeadersParseError(HeadersError):
    def __init__(self, reason: str, line: int) -> None:
        self.reason = reason
        self.line = line
        super().__init__(f"Invalid format at line {line}: {reason}")


@dataclass(frozen=True)
class HeadersRule:
    pattern: str
    headers: dict[str, str] = field(default_factory=dict)
    line_number: int = 0

    def has_header(self, name: str) -> bool:
        wanted = name.lower()
        return any(key.lower() == wanted for key in self.headers)


def parse_headers(content: str) -> list[HeadersRule]:
    rules: list[HeadersRule] = []
    pattern: str | None = None
    headers: dict[str, str] = {}
    pattern_line = 0

    for index, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indented = line.startswith((" ", "\t"))
        if not indented and stripped.startswith("/"):
            if pattern is not None:
                rules.append(HeadersRule(pattern, headers, pattern_line))
            pattern = stripped
            headers = {}
            pattern_line = index
        elif indented:
            name, sep, value = stripped.partition(":")
            if not sep:
                raise HeadersParseError("Header must contain ':'", index)
            name = name.strip()
            if not name:
                raise HeadersParseError("Header name cannot be empty", index)
            headers[name] = value.strip()

    if pattern is not None:
        rules.append(HeadersRule(pattern, headers, pattern_line))
    return rules


def validate_headers(content: str, environment: str) -> ValidationResult:
    """Production needs the security headers on `/*`; dev only gets warnings."""
    rules = parse_headers(content)
    catch_all = next((rule for rule in rules if rule.pattern == CATCH_ALL), None)

    errors: list[ValidationIssue] = []
    warnings: list[str] = []
    for required in REQUIRED_PROD_HEADERS:
        if catch_all is not None and catch_all.has_header(required):
            continue
        if environment == "prod":
            errors.append(ValidationIssue("MISSING_HEADER", f"{required} required for prod at {CATCH_ALL}", CATCH_ALL))
        else:
            warnings.append(f"Consider adding {required} for dev environment")
    return ValidationResult.from_issues(errors, warnings)


def validate_headers_file(path: str | Path, environment: str) -> ValidationResult:
    headers_path = Path(path)
    if not headers_path.exists():
        raise HeadersFileNotFound(path)
    try:
        content = headers_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise HeadersReadError(path, str(exc)) from exc
    return validate_headers(content, environment)


def default_headers_path(site: str, environment: str) -> str:
    return f"Resources/{site}/_headers.{environment}"
