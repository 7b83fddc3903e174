"""
Persisted sitemap lastmod state keyed by the tracked package version.

Version-gated content (generated API docs, markdown exports) only counts
as modified when the upstream package version changes, so its lastmod
values are kept in a small JSON file between builds:

    {
      "generated_date": "2025-12-01T00:00:00Z",
      "package_version": "0.21.0",
      "subdomains": {
        "docs-21-dev": {"lastmod": "2025-12-01T00:00:00Z"},
        "md-21-dev": {"lastmod": "2025-12-01T00:00:00Z"}
      }
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from siteutil.config import DEFAULT_RESOLVED_PATH, STATE_SUBDOMAINS, TRACKED_PACKAGE
from siteutil.dates import format_iso, parse_iso, utc_now
from siteutil.fileio import atomic_write_text
from siteutil.validation import ValidationIssue, ValidationResult

LOADED = "loaded"
ABSENT = "absent"
MALFORMED = "malformed"


class StateFileError(Exception):
    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Failed to parse state file {path}: {reason}")


@dataclass(frozen=True)
class SubdomainState:
    lastmod: datetime


@dataclass(frozen=True)
class StateFile:
    package_version: str
    generated_date: datetime
    subdomains: dict[str, SubdomainState] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "package_version": self.package_version,
            "generated_date": format_iso(self.generated_date),
            "subdomains": {name: {"lastmod": format_iso(sub.lastmod)} for name, sub in self.subdomains.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> StateFile:
        if not isinstance(data, dict):
            raise ValueError("top-level value must be an object")
        version = data.get("package_version")
        if not isinstance(version, str):
            raise ValueError("package_version must be a string")
        generated = data.get("generated_date")
        if not isinstance(generated, str):
            raise ValueError("generated_date must be an ISO-8601 string")
        raw_subdomains = data.get("subdomains")
        if not isinstance(raw_subdomains, dict):
            raise ValueError("subdomains must be an object")
        subdomains: dict[str, SubdomainState] = {}
        for name, value in raw_subdomains.items():
            if not isinstance(value, dict) or not isinstance(value.get("lastmod"), str):
                raise ValueError(f"subdomains.{name}.lastmod must be an ISO-8601 string")
            subdomains[name] = SubdomainState(lastmod=parse_iso(value["lastmod"]))
        return cls(package_version=version, generated_date=parse_iso(generated), subdomains=subdomains)


@dataclass(frozen=True)
class StateLoad:
    """Outcome of reading a state file: loaded, absent or malformed."""

    kind: str
    state: StateFile | None = None
    error: str | None = None


def read_state(path: str | Path) -> StateLoad:
    state_path = Path(path)
    if not state_path.exists():
        return StateLoad(kind=ABSENT)
    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
        return StateLoad(kind=LOADED, state=StateFile.from_dict(data))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        return StateLoad(kind=MALFORMED, error=str(exc))


def load_state(path: str | Path) -> StateFile | None:
    """Return the stored state, None when there is none yet.

    Raises StateFileError when the file exists but cannot be parsed.
    """
    loaded = read_state(path)
    if loaded.kind == MALFORMED:
        raise StateFileError(path, loaded.error or "unknown error")
    return loaded.state


def write_state(state: StateFile, path: str | Path) -> None:
    text = json.dumps(state.to_dict(), indent=2, sort_keys=True) + "\n"
    atomic_write_text(path, text)


def update(path: str | Path, package_version: str, now: datetime | None = None) -> StateFile:
    """Record a build for `package_version`.

    A new version stamps every subdomain with the current time; the same
    version only moves generated_date.
    """
    stamp = now or utc_now()
    existing = load_state(path)

    if existing is None:
        state = StateFile(
            package_version=package_version,
            generated_date=stamp,
            subdomains={name: SubdomainState(lastmod=stamp) for name in STATE_SUBDOMAINS},
        )
    elif existing.package_version == package_version:
        state = replace(existing, generated_date=stamp)
    else:
        state = StateFile(
            package_version=package_version,
            generated_date=stamp,
            subdomains={name: SubdomainState(lastmod=stamp) for name in existing.subdomains},
        )

    write_state(state, path)
    return state


def subdomain_lastmod(path: str | Path, name: str) -> datetime | None:
    state = load_state(path)
    if state is None:
        return None
    subdomain = state.subdomains.get(name)
    return subdomain.lastmod if subdomain else None


def validate_state(path: str | Path) -> ValidationResult:
    loaded = read_state(path)
    if loaded.kind == ABSENT:
        return ValidationResult.failure([ValidationIssue("FILE_NOT_FOUND", "State file not found", str(path))])
    if loaded.kind == MALFORMED:
        return ValidationResult.failure(
            [ValidationIssue("PARSE_ERROR", f"Failed to parse state file: {loaded.error}", str(path))]
        )
    return ValidationResult.success()


def detect_package_version(
    resolved_path: str | Path = DEFAULT_RESOLVED_PATH,
    package: str = TRACKED_PACKAGE,
) -> str | None:
    """Find the pinned version of `package` in a Package.resolved lock file.

    Raises ValueError when the file exists but cannot be read as JSON.
    """
    lock_path = Path(resolved_path)
    if not lock_path.exists():
        return None
    try:
        data = json.loads(lock_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ValueError(str(exc)) from exc
    pins = data.get("pins") if isinstance(data, dict) else None
    if not isinstance(pins, list):
        return None
    for pin in pins:
        if not isinstance(pin, dict) or pin.get("identity") != package:
            continue
        state = pin.get("state")
        version = state.get("version") if isinstance(state, dict) else None
        if isinstance(version, str):
            return version
    return None
