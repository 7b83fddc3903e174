"""
Result types shared by the sitemap, state and headers validators.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    location: str | None = None

    def __str__(self) -> str:
        if self.location:
            return f"[{self.code}] {self.message} at {self.location}"
        return f"[{self.code}] {self.message}"


@dataclass(frozen=True)
class ValidationResult:
    """Errors make a result invalid; warnings are advisory only."""

    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, warnings: list[str] | None = None) -> ValidationResult:
        return cls(is_valid=True, errors=[], warnings=list(warnings or []))

    @classmethod
    def failure(cls, errors: list[ValidationIssue], warnings: list[str] | None = None) -> ValidationResult:
        return cls(is_valid=False, errors=list(errors), warnings=list(warnings or []))

    @classmethod
    def from_issues(cls, errors: list[ValidationIssue], warnings: list[str]) -> ValidationResult:
        if errors:
            return cls.failure(errors, warnings)
        return cls.success(warnings)

    def error_codes(self) -> list[str]:
        return [error.code for error in self.errors]
