"""Shared data structures for compliance evaluation."""

from __future__ import annotations

import dataclasses
import json
import types
import typing as typ

Severity = typ.Literal["error", "warning"]

REPORT_CATEGORIES: tuple[str, ...] = (
    "repositoryManagement",
    "functionalRequirements",
    "deployment",
    "security",
    "testing",
    "agents",
)


def _freeze_details(
    details: typ.Mapping[str, typ.Any] | None,
) -> typ.Mapping[str, typ.Any] | None:
    if details is None:
        return None
    return types.MappingProxyType(
        {
            key: tuple(value) if isinstance(value, list) else value
            for key, value in details.items()
        }
    )


def _thaw_details(details: typ.Mapping[str, typ.Any]) -> dict[str, object]:
    return {
        key: list(value) if isinstance(value, tuple) else value
        for key, value in details.items()
    }


@dataclasses.dataclass(frozen=True, slots=True)
class FileInventoryEntry:
    """Single file in a repository snapshot."""

    path: str
    content: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ReadmeHeading:
    """ATX heading extracted from a markdown document."""

    level: int
    text: str
    has_image: bool


@dataclasses.dataclass(frozen=True, slots=True)
class Issue:
    """Failed check emitted by an evaluator."""

    id: str
    category: str
    severity: Severity
    message: str
    error: str | None = None
    details: typ.Mapping[str, typ.Any] | None = None

    def __post_init__(self) -> None:
        """Store ``details`` as a read-only mapping."""
        object.__setattr__(self, "details", _freeze_details(self.details))

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-ready representation."""
        payload: dict[str, object] = {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.details is not None:
            payload["details"] = _thaw_details(self.details)
        return payload


@dataclasses.dataclass(frozen=True, slots=True)
class ComplianceItem:
    """Passed check emitted by an evaluator."""

    id: str
    category: str
    message: str
    details: typ.Mapping[str, typ.Any] | None = None

    def __post_init__(self) -> None:
        """Store ``details`` as a read-only mapping."""
        object.__setattr__(self, "details", _freeze_details(self.details))

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-ready representation."""
        payload: dict[str, object] = {
            "id": self.id,
            "category": self.category,
            "message": self.message,
        }
        if self.details is not None:
            payload["details"] = _thaw_details(self.details)
        return payload


Finding = Issue | ComplianceItem


@dataclasses.dataclass(frozen=True, slots=True)
class CategoryReport:
    """Findings and score for one report category."""

    enabled: bool
    issues: tuple[Issue, ...] = ()
    compliant: tuple[ComplianceItem, ...] = ()
    percentage: int = 0

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-ready representation."""
        return {
            "enabled": self.enabled,
            "issues": [issue.to_dict() for issue in self.issues],
            "compliant": [item.to_dict() for item in self.compliant],
            "percentage": self.percentage,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class Compliance:
    """Scored findings for a whole repository."""

    issues: tuple[Issue, ...]
    compliant: tuple[ComplianceItem, ...]
    percentage: int
    summary: str
    categories: typ.Mapping[str, CategoryReport]

    def __post_init__(self) -> None:
        """Store ``categories`` as a read-only mapping."""
        object.__setattr__(
            self, "categories", types.MappingProxyType(dict(self.categories))
        )

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-ready representation."""
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "compliant": [item.to_dict() for item in self.compliant],
            "percentage": self.percentage,
            "summary": self.summary,
            "categories": {
                key: report.to_dict() for key, report in self.categories.items()
            },
        }


@dataclasses.dataclass(frozen=True, slots=True)
class ComplianceReport:
    """Result of one evaluation call."""

    repo_url: str
    rule_set: str
    timestamp: str
    compliance: Compliance

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-ready representation using the published key names."""
        return {
            "repoUrl": self.repo_url,
            "ruleSet": self.rule_set,
            "timestamp": self.timestamp,
            "compliance": self.compliance.to_dict(),
        }

    def to_json(self, *, indent: int | None = 2) -> str:
        """Serialise the report, keeping finding order intact."""
        return json.dumps(self.to_dict(), indent=indent)
