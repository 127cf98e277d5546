"""SARIF log builder for compliance reports."""

from __future__ import annotations

import datetime as dt
import hashlib
import json
import pathlib
import typing as typ

from .categories import category_for

if typ.TYPE_CHECKING:
    from .models import ComplianceReport, Issue

_LOCATION_KEYS = ("file", "fileName", "folderPath")


class SarifBuilder:
    """Helper for constructing SARIF 2.1.0 payloads."""

    def __init__(
        self,
        *,
        tool_name: str = "repocompliance",
        tool_version: str = "0.1.0",
        information_uri: str | None = None,
    ) -> None:
        """Store metadata for the SARIF run."""
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.information_uri = information_uri
        self._rules: dict[str, dict[str, object]] = {}
        self._results: list[dict[str, object]] = []

    def add_issues(
        self,
        issues: typ.Sequence[Issue],
        *,
        resource_fallback: str,
    ) -> None:
        """Add issues to the result list, registering one rule per check tag."""
        for issue in issues:
            self._register_rule(issue)
            fingerprint = hashlib.sha256(
                f"{issue.id}-{issue.message}".encode()
            ).hexdigest()
            serialized: dict[str, object] = {
                "ruleId": issue.category,
                "level": issue.severity,
                "message": {"text": issue.message},
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {
                                "uri": _location(issue) or resource_fallback
                            }
                        }
                    }
                ],
                "partialFingerprints": {"findingId": fingerprint},
                "properties": _properties(issue),
            }
            self._results.append(serialized)

    def add_report(self, report: ComplianceReport) -> None:
        """Add every issue of ``report``, located against its repository."""
        self.add_issues(report.compliance.issues, resource_fallback=report.repo_url)

    def build(self) -> dict[str, object]:
        """Return the SARIF document."""
        driver: dict[str, object] = {
            "name": self.tool_name,
            "version": self.tool_version,
            "rules": list(self._rules.values()),
        }
        if self.information_uri:
            driver["informationUri"] = self.information_uri
        run = {
            "tool": {"driver": driver},
            "results": self._results,
            "invocations": [
                {
                    "executionSuccessful": True,
                    "endTimeUtc": dt.datetime.now(tz=dt.UTC).isoformat(),
                }
            ],
        }
        return {
            "version": "2.1.0",
            "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
            "runs": [run],
        }

    def write(self, path: pathlib.Path) -> pathlib.Path:
        """Persist the SARIF log to disk."""
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.build(), indent=2))
        return path

    def _register_rule(self, issue: Issue) -> None:
        # A rule takes the most severe level among its results.
        rule = self._rules.get(issue.category)
        if rule is not None:
            if issue.severity == "error":
                rule["defaultConfiguration"] = {"level": "error"}
            return
        self._rules[issue.category] = {
            "id": issue.category,
            "name": issue.category,
            "shortDescription": {"text": f"{issue.category} compliance check"},
            "defaultConfiguration": {"level": issue.severity},
            "properties": {"category": category_for(issue)},
        }


def _properties(issue: Issue) -> dict[str, object]:
    properties: dict[str, object] = {"findingId": issue.id}
    if issue.error:
        properties["error"] = issue.error
    return properties


def _location(issue: Issue) -> str | None:
    if not issue.details:
        return None
    for key in _LOCATION_KEYS:
        value = issue.details.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def report_to_sarif(report: ComplianceReport) -> dict[str, object]:
    """Render the issues of ``report`` as a SARIF document."""
    builder = SarifBuilder()
    builder.add_report(report)
    return builder.build()
