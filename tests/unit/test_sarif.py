"""Tests for SARIF rendering of compliance reports."""

from __future__ import annotations

import json
import typing as typ

from repocompliance import evaluate_repository
from repocompliance.models import Issue
from repocompliance.sarif import SarifBuilder, report_to_sarif

if typ.TYPE_CHECKING:
    from pathlib import Path

    from repocompliance.models import ComplianceReport, Severity

REPO_URL = "https://github.com/example/template"


def _report() -> ComplianceReport:
    return evaluate_repository(
        REPO_URL,
        "partner",
        [{"path": "infra/main.bicep", "content": "model: 'gpt-4'\n"}],
    )


def test_report_to_sarif_lists_each_issue() -> None:
    """Every issue becomes a result located at its file or the repository."""
    report = _report()
    document = report_to_sarif(report)
    assert document["version"] == "2.1.0"
    (run,) = document["runs"]
    results = run["results"]
    assert len(results) == len(report.compliance.issues)

    by_finding = {result["properties"]["findingId"]: result for result in results}
    deprecated = by_finding["bicep-deprecated-model-gpt-4"]
    assert deprecated["ruleId"] == "aiModel"
    assert deprecated["level"] == "error"
    location = deprecated["locations"][0]["physicalLocation"]["artifactLocation"]
    assert location["uri"] == "infra/main.bicep"

    missing = by_finding["missing-azure.yaml"]
    location = missing["locations"][0]["physicalLocation"]["artifactLocation"]
    assert location["uri"] == REPO_URL


def test_rules_are_registered_once_per_tag() -> None:
    """Rules are keyed by check tag and carry their report category."""
    rules = report_to_sarif(_report())["runs"][0]["tool"]["driver"]["rules"]
    ids = [rule["id"] for rule in rules]
    assert len(ids) == len(set(ids))
    categories = {rule["id"]: rule["properties"]["category"] for rule in rules}
    assert categories["requiredFile"] == "repositoryManagement"
    assert categories["aiModel"] == "functionalRequirements"


def test_write_persists_document(tmp_path: Path) -> None:
    """The builder writes JSON to disk, creating parents."""
    builder = SarifBuilder(information_uri="https://example.test/rules")
    builder.add_report(_report())
    path = builder.write(tmp_path / "out" / "report.sarif")
    payload = json.loads(path.read_text())
    driver = payload["runs"][0]["tool"]["driver"]
    assert driver["name"] == "repocompliance"
    assert driver["informationUri"] == "https://example.test/rules"


def _security_issue(name: str, severity: Severity) -> Issue:
    return Issue(
        id=f"bicep-{name}-infra/main.bicep",
        category="bicepSecurity",
        severity=severity,
        message=f"{name} detected",
        details={"file": "infra/main.bicep"},
    )


def test_rule_level_follows_issue_severity() -> None:
    """Warning-only rules default to the warning level."""
    builder = SarifBuilder()
    builder.add_issues([_security_issue("a", "warning")], resource_fallback=REPO_URL)
    run = builder.build()["runs"][0]
    (rule,) = run["tool"]["driver"]["rules"]
    assert rule["defaultConfiguration"] == {"level": "warning"}
    assert run["results"][0]["level"] == "warning"


def test_rule_level_escalates_to_error() -> None:
    """A later error under the same tag raises the rule level."""
    builder = SarifBuilder()
    builder.add_issues(
        [_security_issue("a", "warning"), _security_issue("b", "error")],
        resource_fallback=REPO_URL,
    )
    (rule,) = builder.build()["runs"][0]["tool"]["driver"]["rules"]
    assert rule["defaultConfiguration"] == {"level": "error"}
