"""Unit tests for the check evaluators."""

from __future__ import annotations

import dataclasses

import pytest

from repocompliance import checks
from repocompliance.models import ComplianceItem, Issue
from repocompliance.rulesets import (
    CUSTOM_RULE_SET,
    DOD_RULE_SET,
    PARTNER_RULE_SET,
    AgentsRules,
    AzureYamlRules,
    BicepChecks,
    OpenAIRules,
    RuleSetConfig,
)
from tests.conftest import make_context


def _ids(findings: list[Issue | ComplianceItem]) -> list[str]:
    return [finding.id for finding in findings]


def _empty_rule_set(**overrides: object) -> RuleSetConfig:
    base = RuleSetConfig(
        name="empty",
        required_files=(),
        required_folders=(),
        bicep_checks=BicepChecks(),
        azure_yaml_rules=AzureYamlRules(),
    )
    return dataclasses.replace(base, **overrides)


def test_registry_runs_checks_in_fixed_order() -> None:
    """Evaluators are registered in their documented order."""
    registry = checks.build_registry(DOD_RULE_SET)
    assert [check.check_id for check in registry.checks] == [
        "required-files",
        "required-workflows",
        "required-docs",
        "required-folders",
        "readme-structure",
        "iac-files",
        "manifest",
        "agents-document",
    ]


def test_registry_skips_agents_when_not_required() -> None:
    """The agents check is only registered when the rule set asks for it."""
    registry = checks.build_registry(PARTNER_RULE_SET)
    assert "agents-document" not in [check.check_id for check in registry.checks]


def test_empty_required_files_emit_nothing() -> None:
    """An empty rule list means no checks, not a failure."""
    context = make_context(_empty_rule_set(), ["README.md"])
    assert checks.run_required_files(context) == []


def test_required_files_match_case_insensitively() -> None:
    """Presence checks ignore case but require an exact path."""
    rule_set = _empty_rule_set(required_files=("README.md", "LICENSE"))
    context = make_context(rule_set, ["ReadMe.MD", "docs/LICENSE"])
    findings = checks.run_required_files(context)
    assert _ids(findings) == ["file-README.md", "missing-LICENSE"]
    missing = findings[1]
    assert isinstance(missing, Issue)
    assert missing.severity == "error"
    assert missing.message == "Missing required file: LICENSE"


def test_required_workflow_records_match_and_pattern() -> None:
    """The first matching workflow path and its pattern are recorded."""
    context = make_context(
        CUSTOM_RULE_SET,
        [".github/workflows/ci.yml", ".GitHub/Workflows/Azure-Dev.YAML"],
    )
    (finding,) = checks.run_required_workflows(context)
    assert isinstance(finding, ComplianceItem)
    assert finding.details is not None
    assert finding.details["fileName"] == ".GitHub/Workflows/Azure-Dev.YAML"
    assert finding.details["patternMatched"] == r"\.github/workflows/azure-dev\.(yaml|yml)$"


def test_missing_workflow_uses_rule_message() -> None:
    """Failures report the configured message verbatim."""
    context = make_context(CUSTOM_RULE_SET, [".github/workflows/ci.yml"])
    (finding,) = checks.run_required_workflows(context)
    assert isinstance(finding, Issue)
    assert finding.message == (
        "Missing required workflow: .github/workflows/azure-dev.yaml (or .yml)"
    )


def test_doc_file_found_in_alternate_location() -> None:
    """Documentation may live under .github/ instead of the root."""
    context = make_context(DOD_RULE_SET, [".github/SECURITY.md"])
    findings = checks.run_required_docs(context)
    security = findings[0]
    assert isinstance(security, ComplianceItem)
    assert security.id == "doc-security"
    assert security.details == {
        "fileName": ".github/SECURITY.md",
        "allMatches": (".github/SECURITY.md",),
    }
    assert _ids(findings)[1:] == ["missing-doc-contributing", "missing-doc-code-of-conduct"]


def test_doc_file_collects_all_matches() -> None:
    """Every location holding the document is listed."""
    context = make_context(DOD_RULE_SET, ["SECURITY.md", "docs/security.md"])
    security = checks.run_required_docs(context)[0]
    assert security.details is not None
    assert security.details["allMatches"] == ("SECURITY.md", "docs/security.md")


def test_required_folders_count_contained_files() -> None:
    """Folder presence is a prefix match and reports a file count."""
    rule_set = _empty_rule_set(required_folders=("infra", "src"))
    context = make_context(rule_set, ["Infra/main.bicep", "infra/app.bicep", "srcfile"])
    findings = checks.run_required_folders(context)
    assert _ids(findings) == ["folder-infra", "missing-folder-src"]
    assert findings[0].details == {"folderPath": "infra", "fileCount": 2}


def test_readme_checks_headings_and_diagram_image() -> None:
    """Required headings and the diagram image are validated."""
    readme = (
        "# Title\n## Features\n## getting started\n"
        "## Architecture Diagram\n\n![diagram](arch.png)\n"
    )
    context = make_context(DOD_RULE_SET, [("README.md", readme)])
    findings = checks.run_readme_structure(context)
    assert _ids(findings) == [
        "readme-heading-features",
        "readme-heading-getting-started",
        "readme-missing-heading-resources",
        "readme-missing-heading-guidance",
        "readme-architecture-diagram-heading",
        "readme-architecture-diagram-image",
    ]


def test_readme_diagram_without_image() -> None:
    """A diagram heading with no nearby image fails when an image is required."""
    readme = "## Architecture Diagram\n\nComing soon.\n"
    context = make_context(DOD_RULE_SET, [("readme.md", readme)])
    findings = checks.run_readme_structure(context)
    assert findings[-1].id == "readme-missing-architecture-diagram-image"


def test_readme_skipped_when_absent() -> None:
    """README checks need the README to exist."""
    context = make_context(DOD_RULE_SET, ["docs/README.md"])
    assert checks.run_readme_structure(context) == []


def test_readme_without_content_warns() -> None:
    """Missing content is treated as a read failure."""
    context = make_context(DOD_RULE_SET, ["README.md"])
    (finding,) = checks.run_readme_structure(context)
    assert isinstance(finding, Issue)
    assert finding.id == "readme-read-error"
    assert finding.severity == "warning"


def test_iac_missing_files() -> None:
    """No Bicep files under infra/ is a single issue."""
    context = make_context(CUSTOM_RULE_SET, ["infra/main.tf", "main.bicep"])
    (finding,) = checks.run_iac_files(context)
    assert finding.id == "missing-bicep"


def test_iac_required_resources_per_file() -> None:
    """Required resource tokens are checked in each file in input order."""
    context = make_context(
        PARTNER_RULE_SET,
        [
            ("infra/b.bicep", "resource id 'Microsoft.Identity/x' = {}"),
            ("infra/a.bicep", "resource web 'Microsoft.Web/sites' = {}"),
        ],
    )
    findings = checks.run_iac_files(context)
    assert _ids(findings) == [
        "bicep-files-exist",
        "bicep-resource-microsoft.identity-infra/b.bicep",
        "bicep-no-deprecated-models-infra/b.bicep",
        "bicep-missing-microsoft.identity",
        "bicep-no-deprecated-models-infra/a.bicep",
    ]
    assert findings[0].details == {
        "count": 2,
        "files": ("infra/b.bicep", "infra/a.bicep"),
    }


def test_deprecated_model_flagged_once() -> None:
    """A quoted denylisted model yields exactly one issue."""
    rule_set = _empty_rule_set(openai=OpenAIRules(deprecated_models=("gpt-4",)))
    context = make_context(
        rule_set,
        [("infra/main.bicep", "model: 'gpt-4'\nother: 'gpt-4'\n")],
    )
    findings = checks.run_iac_files(context)
    deprecated = [f for f in findings if f.id.startswith("bicep-deprecated-model")]
    assert _ids(deprecated) == ["bicep-deprecated-model-gpt-4"]
    assert not any(f.id.startswith("bicep-no-deprecated-models") for f in findings)


@pytest.mark.parametrize(
    "content",
    ["model: 'gpt-4o'", "model: 'gpt-4-32k'", "model: 'gpt-4.1'", "name: 'my-gpt-4'"],
)
def test_deprecated_model_matches_substring_by_default(content: str) -> None:
    """Longer model names sharing a prefix are flagged by default."""
    rule_set = _empty_rule_set(openai=OpenAIRules(deprecated_models=("gpt-4",)))
    context = make_context(rule_set, [("infra/main.bicep", content)])
    findings = checks.run_iac_files(context)
    assert _ids(findings) == ["bicep-files-exist", "bicep-deprecated-model-gpt-4"]


@pytest.mark.parametrize(
    "content",
    ["model: 'gpt-4o'", "model: 'gpt-4-32k'", "model: 'gpt-4.1'", "name: 'my-gpt-4'"],
)
def test_standalone_tokens_skip_longer_model_names(content: str) -> None:
    """With standalone tokens, prefixed model names are not flagged."""
    rule_set = _empty_rule_set(
        openai=OpenAIRules(deprecated_models=("gpt-4",), standalone_tokens=True)
    )
    context = make_context(rule_set, [("infra/main.bicep", content)])
    findings = checks.run_iac_files(context)
    assert _ids(findings) == [
        "bicep-files-exist",
        "bicep-no-deprecated-models-infra/main.bicep",
    ]


def test_standalone_tokens_still_flag_exact_model() -> None:
    """A standalone quoted model is flagged with standalone tokens enabled."""
    rule_set = _empty_rule_set(
        openai=OpenAIRules(deprecated_models=("gpt-4",), standalone_tokens=True)
    )
    context = make_context(rule_set, [("infra/main.bicep", "model: 'gpt-4'\n")])
    ids = _ids(checks.run_iac_files(context))
    assert "bicep-deprecated-model-gpt-4" in ids


def test_deprecated_model_scan_is_case_insensitive() -> None:
    """Model names match regardless of case."""
    rule_set = _empty_rule_set(openai=OpenAIRules(deprecated_models=("gpt-35-turbo",)))
    context = make_context(rule_set, [("infra/ai.bicep", 'name: "GPT-35-Turbo"')])
    ids = _ids(checks.run_iac_files(context))
    assert "bicep-deprecated-model-gpt-35-turbo" in ids


def test_no_deprecated_item_without_denylist() -> None:
    """An empty denylist produces no model findings."""
    context = make_context(_empty_rule_set(), [("infra/main.bicep", "")])
    assert _ids(checks.run_iac_files(context)) == ["bicep-files-exist"]


def test_unreadable_iac_file_warns_and_continues() -> None:
    """A file without content becomes a warning; later files are still scanned."""
    rule_set = _empty_rule_set(openai=OpenAIRules(deprecated_models=("gpt-4",)))
    context = make_context(
        rule_set,
        ["infra/broken.bicep", ("infra/main.bicep", "sku: 'S0'")],
    )
    findings = checks.run_iac_files(context)
    assert _ids(findings) == [
        "bicep-files-exist",
        "error-reading-infra/broken.bicep",
        "bicep-no-deprecated-models-infra/main.bicep",
    ]
    warning = findings[1]
    assert isinstance(warning, Issue)
    assert warning.severity == "warning"


@pytest.mark.parametrize(
    ("checks_config", "expected"),
    [
        (
            BicepChecks(security_best_practices=True),
            [
                "bicep-files-exist",
                "bicep-alternative-auth-infra/kv.bicep",
                "bicep-missing-auth-keyVault-infra/kv.bicep",
            ],
        ),
        (
            BicepChecks(security_best_practices=True, detect_insecure_auth=False),
            ["bicep-files-exist", "bicep-missing-auth-keyVault-infra/kv.bicep"],
        ),
        (
            BicepChecks(security_best_practices=True, check_anonymous_access=False),
            ["bicep-files-exist", "bicep-alternative-auth-infra/kv.bicep"],
        ),
    ],
)
def test_iac_security_toggles(checks_config: BicepChecks, expected: list[str]) -> None:
    """Security sub-checks follow the rule set's toggles."""
    content = (
        "resource vault 'Microsoft.KeyVault/vaults@2023-02-01' = {\n"
        "  properties: { sasToken: 'abc' }\n"
        "}\n"
    )
    context = make_context(
        _empty_rule_set(bicep_checks=checks_config),
        [("infra/kv.bicep", content)],
    )
    assert _ids(checks.run_iac_files(context)) == expected


def test_manifest_services_defined() -> None:
    """A top-level services key satisfies the manifest rule."""
    context = make_context(
        CUSTOM_RULE_SET,
        [("Azure.yml", "name: app\nservices:\n  api: {}\n")],
    )
    assert _ids(checks.run_manifest(context)) == [
        "azure-yaml-exists",
        "azure-yaml-services-defined",
    ]


def test_manifest_nested_services_do_not_count() -> None:
    """Only a top-level services key counts."""
    context = make_context(
        CUSTOM_RULE_SET,
        [("azure.yaml", "name: app\nhooks:\n  services: []\n")],
    )
    findings = checks.run_manifest(context)
    assert _ids(findings) == ["azure-yaml-exists", "azure-yaml-missing-services"]
    assert findings[1].message == 'No "services:" defined in azure.yaml'


def test_manifest_missing() -> None:
    """A manifest outside the root is not accepted."""
    context = make_context(CUSTOM_RULE_SET, ["src/azure.yaml"])
    assert _ids(checks.run_manifest(context)) == ["missing-azure-yaml"]


def test_manifest_unreadable() -> None:
    """An unreadable manifest degrades to a warning."""
    context = make_context(CUSTOM_RULE_SET, ["azure.yaml"])
    findings = checks.run_manifest(context)
    assert _ids(findings) == ["azure-yaml-exists", "azure-yaml-read-error"]


def test_manifest_services_not_required() -> None:
    """Without the services rule only presence is checked."""
    rule_set = _empty_rule_set()
    context = make_context(rule_set, [("azure.yaml", "name: app\n")])
    assert _ids(checks.run_manifest(context)) == ["azure-yaml-exists"]


AGENTS_DOC = """# Agents

## Agents

| Name | Description | Inputs | Outputs | Permissions |
|------|-------------|--------|---------|-------------|
| triage | Sorts issues | issue | labels | write |
"""


def test_agents_document_valid() -> None:
    """A well-formed agents.md passes."""
    rule_set = _empty_rule_set(agents=AgentsRules(required=True))
    context = make_context(rule_set, [(".github/agents.md", AGENTS_DOC)])
    (finding,) = checks.run_agents_document(context)
    assert isinstance(finding, ComplianceItem)
    assert finding.id == "agents-doc-valid"
    assert finding.details is not None
    assert finding.details["agentCount"] == 1


def test_agents_document_missing() -> None:
    """An absent agents.md is an error."""
    rule_set = _empty_rule_set(agents=AgentsRules(required=True))
    context = make_context(rule_set, ["docs/agents.md"])
    (finding,) = checks.run_agents_document(context)
    assert finding.id == "agents-missing-file"


def test_agents_document_invalid_format() -> None:
    """Structural problems are reported as a warning."""
    rule_set = _empty_rule_set(agents=AgentsRules(required=True))
    context = make_context(rule_set, [("AGENTS.md", "just text\n")])
    (finding,) = checks.run_agents_document(context)
    assert isinstance(finding, Issue)
    assert finding.id == "agents-format-invalid"
    assert finding.severity == "warning"
    assert finding.details is not None
    assert "missing agent definition table" in finding.details["problems"]
