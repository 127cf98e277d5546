"""Map check tags onto the fixed report categories."""

from __future__ import annotations

import types
import typing as typ

from . import checks
from .errors import CategoryMappingError
from .models import REPORT_CATEGORIES, CategoryReport, ComplianceItem, Issue
from .scoring import SUMMARY_CATEGORY, percentage
from .security import BICEP_SECURITY_TAG

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .rulesets import RuleSetConfig

META_TAG = SUMMARY_CATEGORY

REPOSITORY_MANAGEMENT = "repositoryManagement"
FUNCTIONAL_REQUIREMENTS = "functionalRequirements"
DEPLOYMENT = "deployment"
SECURITY = "security"
TESTING = "testing"
AGENTS = "agents"

CATEGORY_BY_TAG: typ.Mapping[str, str] = types.MappingProxyType(
    {
        checks.REQUIRED_FILE_TAG: REPOSITORY_MANAGEMENT,
        checks.REQUIRED_WORKFLOW_TAG: REPOSITORY_MANAGEMENT,
        checks.REQUIRED_DOC_TAG: REPOSITORY_MANAGEMENT,
        checks.REQUIRED_FOLDER_TAG: REPOSITORY_MANAGEMENT,
        checks.README_TAG: REPOSITORY_MANAGEMENT,
        checks.README_HEADING_TAG: REPOSITORY_MANAGEMENT,
        checks.README_IMAGE_TAG: REPOSITORY_MANAGEMENT,
        checks.BICEP_FILES_TAG: DEPLOYMENT,
        checks.BICEP_RESOURCE_TAG: DEPLOYMENT,
        checks.AZURE_YAML_TAG: DEPLOYMENT,
        checks.AI_MODEL_TAG: FUNCTIONAL_REQUIREMENTS,
        BICEP_SECURITY_TAG: SECURITY,
        checks.AGENTS_TAG: AGENTS,
    }
)


def _unmapped_tag_error(tag: str, finding_id: str) -> CategoryMappingError:
    return CategoryMappingError(
        f"Finding {finding_id!r} has tag {tag!r} with no report category."
    )


def category_for(finding: Issue | ComplianceItem) -> str | None:
    """Return the report category for ``finding``; None for report metadata."""
    if finding.category == META_TAG:
        return None
    try:
        return CATEGORY_BY_TAG[finding.category]
    except KeyError as error:
        raise _unmapped_tag_error(finding.category, finding.id) from error


def enabled_categories(config: RuleSetConfig) -> dict[str, bool]:
    """Return which categories ``config`` defines at least one check for."""
    readme = config.readme_requirements
    return {
        REPOSITORY_MANAGEMENT: bool(
            config.required_files
            or config.required_folders
            or config.required_workflow_files
            or config.required_doc_files
            or (readme is not None and not readme.is_empty)
        ),
        FUNCTIONAL_REQUIREMENTS: bool(config.openai.deprecated_models),
        # The IaC presence and manifest checks always run.
        DEPLOYMENT: True,
        SECURITY: config.bicep_checks.security_best_practices,
        TESTING: False,
        AGENTS: config.agents.required,
    }


def categorize(
    issues: cabc.Sequence[Issue],
    compliant: cabc.Sequence[ComplianceItem],
    enabled: cabc.Mapping[str, bool],
) -> dict[str, CategoryReport]:
    """Partition findings into every report category, preserving order."""
    grouped_issues: dict[str, list[Issue]] = {key: [] for key in REPORT_CATEGORIES}
    grouped_items: dict[str, list[ComplianceItem]] = {
        key: [] for key in REPORT_CATEGORIES
    }
    for issue in issues:
        category = category_for(issue)
        if category is not None:
            grouped_issues[category].append(issue)
    for item in compliant:
        category = category_for(item)
        if category is not None:
            grouped_items[category].append(item)

    return {
        key: CategoryReport(
            enabled=bool(enabled.get(key, False)),
            issues=tuple(grouped_issues[key]),
            compliant=tuple(grouped_items[key]),
            percentage=percentage(len(grouped_items[key]), len(grouped_issues[key])),
        )
        for key in REPORT_CATEGORIES
    }
