"""Repository compliance rule evaluation engine."""

from __future__ import annotations

from .errors import (
    CategoryMappingError,
    ContentUnavailableError,
    InventoryError,
    RepoComplianceError,
    RuleSetConfigError,
    UnknownRuleSetError,
)
from .inventory import FileInventory, load_git_inventory
from .models import (
    CategoryReport,
    Compliance,
    ComplianceItem,
    ComplianceReport,
    FileInventoryEntry,
    Issue,
)
from .report import evaluate_repository
from .rulesets import (
    BUILTIN_RULE_SETS,
    RuleSetConfig,
    RuleSetId,
    get_rule_set,
    load_rule_set,
)
from .sarif import SarifBuilder, report_to_sarif

__all__ = [
    "BUILTIN_RULE_SETS",
    "CategoryMappingError",
    "CategoryReport",
    "Compliance",
    "ComplianceItem",
    "ComplianceReport",
    "ContentUnavailableError",
    "FileInventory",
    "FileInventoryEntry",
    "InventoryError",
    "Issue",
    "RepoComplianceError",
    "RuleSetConfig",
    "RuleSetConfigError",
    "RuleSetId",
    "SarifBuilder",
    "UnknownRuleSetError",
    "evaluate_repository",
    "get_rule_set",
    "load_git_inventory",
    "load_rule_set",
    "report_to_sarif",
]
