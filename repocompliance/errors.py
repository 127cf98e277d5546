"""Shared exception types for the repocompliance engine."""

from __future__ import annotations


class RepoComplianceError(RuntimeError):
    """Base error for repocompliance operations."""


class RuleSetConfigError(RepoComplianceError):
    """Raised when a rule set configuration is malformed."""


class UnknownRuleSetError(RuleSetConfigError):
    """Raised when a rule set name does not resolve to a known rule set."""


class CategoryMappingError(RepoComplianceError):
    """Raised when a finding carries a check tag with no report category."""


class InventoryError(RepoComplianceError):
    """Raised when a file inventory cannot be built."""


class ContentUnavailableError(RepoComplianceError):
    """Raised by a content provider when a file's content cannot be fetched."""
