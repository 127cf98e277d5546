"""Overall compliance scoring."""

from __future__ import annotations

from .models import ComplianceItem

SUMMARY_ID = "compliance-summary"
SUMMARY_CATEGORY = "meta"


def percentage(compliant_count: int, issue_count: int) -> int:
    """Return the pass rate as an integer percentage, rounding halves up.

    Returns 0 when there is nothing to score.
    """
    total = compliant_count + issue_count
    if total <= 0:
        return 0
    return (compliant_count * 200 + total) // (2 * total)


def summary_text(issue_count: int, score: int) -> str:
    """Return the one-line report summary."""
    prefix = "Issues found" if issue_count else "No issues found"
    return f"{prefix} - Compliance: {score}%"


def summary_item(issue_count: int, compliant_count: int) -> ComplianceItem:
    """Build the trailing metadata item describing the overall score."""
    score = percentage(compliant_count, issue_count)
    return ComplianceItem(
        id=SUMMARY_ID,
        category=SUMMARY_CATEGORY,
        message=f"Compliance: {score}%",
        details={
            "issueCount": issue_count,
            "compliantCount": compliant_count,
            "totalChecks": issue_count + compliant_count,
            "percentageCompliant": score,
        },
    )
