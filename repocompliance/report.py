"""Entry point that evaluates a repository snapshot into a compliance report."""

from __future__ import annotations

import datetime as dt
import logging
import typing as typ

from .categories import categorize, enabled_categories
from .checks import EvaluationContext, build_registry
from .inventory import FileInventory
from .models import Compliance, ComplianceItem, ComplianceReport, Issue
from .rulesets import RuleSetConfig, RuleSetId, get_rule_set
from .scoring import percentage, summary_item, summary_text

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .inventory import ContentProvider
    from .models import FileInventoryEntry

_logger = logging.getLogger(__name__)

Clock = typ.Callable[[], dt.datetime]


def _utc_now() -> dt.datetime:
    return dt.datetime.now(tz=dt.UTC)


def resolve_config(rule_set: RuleSetConfig | RuleSetId | str | None) -> RuleSetConfig:
    """Return the configuration for a rule set id, name or explicit config."""
    if isinstance(rule_set, RuleSetConfig):
        return rule_set
    return get_rule_set(rule_set)


def evaluate_repository(
    repo_url: str,
    rule_set: RuleSetConfig | RuleSetId | str | None,
    files: cabc.Iterable[FileInventoryEntry | cabc.Mapping[str, typ.Any]],
    *,
    content_provider: ContentProvider | None = None,
    clock: Clock | None = None,
) -> ComplianceReport:
    """Run every check against ``files`` and return the scored report.

    ``rule_set`` may be a ``RuleSetId``, its string value, a loaded
    ``RuleSetConfig`` or None to use the configured default. File content is
    read through ``content_provider`` when given, otherwise from each entry's
    ``content`` field. Unknown rule set names raise ``UnknownRuleSetError``.
    """
    config = resolve_config(rule_set)
    inventory = FileInventory(files, content_provider=content_provider)
    _logger.debug(
        "Evaluating %s against rule set %r (%d files)",
        repo_url,
        config.name,
        len(inventory),
    )

    registry = build_registry(config)
    findings = registry.evaluate(EvaluationContext(rule_set=config, inventory=inventory))
    issues = tuple(finding for finding in findings if isinstance(finding, Issue))
    compliant = tuple(
        finding for finding in findings if isinstance(finding, ComplianceItem)
    )

    categories = categorize(issues, compliant, enabled_categories(config))
    score = percentage(len(compliant), len(issues))
    compliance = Compliance(
        issues=issues,
        compliant=(*compliant, summary_item(len(issues), len(compliant))),
        percentage=score,
        summary=summary_text(len(issues), score),
        categories=categories,
    )
    timestamp = (clock or _utc_now)().isoformat()
    _logger.info(
        "Evaluated %s with rule set %r: %d issues, %d passed, %d%%",
        repo_url,
        config.name,
        len(issues),
        len(compliant),
        score,
    )
    return ComplianceReport(
        repo_url=repo_url,
        rule_set=config.name,
        timestamp=timestamp,
        compliance=compliance,
    )
