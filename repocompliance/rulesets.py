"""Rule set registry and loader.

Built-in rule sets are immutable module constants keyed by ``RuleSetId``.
Custom rule sets can be loaded from YAML documents shaped like::

    schema_version: 1
    name: custom
    required_files: [README.md, azure.yaml]
    required_folders: [infra]
    required_workflow_files:
      - pattern: '\\.github/workflows/azure-dev\\.(yaml|yml)$'
        message: Missing required workflow
    bicep_checks:
      required_resources: []
    azure_yaml_rules:
      must_define_services: true
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import os
import re
import types
import typing as typ
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import RuleSetConfigError, UnknownRuleSetError

_logger = logging.getLogger(__name__)
_yaml = YAML(typ="safe")

ENV_DEFAULT_RULE_SET = "REPOCOMPLIANCE_DEFAULT_RULE_SET"
SCHEMA_VERSION = 1
_REQUIRED_KEYS = (
    "required_files",
    "required_folders",
    "bicep_checks",
    "azure_yaml_rules",
)


class RuleSetId(enum.StrEnum):
    """Identifiers of the built-in rule sets."""

    DOD = "dod"
    PARTNER = "partner"
    CUSTOM = "custom"


@dataclasses.dataclass(frozen=True, slots=True)
class WorkflowFileRule:
    """Workflow file that must match ``pattern`` somewhere in the tree."""

    pattern: re.Pattern[str]
    message: str


@dataclasses.dataclass(frozen=True, slots=True)
class DocFileRule:
    """Documentation file that may live in any of several locations."""

    patterns: tuple[re.Pattern[str], ...]
    message: str
    name: str | None = None

    @property
    def slug(self) -> str:
        """Stable identifier used in finding ids."""
        if self.name:
            return _slugify(self.name)
        if not self.patterns:
            return "doc"
        return _slugify(self.patterns[0].pattern) or "doc"


@dataclasses.dataclass(frozen=True, slots=True)
class ArchitectureDiagramRule:
    """README heading that documents the architecture."""

    heading: str
    requires_image: bool


@dataclasses.dataclass(frozen=True, slots=True)
class ReadmeRequirements:
    """Structural requirements for the repository README."""

    required_headings: tuple[str, ...] = ()
    architecture_diagram: ArchitectureDiagramRule | None = None

    @property
    def is_empty(self) -> bool:
        """Return True when no README checks are configured."""
        return not self.required_headings and self.architecture_diagram is None


@dataclasses.dataclass(frozen=True, slots=True)
class BicepChecks:
    """Infrastructure-as-code checks."""

    required_resources: tuple[str, ...] = ()
    security_best_practices: bool = False
    detect_insecure_auth: bool = True
    check_anonymous_access: bool = True


@dataclasses.dataclass(frozen=True, slots=True)
class AzureYamlRules:
    """Deployment manifest checks."""

    must_define_services: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class OpenAIRules:
    """AI model checks."""

    deprecated_models: tuple[str, ...] = ()
    standalone_tokens: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class AgentsRules:
    """Agent definition document checks."""

    required: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class RuleSetConfig:
    """Immutable rule set configuration consumed by the evaluators."""

    name: str
    required_files: tuple[str, ...]
    required_folders: tuple[str, ...]
    bicep_checks: BicepChecks
    azure_yaml_rules: AzureYamlRules
    required_workflow_files: tuple[WorkflowFileRule, ...] = ()
    required_doc_files: tuple[DocFileRule, ...] = ()
    readme_requirements: ReadmeRequirements | None = None
    openai: OpenAIRules = OpenAIRules()
    agents: AgentsRules = AgentsRules()
    version: int = 1


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def _pattern(source: str) -> re.Pattern[str]:
    return re.compile(source, re.IGNORECASE)


def _doc_locations(filename: str) -> tuple[re.Pattern[str], ...]:
    escaped = re.escape(filename.lower())
    return (
        _pattern(rf"^{escaped}$"),
        _pattern(rf"^\.github/{escaped}$"),
        _pattern(rf"^docs/{escaped}$"),
    )


_DEPRECATED_OPENAI_MODELS = (
    "gpt-35-turbo",
    "gpt-4",
    "gpt-4-32k",
    "text-embedding-ada-002",
)

_AZURE_DEV_WORKFLOW = WorkflowFileRule(
    pattern=_pattern(r"\.github/workflows/azure-dev\.(yaml|yml)$"),
    message="Missing required workflow: .github/workflows/azure-dev.yaml (or .yml)",
)

DOD_RULE_SET = RuleSetConfig(
    name=RuleSetId.DOD.value,
    required_files=("README.md", "azure.yaml", "LICENSE"),
    required_folders=("infra", ".github"),
    required_workflow_files=(_AZURE_DEV_WORKFLOW,),
    required_doc_files=(
        DocFileRule(
            name="security",
            patterns=_doc_locations("SECURITY.md"),
            message="Missing SECURITY.md (root, .github/ or docs/)",
        ),
        DocFileRule(
            name="contributing",
            patterns=_doc_locations("CONTRIBUTING.md"),
            message="Missing CONTRIBUTING.md (root, .github/ or docs/)",
        ),
        DocFileRule(
            name="code-of-conduct",
            patterns=_doc_locations("CODE_OF_CONDUCT.md"),
            message="Missing CODE_OF_CONDUCT.md (root, .github/ or docs/)",
        ),
    ),
    readme_requirements=ReadmeRequirements(
        required_headings=("Features", "Getting Started", "Resources", "Guidance"),
        architecture_diagram=ArchitectureDiagramRule(
            heading="Architecture Diagram",
            requires_image=True,
        ),
    ),
    bicep_checks=BicepChecks(required_resources=(), security_best_practices=True),
    azure_yaml_rules=AzureYamlRules(must_define_services=True),
    openai=OpenAIRules(deprecated_models=_DEPRECATED_OPENAI_MODELS),
    agents=AgentsRules(required=True),
)

# Infrastructure-focused: no documentation requirements.
PARTNER_RULE_SET = RuleSetConfig(
    name=RuleSetId.PARTNER.value,
    required_files=("azure.yaml", "README.md"),
    required_folders=("src", "infra"),
    required_workflow_files=(_AZURE_DEV_WORKFLOW,),
    readme_requirements=ReadmeRequirements(
        required_headings=(),
        architecture_diagram=ArchitectureDiagramRule(
            heading="Architecture Diagram",
            requires_image=False,
        ),
    ),
    bicep_checks=BicepChecks(required_resources=("Microsoft.Identity",)),
    azure_yaml_rules=AzureYamlRules(must_define_services=True),
    openai=OpenAIRules(deprecated_models=_DEPRECATED_OPENAI_MODELS),
)

# Starting point for user-defined rule sets.
CUSTOM_RULE_SET = RuleSetConfig(
    name=RuleSetId.CUSTOM.value,
    required_files=("azure.yaml", "README.md"),
    required_folders=(".github/workflows", "src", "infra"),
    required_workflow_files=(_AZURE_DEV_WORKFLOW,),
    readme_requirements=ReadmeRequirements(
        architecture_diagram=ArchitectureDiagramRule(
            heading="Architecture Diagram",
            requires_image=False,
        ),
    ),
    bicep_checks=BicepChecks(),
    azure_yaml_rules=AzureYamlRules(must_define_services=True),
)

BUILTIN_RULE_SETS: typ.Mapping[RuleSetId, RuleSetConfig] = types.MappingProxyType(
    {
        RuleSetId.DOD: DOD_RULE_SET,
        RuleSetId.PARTNER: PARTNER_RULE_SET,
        RuleSetId.CUSTOM: CUSTOM_RULE_SET,
    }
)


def _unknown_rule_set_error(value: object) -> UnknownRuleSetError:
    known = ", ".join(member.value for member in RuleSetId)
    message = f"Unknown rule set {value!r}; expected one of: {known}."
    return UnknownRuleSetError(message)


def resolve_rule_set_id(value: str | RuleSetId | None = None) -> RuleSetId:
    """Return the rule set id for ``value``, defaulting via the environment."""
    if value is None:
        value = os.getenv(ENV_DEFAULT_RULE_SET) or RuleSetId.DOD.value
    if isinstance(value, RuleSetId):
        return value
    try:
        return RuleSetId(value.strip().lower())
    except (AttributeError, ValueError) as error:
        raise _unknown_rule_set_error(value) from error


def get_rule_set(value: str | RuleSetId | None = None) -> RuleSetConfig:
    """Return the built-in configuration for ``value``."""
    return BUILTIN_RULE_SETS[resolve_rule_set_id(value)]


def load_rule_set(path: Path) -> RuleSetConfig:
    """Load a custom rule set from a YAML document."""
    target = Path(path)
    if not target.exists():
        message = f"Rule set file not found: {target}"
        raise RuleSetConfigError(message)
    try:
        data = _yaml.load(target.read_text(encoding="utf-8"))
    except YAMLError as error:
        message = f"Rule set file {target} is not valid YAML: {error}"
        raise RuleSetConfigError(message) from error
    config = parse_rule_set(data, source=str(target))
    _logger.debug("Loaded rule set %r from %s", config.name, target)
    return config


def parse_rule_set(data: object, *, source: str = "<memory>") -> RuleSetConfig:
    """Build a ``RuleSetConfig`` from a decoded YAML or JSON mapping."""
    mapping = _mapping(data, "rule set", source)
    schema_version = mapping.get("schema_version", SCHEMA_VERSION)
    if schema_version != SCHEMA_VERSION:
        message = (
            f"Unsupported rule set schema_version={schema_version!r} "
            f"(expected {SCHEMA_VERSION}): {source}"
        )
        raise RuleSetConfigError(message)
    for key in _REQUIRED_KEYS:
        if key not in mapping:
            message = f"Rule set missing required key {key!r}: {source}"
            raise RuleSetConfigError(message)

    bicep = _mapping(mapping["bicep_checks"], "bicep_checks", source)
    azure_yaml = _mapping(mapping["azure_yaml_rules"], "azure_yaml_rules", source)
    openai = _mapping(mapping.get("openai") or {}, "openai", source)
    agents = _mapping(mapping.get("agents") or {}, "agents", source)

    return RuleSetConfig(
        name=str(mapping.get("name", RuleSetId.CUSTOM.value)),
        version=_integer(mapping.get("version", 1), "version", source),
        required_files=_strings(mapping["required_files"], "required_files", source),
        required_folders=_strings(
            mapping["required_folders"], "required_folders", source
        ),
        required_workflow_files=tuple(
            _workflow_rule(entry, source)
            for entry in _list(
                mapping.get("required_workflow_files") or [],
                "required_workflow_files",
                source,
            )
        ),
        required_doc_files=tuple(
            _doc_rule(entry, source)
            for entry in _list(
                mapping.get("required_doc_files") or [],
                "required_doc_files",
                source,
            )
        ),
        readme_requirements=_readme_requirements(
            mapping.get("readme_requirements"), source
        ),
        bicep_checks=_bicep_checks(bicep, source),
        azure_yaml_rules=AzureYamlRules(
            must_define_services=bool(azure_yaml.get("must_define_services", False)),
        ),
        openai=OpenAIRules(
            deprecated_models=_strings(
                openai.get("deprecated_models") or [],
                "openai.deprecated_models",
                source,
            ),
            standalone_tokens=bool(openai.get("standalone_tokens", False)),
        ),
        agents=AgentsRules(required=bool(agents.get("required", False))),
    )


def _mapping(value: object, field: str, source: str) -> dict[str, object]:
    if not isinstance(value, dict):
        message = f"Rule set field {field!r} must be a mapping: {source}"
        raise RuleSetConfigError(message)
    return typ.cast("dict[str, object]", value)


def _list(value: object, field: str, source: str) -> list[object]:
    if not isinstance(value, list):
        message = f"Rule set field {field!r} must be a list: {source}"
        raise RuleSetConfigError(message)
    return typ.cast("list[object]", value)


def _strings(value: object, field: str, source: str) -> tuple[str, ...]:
    entries = _list(value, field, source)
    if not all(isinstance(entry, str) and entry for entry in entries):
        message = f"Rule set field {field!r} must contain non-empty strings: {source}"
        raise RuleSetConfigError(message)
    return tuple(typ.cast("list[str]", entries))


def _integer(value: object, field: str, source: str) -> int:
    try:
        return int(typ.cast("int", value))
    except (TypeError, ValueError) as error:
        message = f"Rule set field {field!r} must be an integer: {source}"
        raise RuleSetConfigError(message) from error


def _compile(source_pattern: object, field: str, source: str) -> re.Pattern[str]:
    if not isinstance(source_pattern, str) or not source_pattern:
        message = f"Rule set field {field!r} must be a non-empty pattern: {source}"
        raise RuleSetConfigError(message)
    try:
        return _pattern(source_pattern)
    except re.error as error:
        message = f"Invalid pattern {source_pattern!r} in {field!r}: {error} ({source})"
        raise RuleSetConfigError(message) from error


def _workflow_rule(entry: object, source: str) -> WorkflowFileRule:
    entry_map = _mapping(entry, "required_workflow_files[]", source)
    try:
        pattern = entry_map["pattern"]
        message = entry_map["message"]
    except KeyError as error:
        detail = f"Workflow rule missing key {error.args[0]!r}: {source}"
        raise RuleSetConfigError(detail) from error
    return WorkflowFileRule(
        pattern=_compile(pattern, "required_workflow_files.pattern", source),
        message=str(message),
    )


def _doc_rule(entry: object, source: str) -> DocFileRule:
    entry_map = _mapping(entry, "required_doc_files[]", source)
    try:
        patterns = entry_map["patterns"]
        message = entry_map["message"]
    except KeyError as error:
        detail = f"Doc file rule missing key {error.args[0]!r}: {source}"
        raise RuleSetConfigError(detail) from error
    compiled = tuple(
        _compile(item, "required_doc_files.patterns", source)
        for item in _list(patterns, "required_doc_files.patterns", source)
    )
    if not compiled:
        detail = f"Doc file rule needs at least one pattern: {source}"
        raise RuleSetConfigError(detail)
    name = entry_map.get("name")
    return DocFileRule(
        patterns=compiled,
        message=str(message),
        name=str(name) if name else None,
    )


def _readme_requirements(value: object, source: str) -> ReadmeRequirements | None:
    if value is None:
        return None
    mapping = _mapping(value, "readme_requirements", source)
    diagram_raw = mapping.get("architecture_diagram")
    diagram: ArchitectureDiagramRule | None = None
    if diagram_raw is not None:
        diagram_map = _mapping(diagram_raw, "architecture_diagram", source)
        heading = diagram_map.get("heading")
        if not isinstance(heading, str) or not heading.strip():
            message = f"architecture_diagram.heading must be a non-empty string: {source}"
            raise RuleSetConfigError(message)
        diagram = ArchitectureDiagramRule(
            heading=heading.strip(),
            requires_image=bool(diagram_map.get("requires_image", False)),
        )
    return ReadmeRequirements(
        required_headings=_strings(
            mapping.get("required_headings") or [],
            "readme_requirements.required_headings",
            source,
        ),
        architecture_diagram=diagram,
    )


def _bicep_checks(bicep: dict[str, object], source: str) -> BicepChecks:
    """Parse ``bicep_checks``; ``security_best_practices`` is a flag or a mapping."""
    required = _strings(
        bicep.get("required_resources") or [],
        "bicep_checks.required_resources",
        source,
    )
    practices = bicep.get("security_best_practices", False)
    if not isinstance(practices, dict):
        return BicepChecks(
            required_resources=required,
            security_best_practices=bool(practices),
        )
    options = typ.cast("dict[str, object]", practices)
    return BicepChecks(
        required_resources=required,
        security_best_practices=True,
        detect_insecure_auth=bool(options.get("detect_insecure_auth", True)),
        check_anonymous_access=bool(options.get("check_anonymous_access", True)),
    )
