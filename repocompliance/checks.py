"""Check evaluators for repository structure, documentation and IaC state."""

from __future__ import annotations

import dataclasses
import logging
import re
import typing as typ

from .markdown import find_heading, parse_agents_document, parse_headings
from .models import ComplianceItem, Finding, Issue
from .security import check_bicep_security

if typ.TYPE_CHECKING:
    from .inventory import FileInventory
    from .models import ReadmeHeading
    from .rulesets import ArchitectureDiagramRule, RuleSetConfig

_logger = logging.getLogger(__name__)

REQUIRED_FILE_TAG = "requiredFile"
REQUIRED_WORKFLOW_TAG = "requiredWorkflow"
REQUIRED_DOC_TAG = "requiredDocFile"
REQUIRED_FOLDER_TAG = "requiredFolder"
README_TAG = "readme"
README_HEADING_TAG = "readmeHeading"
README_IMAGE_TAG = "readmeImage"
BICEP_FILES_TAG = "bicepFiles"
BICEP_RESOURCE_TAG = "bicepResource"
AI_MODEL_TAG = "aiModel"
AZURE_YAML_TAG = "azureYaml"
AGENTS_TAG = "agents"

IAC_ROOT = "infra"
IAC_EXTENSIONS = (".bicep",)
MANIFEST_FILENAMES = ("azure.yaml", "azure.yml")
AGENTS_FILENAMES = ("agents.md", ".github/agents.md")
README_FILENAME = "readme.md"

_SERVICES_KEY = re.compile(r"^services\s*:", re.MULTILINE)


@dataclasses.dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Inputs shared by every check."""

    rule_set: RuleSetConfig
    inventory: FileInventory


@dataclasses.dataclass(frozen=True, slots=True)
class CheckDefinition:
    """Metadata describing one evaluator."""

    check_id: str
    name: str
    description: str


Handler = typ.Callable[[EvaluationContext], list[Finding]]


class CheckRegistry:
    """Ordered collection of evaluators."""

    def __init__(self) -> None:
        """Initialise an empty registry."""
        self._entries: list[tuple[CheckDefinition, Handler]] = []

    def register(self, definition: CheckDefinition, handler: Handler) -> None:
        """Append a check; registration order is execution order."""
        self._entries.append((definition, handler))

    @property
    def checks(self) -> list[CheckDefinition]:
        """Expose the check metadata in execution order."""
        return [entry[0] for entry in self._entries]

    def evaluate(self, context: EvaluationContext) -> list[Finding]:
        """Run every registered handler and concatenate the findings."""
        findings: list[Finding] = []
        for definition, handler in self._entries:
            result = handler(context)
            _logger.debug("%s produced %d findings", definition.check_id, len(result))
            findings.extend(result)
        return findings


def build_registry(rule_set: RuleSetConfig) -> CheckRegistry:
    """Build the evaluator pipeline for ``rule_set`` in its fixed order."""
    registry = CheckRegistry()
    registry.register(
        CheckDefinition(
            "required-files",
            "Required files",
            "Each configured file exists (case-insensitive exact path).",
        ),
        run_required_files,
    )
    registry.register(
        CheckDefinition(
            "required-workflows",
            "Required workflow files",
            "Each workflow pattern matches at least one path.",
        ),
        run_required_workflows,
    )
    registry.register(
        CheckDefinition(
            "required-docs",
            "Required documentation files",
            "Each documentation file exists in one of its accepted locations.",
        ),
        run_required_docs,
    )
    registry.register(
        CheckDefinition(
            "required-folders",
            "Required folders",
            "Each configured folder contains at least one file.",
        ),
        run_required_folders,
    )
    registry.register(
        CheckDefinition(
            "readme-structure",
            "README structure",
            "README.md exposes the required h2 headings and architecture diagram.",
        ),
        run_readme_structure,
    )
    registry.register(
        CheckDefinition(
            "iac-files",
            "Infrastructure as code",
            "Bicep files exist under infra/, declare required resources, avoid "
            "deprecated models and follow security practices.",
        ),
        run_iac_files,
    )
    registry.register(
        CheckDefinition(
            "manifest",
            "Deployment manifest",
            "azure.yaml exists and defines services when required.",
        ),
        run_manifest,
    )
    if rule_set.agents.required:
        registry.register(
            CheckDefinition(
                "agents-document",
                "Agents document",
                "agents.md exists and defines agents in the expected table.",
            ),
            run_agents_document,
        )
    return registry


def run_required_files(context: EvaluationContext) -> list[Finding]:
    """Check that each required file exists."""
    findings: list[Finding] = []
    for file_name in context.rule_set.required_files:
        if not context.inventory.contains(file_name):
            findings.append(
                Issue(
                    id=f"missing-{file_name}",
                    category=REQUIRED_FILE_TAG,
                    severity="error",
                    message=f"Missing required file: {file_name}",
                    error=f"File {file_name} not found in repository",
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"file-{file_name}",
                category=REQUIRED_FILE_TAG,
                message=f"Required file found: {file_name}",
                details={"fileName": file_name},
            )
        )
    return findings


def run_required_workflows(context: EvaluationContext) -> list[Finding]:
    """Check that each workflow pattern matches a path."""
    inventory = context.inventory
    findings: list[Finding] = []
    for rule in context.rule_set.required_workflow_files:
        matched = next(
            (
                original
                for original, lowered in zip(
                    inventory.paths, inventory.lowered_paths, strict=True
                )
                if rule.pattern.search(lowered)
            ),
            None,
        )
        if matched is None:
            findings.append(
                Issue(
                    id=f"missing-workflow-{rule.pattern.pattern}",
                    category=REQUIRED_WORKFLOW_TAG,
                    severity="error",
                    message=rule.message,
                    error=rule.message,
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"workflow-{matched}",
                category=REQUIRED_WORKFLOW_TAG,
                message=f"Required workflow file found: {matched}",
                details={"fileName": matched, "patternMatched": rule.pattern.pattern},
            )
        )
    return findings


def run_required_docs(context: EvaluationContext) -> list[Finding]:
    """Check documentation files that may live in several locations."""
    inventory = context.inventory
    findings: list[Finding] = []
    for rule in context.rule_set.required_doc_files:
        matches = [
            original
            for original, lowered in zip(
                inventory.paths, inventory.lowered_paths, strict=True
            )
            if any(pattern.search(lowered) for pattern in rule.patterns)
        ]
        if not matches:
            findings.append(
                Issue(
                    id=f"missing-doc-{rule.slug}",
                    category=REQUIRED_DOC_TAG,
                    severity="error",
                    message=rule.message,
                    error=rule.message,
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"doc-{rule.slug}",
                category=REQUIRED_DOC_TAG,
                message=f"Required documentation file found: {matches[0]}",
                details={"fileName": matches[0], "allMatches": matches},
            )
        )
    return findings


def run_required_folders(context: EvaluationContext) -> list[Finding]:
    """Check that each required folder contains files."""
    findings: list[Finding] = []
    for folder in context.rule_set.required_folders:
        contained = context.inventory.under(folder)
        if not contained:
            findings.append(
                Issue(
                    id=f"missing-folder-{folder}",
                    category=REQUIRED_FOLDER_TAG,
                    severity="error",
                    message=f"Missing required folder: {folder}/",
                    error=f"Folder {folder} not found in repository",
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"folder-{folder}",
                category=REQUIRED_FOLDER_TAG,
                message=f"Required folder found: {folder}/",
                details={"folderPath": folder, "fileCount": len(contained)},
            )
        )
    return findings


def _heading_slug(heading: str) -> str:
    return re.sub(r"\s+", "-", heading.lower())


def run_readme_structure(context: EvaluationContext) -> list[Finding]:
    """Check README headings and the architecture diagram section."""
    requirements = context.rule_set.readme_requirements
    if requirements is None or requirements.is_empty:
        return []
    readme_path = context.inventory.find(README_FILENAME)
    if readme_path is None:
        return []

    content = context.inventory.read(readme_path)
    if content is None:
        _logger.info("Could not read %s; skipping README structure checks", readme_path)
        return [
            Issue(
                id="readme-read-error",
                category=README_TAG,
                severity="warning",
                message=f"Could not read {readme_path}",
                error=f"Failed to read file {readme_path}",
            )
        ]

    headings = parse_headings(content)
    findings: list[Finding] = []
    for required in requirements.required_headings:
        slug = _heading_slug(required)
        match = find_heading(headings, required)
        if match is None:
            findings.append(
                Issue(
                    id=f"readme-missing-heading-{slug}",
                    category=README_HEADING_TAG,
                    severity="error",
                    message=f"README.md is missing required h2 heading: {required}",
                    error=f"README.md does not contain required h2 heading: {required}",
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"readme-heading-{slug}",
                category=README_HEADING_TAG,
                message=f"README.md contains required h2 heading: {required}",
                details={"heading": required, "level": match.level},
            )
        )

    if requirements.architecture_diagram is not None:
        findings.extend(
            _architecture_diagram_findings(headings, requirements.architecture_diagram)
        )
    return findings


def _architecture_diagram_findings(
    headings: tuple[ReadmeHeading, ...],
    rule: ArchitectureDiagramRule,
) -> list[Finding]:
    heading = find_heading(headings, rule.heading)
    if heading is None:
        return [
            Issue(
                id="readme-missing-architecture-diagram-heading",
                category=README_HEADING_TAG,
                severity="error",
                message=f"README.md is missing required h2 heading: {rule.heading}",
                error=f"README.md does not contain required h2 heading: {rule.heading}",
            )
        ]

    findings: list[Finding] = [
        ComplianceItem(
            id="readme-architecture-diagram-heading",
            category=README_HEADING_TAG,
            message=f"README.md contains required h2 heading: {rule.heading}",
            details={"heading": rule.heading, "level": heading.level},
        )
    ]
    if not rule.requires_image:
        return findings
    if heading.has_image:
        findings.append(
            ComplianceItem(
                id="readme-architecture-diagram-image",
                category=README_IMAGE_TAG,
                message=f"{rule.heading} section contains an image",
                details={"heading": rule.heading},
            )
        )
    else:
        findings.append(
            Issue(
                id="readme-missing-architecture-diagram-image",
                category=README_IMAGE_TAG,
                severity="error",
                message=f"{rule.heading} section does not contain an image",
                error=(
                    f"README.md has {rule.heading} heading but is missing an image"
                ),
            )
        )
    return findings


def iac_files(inventory: FileInventory) -> tuple[str, ...]:
    """Return IaC files under ``infra/`` in inventory order."""
    return tuple(
        path
        for path in inventory.under(IAC_ROOT)
        if path.lower().endswith(IAC_EXTENSIONS)
    )


def deprecated_model_pattern(
    model: str,
    *,
    standalone: bool = False,
) -> re.Pattern[str]:
    """Return the case-insensitive pattern for ``model``, optionally quoted.

    By default any occurrence matches, so ``gpt-4`` also flags ``gpt-4o``.
    With ``standalone`` the model must not be part of a longer name.
    """
    token = rf"['\"]?{re.escape(model)}['\"]?"
    if standalone:
        token = rf"(?<![\w.-]){token}(?![\w.-])"
    return re.compile(token, re.IGNORECASE)


def run_iac_files(context: EvaluationContext) -> list[Finding]:
    """Scan IaC files for resources, deprecated models and security practices."""
    files = iac_files(context.inventory)
    if not files:
        return [
            Issue(
                id="missing-bicep",
                category=BICEP_FILES_TAG,
                severity="error",
                message=f"No Bicep files found in {IAC_ROOT}/",
                error=f"No Bicep files found in the {IAC_ROOT}/ directory",
            )
        ]

    findings: list[Finding] = [
        ComplianceItem(
            id="bicep-files-exist",
            category=BICEP_FILES_TAG,
            message=(
                f"Bicep files found in {IAC_ROOT}/ directory: {len(files)} files"
            ),
            details={"count": len(files), "files": list(files)},
        )
    ]
    for path in files:
        content = context.inventory.read(path)
        if content is None:
            _logger.info("Could not read IaC file %s", path)
            findings.append(
                Issue(
                    id=f"error-reading-{path}",
                    category=BICEP_FILES_TAG,
                    severity="warning",
                    message=f"Failed to read {path}",
                    error=f"File {path} could not be read",
                )
            )
            continue
        findings.extend(_resource_findings(context.rule_set, path, content))
        findings.extend(_deprecated_model_findings(context.rule_set, path, content))
        bicep = context.rule_set.bicep_checks
        if bicep.security_best_practices:
            findings.extend(
                check_bicep_security(
                    path,
                    content,
                    detect_insecure_auth=bicep.detect_insecure_auth,
                    check_anonymous_access=bicep.check_anonymous_access,
                )
            )
    return findings


def _resource_findings(
    rule_set: RuleSetConfig,
    path: str,
    content: str,
) -> list[Finding]:
    findings: list[Finding] = []
    for resource in rule_set.bicep_checks.required_resources:
        token = resource.lower()
        if resource not in content:
            findings.append(
                Issue(
                    id=f"bicep-missing-{token}",
                    category=BICEP_RESOURCE_TAG,
                    severity="error",
                    message=f'Missing resource "{resource}" in {path}',
                    error=f"File {path} does not contain required resource {resource}",
                    details={"resource": resource, "file": path},
                )
            )
            continue
        findings.append(
            ComplianceItem(
                id=f"bicep-resource-{token}-{path}",
                category=BICEP_RESOURCE_TAG,
                message=f'Found required resource "{resource}" in {path}',
                details={"resource": resource, "file": path},
            )
        )
    return findings


def _deprecated_model_findings(
    rule_set: RuleSetConfig,
    path: str,
    content: str,
) -> list[Finding]:
    models = rule_set.openai.deprecated_models
    if not models:
        return []
    findings: list[Finding] = [
        Issue(
            id=f"bicep-deprecated-model-{model}",
            category=AI_MODEL_TAG,
            severity="error",
            message=f'Deprecated OpenAI model "{model}" used in {path}',
            error=f"File {path} contains deprecated model {model}",
            details={"model": model, "file": path},
        )
        for model in models
        if deprecated_model_pattern(
            model, standalone=rule_set.openai.standalone_tokens
        ).search(content)
    ]
    if findings:
        return findings
    return [
        ComplianceItem(
            id=f"bicep-no-deprecated-models-{path}",
            category=AI_MODEL_TAG,
            message=f"No deprecated OpenAI models referenced in {path}",
            details={"file": path, "modelsChecked": list(models)},
        )
    ]


def run_manifest(context: EvaluationContext) -> list[Finding]:
    """Check the deployment manifest and its services section."""
    manifest_path = next(
        (
            found
            for name in MANIFEST_FILENAMES
            if (found := context.inventory.find(name)) is not None
        ),
        None,
    )
    if manifest_path is None:
        return [
            Issue(
                id="missing-azure-yaml",
                category=AZURE_YAML_TAG,
                severity="error",
                message="Missing azure.yaml or azure.yml file",
                error="No azure.yaml or azure.yml file found in repository",
            )
        ]

    findings: list[Finding] = [
        ComplianceItem(
            id="azure-yaml-exists",
            category=AZURE_YAML_TAG,
            message=f"Found azure.yaml file: {manifest_path}",
            details={"fileName": manifest_path},
        )
    ]
    if not context.rule_set.azure_yaml_rules.must_define_services:
        return findings

    content = context.inventory.read(manifest_path)
    if content is None:
        _logger.info("Could not read manifest %s", manifest_path)
        findings.append(
            Issue(
                id="azure-yaml-read-error",
                category=AZURE_YAML_TAG,
                severity="warning",
                message=f"Could not read {manifest_path}",
                error=f"Failed to read file {manifest_path}",
            )
        )
    elif _SERVICES_KEY.search(content) is None:
        findings.append(
            Issue(
                id="azure-yaml-missing-services",
                category=AZURE_YAML_TAG,
                severity="error",
                message=f'No "services:" defined in {manifest_path}',
                error=(
                    f'File {manifest_path} does not define required "services:" '
                    "section"
                ),
            )
        )
    else:
        findings.append(
            ComplianceItem(
                id="azure-yaml-services-defined",
                category=AZURE_YAML_TAG,
                message=f'"services:" section found in {manifest_path}',
                details={"fileName": manifest_path},
            )
        )
    return findings


def run_agents_document(context: EvaluationContext) -> list[Finding]:
    """Check that agents.md exists and defines its agents table."""
    agents_path = next(
        (
            found
            for name in AGENTS_FILENAMES
            if (found := context.inventory.find(name)) is not None
        ),
        None,
    )
    if agents_path is None:
        return [
            Issue(
                id="agents-missing-file",
                category=AGENTS_TAG,
                severity="error",
                message="agents.md file is missing",
                error=(
                    "Add an agents.md defining agents (name, description, inputs, "
                    "outputs, permissions)."
                ),
            )
        ]

    content = context.inventory.read(agents_path)
    if content is None:
        return [
            Issue(
                id="agents-read-error",
                category=AGENTS_TAG,
                severity="warning",
                message=f"Could not read {agents_path}",
                error=f"Failed to read file {agents_path}",
            )
        ]

    document = parse_agents_document(content)
    if document.problems:
        return [
            Issue(
                id="agents-format-invalid",
                category=AGENTS_TAG,
                severity="warning",
                message=f"{agents_path} present but formatting issues detected",
                error="; ".join(document.problems),
                details={"file": agents_path, "problems": list(document.problems)},
            )
        ]
    label = "agent" if document.agent_count == 1 else "agents"
    return [
        ComplianceItem(
            id="agents-doc-valid",
            category=AGENTS_TAG,
            message=(
                f"{agents_path} present and basic structure validated "
                f"({document.agent_count} {label})"
            ),
            details={
                "file": agents_path,
                "agentCount": document.agent_count,
                "columns": list(document.columns),
            },
        )
    ]
