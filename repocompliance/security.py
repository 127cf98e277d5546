"""Security best-practice scan for Bicep templates."""

from __future__ import annotations

import re

from .models import ComplianceItem, Finding, Issue

BICEP_SECURITY_TAG = "bicepSecurity"

_MANAGED_IDENTITY_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"identity:\s*\{\s*type:\s*['\"](SystemAssigned|UserAssigned|SystemAssigned,\s*UserAssigned)['\"]",
        r"['\"]identity['\"]\s*:\s*\{\s*['\"]type['\"]\s*:\s*['\"](SystemAssigned|UserAssigned|SystemAssigned,\s*UserAssigned)['\"]",
        r"managedIdentities:\s*\{\s*systemAssigned:\s*true",
        r"managedIdentities:\s*\{\s*userAssignedResourceIds:",
    )
)

KEYVAULT_SECRET_METHOD = "KeyVault Secret without Managed Identity"

# A None pattern set marks the resource-block Key Vault secret scan.
_CREDENTIAL_PATTERNS: tuple[tuple[str, tuple[re.Pattern[str], ...] | None], ...] = tuple(
    (
        name,
        None
        if patterns is None
        else tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns),
    )
    for name, patterns in (
        (
            "Connection String with credentials",
            (
                r"connectionString.*=.*['\"][^'\"]*?(AccountKey=|Password=|pwd=|UserName=|uid=|AccountEndpoint=)[^'\"]*?['\"]",
                r"['\"]ConnectionString['\"].*:.*['\"][^'\"]*?(AccountKey=|Password=|pwd=|UserName=|uid=|AccountEndpoint=)[^'\"]*?['\"]",
            ),
        ),
        (
            "Access Key",
            (
                r"(accessKey|primaryKey|secondaryKey)\s*:\s*[^;{}]*listKeys\([^)]*\)",
                r"['\"](accessKey|primaryKey|secondaryKey)['\"].*:.*listKeys\([^)]*\)",
            ),
        ),
        (KEYVAULT_SECRET_METHOD, None),
        (
            "SAS Token",
            (
                r"sasToken\s*:",
                r"['\"]sasToken['\"].*:",
                r"sharedAccessSignature\s*:",
                r"SharedAccessKey\s*:",
            ),
        ),
        (
            "Storage Account Key",
            (
                r"storageAccountKey\s*:",
                r"['\"]storageAccountKey['\"].*:",
                r"listKeys\s*\([^)]*['\"]Microsoft\.Storage/storageAccounts",
            ),
        ),
    )
)

_RESOURCE_HEADER = re.compile(
    r"^\s*resource\s+\w+\s+'[^']*'(\s+existing)?\s*=?\s*\{",
    re.IGNORECASE | re.MULTILINE,
)
_KEYVAULT_SECRET_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"keyVault.*/secrets/", r"['\"]secretUri['\"]")
)
_IDENTITY_PROPERTY = re.compile(r"identity\s*[:{]", re.IGNORECASE)

_SENSITIVE_RESOURCES = (
    ("keyVault", "Key Vault", "SEC-KV-001", re.compile(r"Microsoft\.KeyVault/vaults", re.IGNORECASE)),
    (
        "containerRegistry",
        "Container Registry",
        "SEC-ACR-001",
        re.compile(r"Microsoft\.ContainerRegistry/registries", re.IGNORECASE),
    ),
)


def uses_managed_identity(content: str) -> bool:
    """Return True when the template assigns a managed identity."""
    return any(pattern.search(content) for pattern in _MANAGED_IDENTITY_PATTERNS)


def detect_credential_usage(content: str) -> tuple[str, ...]:
    """Return the names of credential-based auth methods found outside comments."""
    return tuple(
        name
        for name, patterns in _CREDENTIAL_PATTERNS
        if (
            keyvault_secret_without_identity(content)
            if patterns is None
            else _matches_outside_comment(patterns, content)
        )
    )


def _matches_outside_comment(
    patterns: tuple[re.Pattern[str], ...],
    content: str,
) -> bool:
    return any(
        not _in_comment(content, match.start())
        for pattern in patterns
        for match in pattern.finditer(content)
    )


def resource_blocks(content: str) -> list[str]:
    """Return the brace-balanced body of every ``resource`` declaration."""
    blocks: list[str] = []
    for header in _RESOURCE_HEADER.finditer(content):
        if _in_comment(content, header.start()):
            continue
        depth = 0
        for index in range(header.end() - 1, len(content)):
            if content[index] == "{":
                depth += 1
            elif content[index] == "}":
                depth -= 1
                if depth == 0:
                    blocks.append(content[header.start() : index + 1])
                    break
        else:
            blocks.append(content[header.start() :])
    return blocks


def keyvault_secret_without_identity(content: str) -> bool:
    """Return True when a resource reads Key Vault secrets without an identity."""
    return any(
        any(pattern.search(block) for pattern in _KEYVAULT_SECRET_PATTERNS)
        and _IDENTITY_PROPERTY.search(block) is None
        for block in resource_blocks(content)
    )


def _in_comment(text: str, index: int) -> bool:
    before = text[:index]
    current_line = before.rsplit("\n", 1)[-1]
    if current_line.lstrip().startswith("//"):
        return True
    return before.rfind("/*") > before.rfind("*/")


def check_bicep_security(
    path: str,
    content: str,
    *,
    detect_insecure_auth: bool = True,
    check_anonymous_access: bool = True,
) -> list[Finding]:
    """Return security findings for a single Bicep file.

    ``detect_insecure_auth`` enables the credential-based authentication
    warning; ``check_anonymous_access`` enables the warnings for sensitive
    resources deployed without a managed identity.
    """
    findings: list[Finding] = []
    managed_identity = uses_managed_identity(content)
    if managed_identity:
        findings.append(
            ComplianceItem(
                id=f"bicep-uses-managed-identity-{path}",
                category=BICEP_SECURITY_TAG,
                message=f"{path} uses Managed Identity for Azure authentication",
                details={"file": path, "authMethod": "ManagedIdentity"},
            )
        )

    methods = detect_credential_usage(content) if detect_insecure_auth else ()
    if methods:
        listed = ", ".join(methods)
        findings.append(
            Issue(
                id=f"bicep-alternative-auth-{path}",
                category=BICEP_SECURITY_TAG,
                severity="warning",
                message=f"SEC-AUTH-001: Detected {listed} in {path}",
                error=(
                    f"File {path} uses {listed} for authentication which may "
                    "expose secrets"
                ),
                details={"file": path, "code": "SEC-AUTH-001", "methods": list(methods)},
            )
        )

    if managed_identity or not check_anonymous_access:
        return findings
    for key, label, code, pattern in _SENSITIVE_RESOURCES:
        if pattern.search(content) is None:
            continue
        findings.append(
            Issue(
                id=f"bicep-missing-auth-{key}-{path}",
                category=BICEP_SECURITY_TAG,
                severity="warning",
                message=f"{code}: {label} found without Managed Identity in {path}",
                error=(
                    f"{label} resource in {path} doesn't appear to use Managed "
                    "Identity for access"
                ),
                details={"file": path, "code": code, "resource": label},
            )
        )
    return findings
