"""Shared pytest fixtures for repocompliance tests."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest

from repocompliance.checks import EvaluationContext
from repocompliance.inventory import FileInventory
from repocompliance.models import FileInventoryEntry

if typ.TYPE_CHECKING:
    from repocompliance.rulesets import RuleSetConfig

README_WITH_SECTIONS = """# Sample template

## Features

Things it does.

## Getting Started

Run `azd up`.

## Resources

Links.

## Guidance

Costs and regions.
"""

AZURE_YAML_WITH_SERVICES = """name: sample
services:
  web:
    project: ./src
    host: appservice
"""

FIXED_TIMESTAMP = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.UTC)


@pytest.fixture
def dod_repository_files() -> list[FileInventoryEntry]:
    """Inventory exercising every dod check that a minimal template passes."""
    return [
        FileInventoryEntry("README.md", README_WITH_SECTIONS),
        FileInventoryEntry("azure.yaml", AZURE_YAML_WITH_SERVICES),
        FileInventoryEntry("LICENSE", "MIT License\n"),
        FileInventoryEntry(
            "infra/main.bicep",
            "resource test 'Microsoft.Web/sites@2022-03-01' = {}\n",
        ),
        FileInventoryEntry(".github/workflows/azure-dev.yml", "on: push\n"),
    ]


@pytest.fixture
def fixed_clock() -> typ.Callable[[], dt.datetime]:
    """Clock returning a constant instant."""
    return lambda: FIXED_TIMESTAMP


def make_context(
    rule_set: RuleSetConfig,
    files: typ.Iterable[FileInventoryEntry | tuple[str, str | None] | str],
) -> EvaluationContext:
    """Build an evaluation context from paths, (path, content) pairs or entries."""
    entries: list[FileInventoryEntry] = []
    for item in files:
        if isinstance(item, FileInventoryEntry):
            entries.append(item)
        elif isinstance(item, tuple):
            entries.append(FileInventoryEntry(item[0], item[1]))
        else:
            entries.append(FileInventoryEntry(item))
    return EvaluationContext(rule_set=rule_set, inventory=FileInventory(entries))
