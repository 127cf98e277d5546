"""Markdown structure parsing for README and agents documents."""

from __future__ import annotations

import dataclasses
import re

from .models import ReadmeHeading

IMAGE_LOOKAHEAD_LINES = 5
AGENT_TABLE_COLUMNS = ("name", "description", "inputs", "outputs", "permissions")

_HEADING = re.compile(r"^(#{1,6})\s+(.+)$")
_IMAGE = re.compile(r"^\s*!\[.*?\]\(.*?\)")
_TOP_HEADING = re.compile(r"^#\s+")
_AGENTS_SECTION = re.compile(r"^##\s+agents?\b", re.IGNORECASE | re.MULTILINE)
_TABLE_SEPARATOR = re.compile(r"^\s*\|?\s*[-:]+(\s*\|\s*[-:]+)*\s*\|?\s*$")


def parse_headings(markdown: str) -> tuple[ReadmeHeading, ...]:
    """Return the ATX headings of ``markdown`` in document order.

    A heading has an image when one of the following ``IMAGE_LOOKAHEAD_LINES``
    lines starts with a markdown image reference.
    """
    lines = markdown.splitlines()
    headings: list[ReadmeHeading] = []
    for index, line in enumerate(lines):
        match = _HEADING.match(line)
        if match is None:
            continue
        text = match.group(2).strip()
        if not text:
            continue
        window = lines[index + 1 : index + 1 + IMAGE_LOOKAHEAD_LINES]
        headings.append(
            ReadmeHeading(
                level=len(match.group(1)),
                text=text,
                has_image=any(_IMAGE.match(candidate) for candidate in window),
            )
        )
    return tuple(headings)


def find_heading(
    headings: tuple[ReadmeHeading, ...],
    text: str,
    *,
    level: int = 2,
) -> ReadmeHeading | None:
    """Return the first heading at ``level`` whose text equals ``text``."""
    wanted = text.strip().lower()
    for heading in headings:
        if heading.level == level and heading.text.lower() == wanted:
            return heading
    return None


@dataclasses.dataclass(frozen=True, slots=True)
class AgentsDocument:
    """Structure extracted from an ``agents.md`` file."""

    has_top_heading: bool
    has_agents_section: bool
    columns: tuple[str, ...]
    agent_count: int

    @property
    def missing_columns(self) -> tuple[str, ...]:
        """Required table columns absent from the header row."""
        return tuple(
            column for column in AGENT_TABLE_COLUMNS if column not in self.columns
        )

    @property
    def problems(self) -> tuple[str, ...]:
        """Human-readable structural problems, empty when valid."""
        problems: list[str] = []
        if not self.has_top_heading:
            problems.append("missing top-level heading")
        if not self.has_agents_section:
            problems.append("missing Agents section (## Agents)")
        if not self.columns:
            problems.append("missing agent definition table")
        elif self.missing_columns:
            problems.append(
                "missing required columns: " + ", ".join(self.missing_columns)
            )
        return tuple(problems)


def parse_agents_document(markdown: str) -> AgentsDocument:
    """Parse the agent definition table out of ``markdown``."""
    lines = markdown.splitlines()
    first_heading = next(
        (line.strip() for line in lines if _TOP_HEADING.match(line.strip())),
        "",
    )
    header_index = next(
        (
            index
            for index, line in enumerate(lines)
            if "|" in line and "name" in line.lower() and "description" in line.lower()
        ),
        None,
    )
    columns: tuple[str, ...] = ()
    agent_count = 0
    if header_index is not None:
        columns = _table_cells(lines[header_index])
        agent_count = _count_rows(lines[header_index + 1 :])
    return AgentsDocument(
        has_top_heading=bool(first_heading),
        has_agents_section=bool(_AGENTS_SECTION.search(markdown)),
        columns=columns,
        agent_count=agent_count,
    )


def _table_cells(line: str) -> tuple[str, ...]:
    return tuple(cell.strip().lower() for cell in line.split("|") if cell.strip())


def _count_rows(lines: list[str]) -> int:
    count = 0
    for line in lines:
        if _TABLE_SEPARATOR.match(line):
            continue
        if "|" not in line:
            if not line.strip():
                break
            continue
        if len(_table_cells(line)) >= 2:
            count += 1
    return count
