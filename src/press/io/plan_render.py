"""Render and parse the visual-plan markdown table."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from press.io.project_paths import ProjectPaths, assert_write_target
from press.storage.state_store import PlanRow

REQUIRED_HEADER = ["Excerpt", "Visual Type", "Notes & Artifacts", "Context"]

_UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", "<br>").strip()


def _split_row(line: str) -> list[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|") and not stripped.endswith("\\|"):
        stripped = stripped[:-1]
    return [part.replace("\\|", "|").strip() for part in _UNESCAPED_PIPE_RE.split(stripped)]


def render_visual_plan(rows: Sequence[PlanRow]) -> str:
    lines = [
        "# Visual Plan",
        "",
        "This table only contains departures from the default on-camera state. "
        "Any passage not listed here remains on camera.",
        "",
        f"| {' | '.join(REQUIRED_HEADER)} |",
        "| --- | --- | --- | --- |",
    ]
    for row in rows:
        cells = [row.excerpt, row.visual_type, row.notes_artifacts, row.context]
        lines.append(f"| {' | '.join(_escape_cell(c) for c in cells)} |")
    return "\n".join(lines) + "\n"


def write_visual_plan(paths: ProjectPaths, rows: Sequence[PlanRow]) -> None:
    target = assert_write_target(paths, paths.visual_plan_file)
    target.write_text(render_visual_plan(rows), encoding="utf-8")


@dataclass
class ParsedPlanTable:
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def parse_visual_plan(markdown: str) -> ParsedPlanTable:
    lines = [
        line.strip()
        for line in markdown.replace("\r\n", "\n").split("\n")
        if line.strip().startswith("|")
    ]
    if len(lines) < 2:
        return ParsedPlanTable(errors=["Visual plan table was not found or is incomplete."])

    table = ParsedPlanTable(headers=_split_row(lines[0]))
    if len(table.headers) != len(REQUIRED_HEADER):
        table.errors.append("Visual plan table header has an unexpected number of columns.")
    for i, expected in enumerate(REQUIRED_HEADER):
        received = table.headers[i] if i < len(table.headers) else ""
        if received != expected:
            table.errors.append(
                f'Header mismatch at column {i + 1}: expected "{expected}", received "{received}".'
            )

    for line in lines[2:]:
        cells = _split_row(line)
        if len(cells) != len(REQUIRED_HEADER):
            table.errors.append(f"Malformed row detected: {line}")
            continue
        table.rows.append(cells)
    return table
