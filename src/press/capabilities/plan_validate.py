"""Health check for a project's visual plan, diagram files, and state document."""

from __future__ import annotations

import logging
import re

from press.capabilities.result import CapabilityResult
from press.io.plan_render import REQUIRED_HEADER, parse_visual_plan
from press.io.markdown import read_markdown_file
from press.io.project_paths import resolve_project_paths
from press.storage.state_store import compute_content_hash, load_plan_state
from press.storage.validation import is_visual_type, validate_plan_state

logger = logging.getLogger(__name__)

_DIAGRAM_REF_RE = re.compile(r"(diagram-\d+\.excalidraw)", re.IGNORECASE)


def plan_validate(project: str) -> CapabilityResult:
    paths = resolve_project_paths(project)
    errors: list[str] = []
    warnings: list[str] = []
    hints: list[str] = []

    if not paths.visual_plan_file.is_file():
        return CapabilityResult(
            ok=False,
            message="Validation failed: visual-plan.md is missing.",
            data={"repairHints": ["Run plan-generate to create a fresh visual plan."]},
            warnings=warnings,
            errors=[f"Missing visual plan file: {paths.visual_plan_file}"],
        )

    try:
        markdown = paths.visual_plan_file.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return CapabilityResult(
            ok=False,
            message="Validation failed.",
            data={"repairHints": ["Convert visual-plan.md to UTF-8 and run validation again."]},
            warnings=warnings,
            errors=["visual-plan.md exists but could not be read as UTF-8 text."],
        )

    table = parse_visual_plan(markdown)
    errors.extend(table.errors)
    if table.errors:
        hints.append(
            "Ensure the visual plan keeps the four required columns in this exact order: "
            + ", ".join(REQUIRED_HEADER) + "."
        )

    for row in table.rows:
        visual_type, notes = row[1], row[2]
        if not is_visual_type(visual_type):
            errors.append(f"Unknown visual type in table row: {visual_type}")
            hints.append("Replace unknown visual type values with one of the four supported values.")
        if visual_type != "Diagram":
            continue
        match = _DIAGRAM_REF_RE.search(notes)
        if not match:
            errors.append(f"Diagram row is missing a diagram filename reference in Notes: {notes}")
            hints.append("Include diagram filenames in Notes, e.g. `diagram-01.excalidraw`.")
        elif not (paths.artifacts_dir / match.group(1)).is_file():
            errors.append(
                f"Diagram file referenced in plan is missing on disk: {paths.artifacts_dir / match.group(1)}"
            )
            hints.append("Regenerate diagrams with diagram-create or re-run plan-generate to repair references.")

    state = load_plan_state(paths)
    state_errors, state_warnings = validate_plan_state(state)
    errors.extend(state_errors)
    warnings.extend(state_warnings)

    for diagram in state.diagrams:
        if not (paths.artifacts_dir / diagram.filename).is_file():
            errors.append(f"State references a missing diagram file: {diagram.filename}")
            hints.append("Recreate missing diagram files or remove stale records from plan-state.json.")

    if state.source_file and state.essay_hash:
        source_path = paths.project_root / state.source_file
        try:
            current_hash = compute_content_hash(read_markdown_file(source_path))
        except (OSError, UnicodeDecodeError):
            warnings.append(f"Source file recorded in plan-state.json could not be read: {state.source_file}")
            hints.append("Restore the source file or run plan-generate against the current source.")
        else:
            if current_hash != state.essay_hash:
                warnings.append(
                    f"Source file {state.source_file} was edited since the visual plan was generated; "
                    "rows and diagrams may be stale."
                )
                hints.append(f"Run plan-generate --source {state.source_file} to refresh the visual plan.")

    if state.rows and len(table.rows) != len(state.rows):
        warnings.append(
            "visual-plan.md row count does not match plan-state.json row count. "
            "Manual edits may have desynchronized files."
        )
        hints.append(
            "If this mismatch is unexpected, run plan-generate to resynchronize "
            "visual-plan.md and plan-state.json."
        )

    ok = not errors
    logger.info("Validated %s: %d error(s), %d warning(s)", paths.project_root, len(errors), len(warnings))
    return CapabilityResult(
        ok=ok,
        message="Validation passed." if ok else "Validation failed.",
        data={"repairHints": hints},
        warnings=warnings,
        errors=None if ok else errors,
    )
