"""Runtime checks for plan rows and plan state read back from disk."""

from __future__ import annotations

from press.storage.state_store import DIAGRAM_SUFFIX, VISUAL_TYPES, PlanRow, PlanState


def is_visual_type(value: str) -> bool:
    return value in VISUAL_TYPES


def validate_plan_row(row: PlanRow) -> list[str]:
    errors: list[str] = []
    if not row.id.strip():
        errors.append("PlanRow.id must be a non-empty string.")
    if not row.excerpt.strip():
        errors.append("PlanRow.excerpt must be non-empty.")
    if not is_visual_type(row.visual_type):
        errors.append(f"PlanRow.visualType is invalid: {row.visual_type}")
    if not row.notes_artifacts.strip():
        errors.append("PlanRow.notesArtifacts must be non-empty.")
    if not row.context.strip():
        errors.append("PlanRow.context must be non-empty.")
    if not row.source_file.strip():
        errors.append("PlanRow.sourceFile must be non-empty.")
    return errors


def validate_plan_state(state: PlanState) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a loaded state document."""
    errors: list[str] = []
    warnings: list[str] = []

    if not state.version.strip():
        errors.append("PlanState.version must be non-empty.")
    if not state.project_path.strip():
        errors.append("PlanState.projectPath must be non-empty.")
    if not state.source_file.strip():
        warnings.append("PlanState.sourceFile is empty. This is allowed before first generation.")
    if not state.essay_hash.strip():
        warnings.append("PlanState.essayHash is empty. This is allowed before source parsing.")

    for row in state.rows:
        label = row.id or "(missing-id)"
        errors.extend(f"{label}: {e}" for e in validate_plan_row(row))

    seen: set[str] = set()
    for diagram in state.diagrams:
        if not diagram.id.strip():
            errors.append("DiagramRecord.id must be non-empty.")
        if not diagram.filename.endswith(DIAGRAM_SUFFIX):
            errors.append(f"DiagramRecord.filename must end with {DIAGRAM_SUFFIX}: {diagram.filename}")
        if diagram.filename in seen:
            errors.append(f"Duplicate diagram filename in state: {diagram.filename}")
        seen.add(diagram.filename)
        if diagram.revisions < 0:
            errors.append(f"DiagramRecord.revisions cannot be negative: {diagram.filename}")

    return errors, warnings
