"""Refine an existing diagram in place."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from press.capabilities.result import CapabilityResult
from press.config import load_bridge_config
from press.integrations.excalidraw import ExcalidrawAdapter, RefineDiagramRequest
from press.io.project_paths import assert_write_target, ensure_artifacts_structure, resolve_project_paths
from press.storage.state_store import (
    DIAGRAM_FILENAME_RE,
    DiagramRecord,
    append_warnings,
    ensure_filename,
    filename_to_id,
    find_diagram,
    load_plan_state,
    project_lock,
    save_plan_state,
    upsert_diagram,
    write_diagram_links,
)

logger = logging.getLogger(__name__)


def diagram_refine(
    project: str,
    diagram: str,
    instruction: str,
    adapter: ExcalidrawAdapter | None = None,
) -> CapabilityResult:
    paths = resolve_project_paths(project)
    ensure_artifacts_structure(paths)
    if not diagram.strip():
        raise ValueError("Diagram identifier must be non-empty.")

    with project_lock(paths):
        state = load_plan_state(paths)
        existing = find_diagram(state, diagram)
        filename = existing.filename if existing else ensure_filename(diagram)
        diagram_path = assert_write_target(paths, paths.artifacts_dir / filename)

        if not diagram_path.is_file():
            return CapabilityResult(
                ok=False,
                message=f"Diagram not found: {filename}",
                errors=[
                    f"Expected a file at {diagram_path}. Create the diagram first "
                    "or provide the correct identifier."
                ],
            )
        if existing is None and not DIAGRAM_FILENAME_RE.match(filename):
            return CapabilityResult(
                ok=False,
                message=f"Not a managed diagram: {filename}",
                errors=[
                    f"{filename} has no record in plan-state.json and does not follow the "
                    "diagram-<NN>.excalidraw naming. Create diagrams with diagram-create."
                ],
            )

        current = diagram_path.read_text(encoding="utf-8")
        if adapter is None:
            adapter = ExcalidrawAdapter(load_bridge_config())
        operation = adapter.refine_diagram(RefineDiagramRequest(
            diagram_id=filename_to_id(filename),
            existing_content=current,
            instruction=instruction,
        ))

        diagram_path.write_text(operation.content.strip() + "\n", encoding="utf-8")

        now = datetime.now(timezone.utc).isoformat()
        if existing is None:
            # File on disk with no record: adopt it.
            existing = DiagramRecord(
                id=filename_to_id(filename),
                filename=filename,
                linked_excerpt="",
                source_file="",
                created_at=now,
            )
        record = DiagramRecord(
            id=existing.id,
            filename=existing.filename,
            linked_excerpt=existing.linked_excerpt,
            source_file=existing.source_file,
            revisions=existing.revisions + 1,
            web_url=operation.web_url or existing.web_url,
            created_at=existing.created_at,
            updated_at=now,
        )
        upsert_diagram(state, record)
        append_warnings(state, operation.warnings)

        write_diagram_links(paths, state)
        save_plan_state(paths, state)

    logger.info("Refined %s (revision %d)", filename, record.revisions)
    return CapabilityResult(
        ok=True,
        message=f"Refined diagram {filename}.",
        data={"diagramId": record.id, "filename": filename, "revisions": record.revisions},
        warnings=list(operation.warnings),
    )
