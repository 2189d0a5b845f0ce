"""Create (or reuse) the diagram for one excerpt of a markdown source."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from press.capabilities.result import CapabilityResult
from press.config import load_bridge_config
from press.integrations.excalidraw import CreateDiagramRequest, ExcalidrawAdapter
from press.io.markdown import read_markdown_file, source_contains_excerpt
from press.io.project_paths import (
    assert_write_target,
    ensure_artifacts_structure,
    relative_source,
    resolve_project_paths,
    resolve_source_path,
)
from press.storage.state_store import (
    DiagramRecord,
    append_warnings,
    compute_content_hash,
    filename_to_id,
    find_reusable_diagram,
    load_plan_state,
    next_diagram_filename,
    project_lock,
    save_plan_state,
    upsert_diagram,
    write_diagram_links,
)

logger = logging.getLogger(__name__)


def diagram_create(
    project: str,
    source: str,
    excerpt: str,
    intent: str | None = None,
    adapter: ExcalidrawAdapter | None = None,
) -> CapabilityResult:
    """Create a diagram for ``excerpt`` in ``source``.

    If a diagram already exists for the same (source file, excerpt) pair and
    its file is still on disk, it is returned with ``reused=True`` and nothing
    is written.
    """
    paths = resolve_project_paths(project)
    source_path = resolve_source_path(paths, source)
    source_text = read_markdown_file(source_path)
    ensure_artifacts_structure(paths)

    source_file = relative_source(paths, source_path)
    essay_hash = compute_content_hash(source_text)
    normalized_excerpt = excerpt.strip()
    if not normalized_excerpt:
        raise ValueError("Excerpt must be non-empty.")

    with project_lock(paths):
        state = load_plan_state(paths, source_file, essay_hash)

        existing = find_reusable_diagram(state, source_file, normalized_excerpt, paths.artifacts_dir)
        if existing is not None:
            logger.info("Reusing %s for excerpt in %s", existing.filename, source_file)
            return CapabilityResult(
                ok=True,
                message=f"Reused existing diagram {existing.filename} for the same excerpt.",
                data={"diagramId": existing.id, "filename": existing.filename, "reused": True},
                warnings=list(state.warnings),
            )

        filename = next_diagram_filename(state, paths.artifacts_dir)
        diagram_id = filename_to_id(filename)
        diagram_path = assert_write_target(paths, paths.artifacts_dir / filename)

        if adapter is None:
            adapter = ExcalidrawAdapter(load_bridge_config())
        operation = adapter.create_diagram(CreateDiagramRequest(
            title=diagram_id,
            excerpt=normalized_excerpt,
            intent=intent,
            source_text=source_text,
        ))

        diagram_path.write_text(operation.content.strip() + "\n", encoding="utf-8")

        now = datetime.now(timezone.utc).isoformat()
        upsert_diagram(state, DiagramRecord(
            id=diagram_id,
            filename=filename,
            linked_excerpt=normalized_excerpt,
            source_file=source_file,
            revisions=0,
            web_url=operation.web_url,
            created_at=now,
            updated_at=now,
        ))

        warnings = list(operation.warnings)
        if not source_contains_excerpt(source_text, normalized_excerpt):
            warnings.append(
                f"Excerpt did not match source text exactly for {source_file}; "
                "diagram was still created for manual review."
            )

        append_warnings(state, warnings)
        state.project_path = str(paths.project_root)
        state.source_file = source_file
        state.essay_hash = essay_hash

        write_diagram_links(paths, state)
        save_plan_state(paths, state)

    logger.info("Created %s for %s", filename, source_file)
    return CapabilityResult(
        ok=True,
        message=f"Created diagram {filename}.",
        data={
            "diagramId": diagram_id,
            "filename": filename,
            "sourceFile": source_file,
            "excerpt": normalized_excerpt,
            "reused": False,
        },
        warnings=warnings,
    )
