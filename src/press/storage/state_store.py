"""Durable plan/diagram state for one project, stored as a single JSON document."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from press.io.project_paths import ProjectPaths, assert_write_target

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0.0"
DIAGRAM_SUFFIX = ".excalidraw"
DIAGRAM_FILENAME_RE = re.compile(r"^diagram-(\d+)\.excalidraw$", re.IGNORECASE)

VISUAL_TYPES = ("Diagram", "B-Roll A (Atmospheric)", "B-Roll B (Specific)", "Emphasis")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _str(data: dict, key: str, default: str = "") -> str:
    value = data.get(key, default)
    return value if isinstance(value, str) else default


@dataclass
class PlanRow:
    """One departure from the default on-camera state, persisted verbatim."""

    id: str
    excerpt: str
    visual_type: str
    notes_artifacts: str
    context: str
    source_file: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "excerpt": self.excerpt,
            "visualType": self.visual_type,
            "notesArtifacts": self.notes_artifacts,
            "context": self.context,
            "sourceFile": self.source_file,
        }

    @classmethod
    def from_dict(cls, data: dict) -> PlanRow:
        return cls(
            id=_str(data, "id"),
            excerpt=_str(data, "excerpt"),
            visual_type=_str(data, "visualType"),
            notes_artifacts=_str(data, "notesArtifacts"),
            context=_str(data, "context"),
            source_file=_str(data, "sourceFile"),
        )


@dataclass
class DiagramRecord:
    """Ties a diagram file to the excerpt and source that produced it."""

    id: str
    filename: str
    linked_excerpt: str
    source_file: str
    revisions: int = 0
    web_url: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "filename": self.filename,
            "linkedExcerpt": self.linked_excerpt,
            "sourceFile": self.source_file,
            "revisions": self.revisions,
        }
        if self.web_url:
            data["webUrl"] = self.web_url
        data["createdAt"] = self.created_at
        data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> DiagramRecord:
        revisions = data.get("revisions", 0)
        web_url = data.get("webUrl")
        return cls(
            id=_str(data, "id"),
            filename=_str(data, "filename"),
            linked_excerpt=_str(data, "linkedExcerpt"),
            source_file=_str(data, "sourceFile"),
            revisions=revisions if isinstance(revisions, int) else 0,
            web_url=web_url if isinstance(web_url, str) else None,
            created_at=_str(data, "createdAt"),
            updated_at=_str(data, "updatedAt"),
        )


@dataclass
class PlanState:
    version: str = STATE_VERSION
    project_path: str = ""
    source_file: str = ""
    essay_hash: str = ""
    rows: list[PlanRow] = field(default_factory=list)
    diagrams: list[DiagramRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "projectPath": self.project_path,
            "sourceFile": self.source_file,
            "essayHash": self.essay_hash,
            "rows": [r.to_dict() for r in self.rows],
            "diagrams": [d.to_dict() for d in self.diagrams],
            "warnings": list(self.warnings),
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> PlanState:
        if not isinstance(data, dict):
            raise TypeError(f"plan state must be a JSON object, got {type(data).__name__}")
        rows = data.get("rows") or []
        diagrams = data.get("diagrams") or []
        warnings = data.get("warnings") or []
        if not isinstance(rows, list) or not isinstance(diagrams, list) or not isinstance(warnings, list):
            raise TypeError("plan state rows, diagrams, and warnings must be lists")
        return cls(
            version=_str(data, "version", STATE_VERSION),
            project_path=_str(data, "projectPath"),
            source_file=_str(data, "sourceFile"),
            essay_hash=_str(data, "essayHash"),
            rows=[PlanRow.from_dict(r) for r in rows if isinstance(r, dict)],
            diagrams=[DiagramRecord.from_dict(d) for d in diagrams if isinstance(d, dict)],
            warnings=[w for w in warnings if isinstance(w, str)],
            updated_at=_str(data, "updatedAt"),
        )


# ── Load / save ──


def load_plan_state(paths: ProjectPaths, source_file: str = "", essay_hash: str = "") -> PlanState:
    """Read the project's state document.

    A missing, unreadable, or corrupt document yields a fresh, version-stamped
    state seeded with the given source file and hash.
    """
    fresh = PlanState(
        project_path=str(paths.project_root),
        source_file=source_file,
        essay_hash=essay_hash,
        updated_at=_now(),
    )
    try:
        raw = paths.state_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        return fresh
    except OSError as e:
        logger.warning("Could not read plan state %s (%s); starting fresh", paths.state_file, e)
        return fresh

    try:
        return PlanState.from_dict(json.loads(raw))
    except (ValueError, TypeError) as e:
        logger.warning("Plan state %s is corrupt (%s); starting fresh", paths.state_file, e)
        return fresh


def save_plan_state(paths: ProjectPaths, state: PlanState) -> None:
    """Atomically replace the state document with ``state``."""
    state.updated_at = _now()
    paths.internal_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=paths.internal_dir, prefix=".plan-state-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp_name, paths.state_file)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    logger.debug("Saved plan state: %d row(s), %d diagram(s)", len(state.rows), len(state.diagrams))


# Per-project single-writer discipline within this process.
_project_locks: dict[str, threading.RLock] = {}
_project_locks_guard = threading.Lock()


@contextlib.contextmanager
def project_lock(paths: ProjectPaths) -> Iterator[None]:
    """Serialize load -> mutate -> save sequences for one project.

    Reentrant, so a capability may call another capability for the same
    project while holding it. Does not protect against other processes.
    """
    key = str(paths.state_file)
    with _project_locks_guard:
        lock = _project_locks.setdefault(key, threading.RLock())
    with lock:
        yield


# ── Diagram records ──


def filename_to_id(filename: str) -> str:
    if filename.lower().endswith(DIAGRAM_SUFFIX):
        return filename[: -len(DIAGRAM_SUFFIX)]
    return filename


def ensure_filename(identifier: str) -> str:
    identifier = identifier.strip()
    if identifier.lower().endswith(DIAGRAM_SUFFIX):
        return identifier
    return identifier + DIAGRAM_SUFFIX


def find_diagram(state: PlanState, identifier: str) -> DiagramRecord | None:
    """Find a record by id or filename; the ``.excalidraw`` suffix is optional."""
    identifier = identifier.strip()
    if not identifier:
        return None
    filename = ensure_filename(identifier)
    for record in state.diagrams:
        if record.id == identifier or record.filename in (identifier, filename):
            return record
    return None


def find_reusable_diagram(
    state: PlanState,
    source_file: str,
    excerpt: str,
    artifacts_dir: Path,
) -> DiagramRecord | None:
    """Return the record for this exact (source, excerpt) pair if its file still exists."""
    for record in state.diagrams:
        if record.source_file == source_file and record.linked_excerpt == excerpt:
            if (artifacts_dir / record.filename).is_file():
                return record
    return None


def upsert_diagram(state: PlanState, record: DiagramRecord) -> None:
    """Replace the record with the same id, or append it."""
    for i, existing in enumerate(state.diagrams):
        if existing.id == record.id:
            if record.revisions < existing.revisions:
                raise ValueError(
                    f"Diagram {record.id} revisions cannot decrease "
                    f"({existing.revisions} -> {record.revisions})"
                )
            state.diagrams[i] = record
            return
    state.diagrams.append(record)


def next_diagram_filename(state: PlanState, artifacts_dir: Path | None = None) -> str:
    """Next ``diagram-NN.excalidraw`` after the highest sequence in use.

    Scans both the state records and, if given, the files in artifacts_dir, so a
    record removed out of band never causes a collision with its file.
    """
    names = [d.filename for d in state.diagrams]
    if artifacts_dir is not None and artifacts_dir.is_dir():
        names.extend(p.name for p in artifacts_dir.iterdir())

    highest = 0
    for name in names:
        match = DIAGRAM_FILENAME_RE.match(name)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"diagram-{highest + 1:02d}{DIAGRAM_SUFFIX}"


def append_warnings(state: PlanState, warnings: Iterable[str]) -> None:
    """Accumulate warnings; duplicates are kept."""
    state.warnings.extend(warnings)


def compute_content_hash(text: str) -> str:
    """Stable SHA-256 hex digest of the text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def write_diagram_links(paths: ProjectPaths, state: PlanState) -> None:
    """Render the diagram index markdown next to the artifacts."""
    lines = ["# Diagram Links", ""]
    if not state.diagrams:
        lines.append("No diagrams yet.")
    else:
        lines.append("| Diagram | Source | Excerpt | Revisions | Web |")
        lines.append("| --- | --- | --- | --- | --- |")
        for d in state.diagrams:
            excerpt = d.linked_excerpt.replace("|", "\\|")
            web = d.web_url or ""
            lines.append(
                f"| `{d.filename}` | {d.source_file or '-'} | {excerpt or '-'} | {d.revisions} | {web} |"
            )
    target = assert_write_target(paths, paths.links_file)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
