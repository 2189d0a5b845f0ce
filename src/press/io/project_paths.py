"""Project path resolution and write sandboxing."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

PROJECT_CATEGORIES = frozenset({"Essays", "Commentary"})


class ProjectPathError(ValueError):
    """Raised when a path is outside the project or the project shape is invalid."""


@dataclass(frozen=True)
class ProjectPaths:
    vault_root: Path
    project_root: Path
    artifacts_dir: Path
    internal_dir: Path
    visual_plan_file: Path
    state_file: Path
    links_file: Path
    rules_file: Path


def is_path_inside(parent: Path, child: Path) -> bool:
    """True if child is strictly below parent."""
    parent = parent.resolve()
    child = child.resolve()
    return child != parent and parent in child.parents


def resolve_project_paths(project: str | Path) -> ProjectPaths:
    """Resolve a project root of the form ``<vault>/<Essays|Commentary>/<slug>``.

    Raises ProjectPathError if the path does not end in a category and slug, or
    does not exist.
    """
    root = Path(project).expanduser().resolve()
    parts = root.parts
    if len(parts) < 3 or parts[-2] not in PROJECT_CATEGORIES or not parts[-1].strip():
        raise ProjectPathError(
            "Project path must point at the project root itself, "
            f"e.g. .../Essays/<slug> or .../Commentary/<slug>. Received: {root}"
        )
    if not root.is_dir():
        raise ProjectPathError(f"Project path does not exist: {root}")

    vault_root = root.parent.parent
    artifacts_dir = root / "artifacts"
    internal_dir = artifacts_dir / ".press"
    return ProjectPaths(
        vault_root=vault_root,
        project_root=root,
        artifacts_dir=artifacts_dir,
        internal_dir=internal_dir,
        visual_plan_file=artifacts_dir / "visual-plan.md",
        state_file=internal_dir / "plan-state.json",
        links_file=artifacts_dir / "diagram-links.md",
        rules_file=vault_root / "_system" / "visual-trigger-ruleset.md",
    )


def resolve_source_path(paths: ProjectPaths, source: str | Path) -> Path:
    """Resolve a markdown source file relative to the project root."""
    candidate = (paths.project_root / source).resolve()
    if not is_path_inside(paths.project_root, candidate):
        raise ProjectPathError(
            f"Source file must stay inside the project root ({paths.project_root}). Received: {candidate}"
        )
    if candidate.suffix.lower() != ".md":
        raise ProjectPathError(f"Source file must be markdown (.md). Received: {candidate}")
    if not candidate.is_file():
        raise ProjectPathError(f"Source markdown file does not exist: {candidate}")
    return candidate


def assert_write_target(paths: ProjectPaths, target: Path) -> Path:
    """Return the resolved target if it is inside artifacts/, else raise."""
    resolved = target.resolve()
    artifacts = paths.artifacts_dir.resolve()
    if resolved == artifacts or is_path_inside(artifacts, resolved):
        return resolved
    raise ProjectPathError(f"Refusing to write outside the project's artifacts directory: {resolved}")


def ensure_artifacts_structure(paths: ProjectPaths) -> None:
    paths.internal_dir.mkdir(parents=True, exist_ok=True)


def relative_source(paths: ProjectPaths, source_path: Path) -> str:
    """Project-relative POSIX path used as ``sourceFile`` in persisted state."""
    return source_path.resolve().relative_to(paths.project_root).as_posix()
