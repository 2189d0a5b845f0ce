"""Generate the visual plan for a markdown source.

Each passage is classified by simple text heuristics into one of the four
visual types, or left on camera. Diagram rows go through ``diagram_create``
so rerunning the plan reuses existing diagrams instead of allocating new ones.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

from press.capabilities.diagram_create import diagram_create
from press.capabilities.result import CapabilityResult
from press.integrations.excalidraw import ExcalidrawAdapter
from press.io.markdown import build_excerpt, read_markdown_file, split_into_passages, suggest_search_terms
from press.io.plan_render import write_visual_plan
from press.io.project_paths import relative_source, resolve_project_paths, resolve_source_path
from press.storage.state_store import (
    PlanRow,
    append_warnings,
    compute_content_hash,
    load_plan_state,
    project_lock,
    save_plan_state,
    write_diagram_links,
)

logger = logging.getLogger(__name__)

DIAGRAM = "Diagram"
BROLL_ATMOSPHERIC = "B-Roll A (Atmospheric)"
BROLL_SPECIFIC = "B-Roll B (Specific)"
EMPHASIS = "Emphasis"

MAX_EMPHASIS_WORDS = 28

DIAGRAM_KEYWORDS = (
    "system", "architecture", "model", "process", "relationship",
    "framework", "flow", "infrastructure", "depends", "loop",
)
ATMOSPHERIC_KEYWORDS = (
    "film", "book", "historical", "culture", "cinema",
    "world", "atmosphere", "aesthetic", "era", "kubrick",
)

_MEDIA_RE = re.compile(r"\b(episode|podcast|interview|scene|clip|trailer|timestamp|minute mark)\b", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_PERSON_PAIR_RE = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
_REFRAME_RE = re.compile(r"\bnot\b.+\bbut\b", re.IGNORECASE)
_CONCLUSION_RE = re.compile(r"^(therefore|in short|in conclusion|to conclude)\b", re.IGNORECASE)
_THESIS_RE = re.compile(r"\b(this essay argues|i argue|the thesis|discipline is not)\b", re.IGNORECASE)
_IS_RE = re.compile(r"\bis\b", re.IGNORECASE)


@dataclass
class Classification:
    visual_type: str | None
    reasoning: str
    emphasis_pattern: str | None = None


def _compact(text: str) -> str:
    return " ".join(text.split())


def detect_emphasis_pattern(text: str) -> str | None:
    compact = _compact(text)
    word_count = len(compact.split())
    if word_count > MAX_EMPHASIS_WORDS:
        return None
    if _REFRAME_RE.search(compact):
        return "Reframe"
    if _CONCLUSION_RE.search(compact):
        return "Conclusion after a chain"
    if _THESIS_RE.search(compact):
        return "Thesis declaration"
    if "!" in compact and word_count <= 20:
        return "Provocation"
    if word_count <= 14 and _IS_RE.search(compact):
        return "Distillation"
    return None


def looks_like_specific_reference(text: str) -> bool:
    compact = _compact(text)
    if _MEDIA_RE.search(compact):
        return True
    return bool(_YEAR_RE.search(compact) and _PERSON_PAIR_RE.search(compact))


def looks_like_diagram_candidate(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in DIAGRAM_KEYWORDS)


def looks_like_atmospheric_passage(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in ATMOSPHERIC_KEYWORDS)


def classify_passage(text: str) -> Classification:
    """First matching rule wins: emphasis, specific reference, diagram, atmosphere."""
    pattern = detect_emphasis_pattern(text)
    if pattern:
        return Classification(
            EMPHASIS,
            "Detected a concise landing sentence that matches emphasis criteria.",
            emphasis_pattern=pattern,
        )
    if looks_like_specific_reference(text):
        return Classification(
            BROLL_SPECIFIC,
            "Detected a specific external reference likely tied to a known source moment.",
        )
    if looks_like_diagram_candidate(text):
        return Classification(DIAGRAM, "Detected structural language about relationships or systems.")
    if looks_like_atmospheric_passage(text):
        return Classification(
            BROLL_ATMOSPHERIC,
            "Detected world-building language that benefits from tonal imagery.",
        )
    return Classification(None, "No visual trigger detected; keep default on-camera state.")


def build_context_label(index: int, total: int, visual_type: str) -> str:
    ratio = 0.0 if total == 0 else index / total
    if ratio <= 0.2:
        return "Opening hook"
    if ratio >= 0.8:
        return "Conclusion"
    return {
        DIAGRAM: "Core argument",
        BROLL_ATMOSPHERIC: "World-building",
        BROLL_SPECIFIC: "Specific reference",
    }.get(visual_type, "Argument landing")


def _youtube_search_url(terms: str) -> str:
    return f"https://youtube.com/results?search_query={quote(terms.strip(), safe='')}"


def build_notes(
    visual_type: str,
    passage_text: str,
    excerpt: str,
    diagram_filename: str | None = None,
    emphasis_pattern: str | None = None,
) -> str:
    terms = suggest_search_terms(passage_text) or suggest_search_terms(excerpt)

    if visual_type == DIAGRAM:
        return (
            f"`{diagram_filename or 'diagram-pending.excalidraw'}` - Diagram generated from "
            f"a structural passage ({terms or 'core model'})."
        )
    if visual_type == BROLL_ATMOSPHERIC:
        terms = terms or "cinematic atmosphere"
        return (
            f"Search: `{terms}` - YouTube: {_youtube_search_url(terms)} - Descript stock: `{terms}` "
            "- Look for: immersive, tonal imagery that supports the mood instead of literal explanation."
        )
    if visual_type == BROLL_SPECIFIC:
        terms = terms or "specific clip reference"
        return (
            f"Source cue: {excerpt} - Search: `{terms}` - YouTube: {_youtube_search_url(terms)} "
            f"- Descript stock: `{terms}`."
        )
    return f"Captions on dark screen. Emphasis type: {emphasis_pattern or 'Distillation'}."


def emphasis_density_warnings(rows: list[PlanRow]) -> list[str]:
    """Warn when three or more consecutive rows are Emphasis."""
    run = 0
    for row in rows:
        run = run + 1 if row.visual_type == EMPHASIS else 0
        if run >= 3:
            return [
                "Emphasis entries appear in a dense cluster. Re-check whether each line "
                "is a true landing versus a climb sentence."
            ]
    return []


def _row_id(excerpt: str, visual_type: str, source_file: str) -> str:
    return "row-" + compute_content_hash(f"{excerpt}:{visual_type}:{source_file}")[:10]


def plan_generate(
    project: str,
    source: str,
    adapter: ExcalidrawAdapter | None = None,
) -> CapabilityResult:
    paths = resolve_project_paths(project)
    source_path = resolve_source_path(paths, source)
    source_file = relative_source(paths, source_path)
    source_text = read_markdown_file(source_path)
    passages = split_into_passages(source_text)
    essay_hash = compute_content_hash(source_text)

    warnings: list[str] = []
    if not paths.rules_file.is_file():
        warnings.append(
            f"Visual trigger ruleset not found at {paths.rules_file}; heuristic fallback was used."
        )
    elif not read_markdown_file(paths.rules_file).strip():
        warnings.append("Visual trigger ruleset file is empty; heuristic fallback was used.")

    # Already persisted by diagram_create; reported but not appended again.
    diagram_warnings: list[str] = []
    rows: list[PlanRow] = []
    with project_lock(paths):
        for passage in passages:
            classification = classify_passage(passage.text)
            if classification.visual_type is None:
                continue

            excerpt = build_excerpt(passage.text)
            diagram_filename = None
            if classification.visual_type == DIAGRAM:
                created = diagram_create(
                    project,
                    source,
                    excerpt,
                    intent="Auto-generated during plan generation.",
                    adapter=adapter,
                )
                if not created.ok or not created.data:
                    raise RuntimeError("; ".join(created.errors or []) or created.message)
                diagram_filename = created.data["filename"]
                if not created.data.get("reused"):
                    diagram_warnings.extend(created.warnings or [])

            rows.append(PlanRow(
                id=_row_id(excerpt, classification.visual_type, source_file),
                excerpt=excerpt,
                visual_type=classification.visual_type,
                notes_artifacts=build_notes(
                    classification.visual_type,
                    passage.text,
                    excerpt,
                    diagram_filename=diagram_filename,
                    emphasis_pattern=classification.emphasis_pattern,
                ),
                context=build_context_label(passage.index, len(passages), classification.visual_type),
                source_file=source_file,
            ))

        warnings.extend(emphasis_density_warnings(rows))

        # Reload after diagram_create so its records are kept.
        state = load_plan_state(paths, source_file, essay_hash)
        state.project_path = str(paths.project_root)
        state.source_file = source_file
        state.essay_hash = essay_hash
        state.rows = rows
        append_warnings(state, warnings)

        write_visual_plan(paths, rows)
        write_diagram_links(paths, state)
        save_plan_state(paths, state)

    logger.info("Generated visual plan for %s: %d departure(s)", source_file, len(rows))
    return CapabilityResult(
        ok=True,
        message=f"Generated visual plan with {len(rows)} departures.",
        data={
            "visualPlanFile": str(paths.visual_plan_file),
            "rowCount": len(rows),
            "sourceFile": source_file,
        },
        warnings=warnings + diagram_warnings,
    )
