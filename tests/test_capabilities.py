"""Tests for diagram create/refine and visual-plan generate/validate."""

from __future__ import annotations

import json

import pytest

from press.capabilities.diagram_create import diagram_create
from press.capabilities.diagram_refine import diagram_refine
from press.capabilities.plan_generate import (
    build_context_label,
    classify_passage,
    detect_emphasis_pattern,
    emphasis_density_warnings,
    plan_generate,
)
from press.capabilities.plan_validate import plan_validate
from press.capabilities.result import CapabilityResult, run_capability
from press.io.project_paths import ProjectPathError
from press.storage.state_store import PlanRow, load_plan_state
from tests.helpers import LOOP_EXCERPT


def _diagram_files(paths):
    return sorted(p.name for p in paths.artifacts_dir.glob("*.excalidraw"))


class TestDiagramCreate:
    def test_creates_file_and_record(self, project, paths, adapter):
        result = diagram_create(str(project), "essay.md", LOOP_EXCERPT, intent="loop", adapter=adapter)
        assert result.ok
        assert result.message == "Created diagram diagram-01.excalidraw."
        assert result.data["diagramId"] == "diagram-01"
        assert result.data["sourceFile"] == "essay.md"

        content = (paths.artifacts_dir / "diagram-01.excalidraw").read_text(encoding="utf-8")
        assert content.endswith("}\n")
        assert json.loads(content)["press"]["intent"] == "loop"

        state = load_plan_state(paths)
        [record] = state.diagrams
        assert record.linked_excerpt == LOOP_EXCERPT
        assert record.revisions == 0
        assert state.essay_hash
        assert "diagram-01.excalidraw" in paths.links_file.read_text(encoding="utf-8")

    def test_idempotent_for_same_excerpt(self, project, paths, adapter):
        first = diagram_create(str(project), "essay.md", '"a...b"', adapter=adapter)
        second = diagram_create(str(project), "essay.md", '"a...b"', adapter=adapter)
        assert first.data["filename"] == second.data["filename"] == "diagram-01.excalidraw"
        assert first.data["reused"] is False
        assert second.data["reused"] is True
        assert second.message.startswith("Reused existing diagram diagram-01.excalidraw")
        assert _diagram_files(paths) == ["diagram-01.excalidraw"]
        assert len(load_plan_state(paths).diagrams) == 1

    def test_sequential_allocation(self, project, adapter):
        names = [
            diagram_create(str(project), "essay.md", excerpt, adapter=adapter).data["filename"]
            for excerpt in ('"one"', '"two"', '"three"')
        ]
        assert names == ["diagram-01.excalidraw", "diagram-02.excalidraw", "diagram-03.excalidraw"]

    def test_recreates_when_file_deleted(self, project, paths, adapter):
        diagram_create(str(project), "essay.md", LOOP_EXCERPT, adapter=adapter)
        (paths.artifacts_dir / "diagram-01.excalidraw").unlink()
        again = diagram_create(str(project), "essay.md", LOOP_EXCERPT, adapter=adapter)
        assert again.data["reused"] is False
        assert again.data["filename"] == "diagram-02.excalidraw"

    def test_excerpt_mismatch_warns(self, project, adapter):
        result = diagram_create(str(project), "essay.md", '"nowhere in...the essay"', adapter=adapter)
        assert result.ok
        assert any("did not match source text exactly for essay.md" in w for w in result.warnings)

    def test_matching_excerpt_has_only_fallback_warning(self, project, adapter):
        result = diagram_create(str(project), "essay.md", LOOP_EXCERPT, adapter=adapter)
        assert len(result.warnings) == 1
        assert "unavailable" in result.warnings[0]

    def test_warnings_accumulate_in_state(self, project, paths, adapter):
        diagram_create(str(project), "essay.md", '"one"', adapter=adapter)
        diagram_create(str(project), "essay.md", '"two"', adapter=adapter)
        assert len(load_plan_state(paths).warnings) == 4

    def test_source_outside_project_rejected(self, project, vault, adapter):
        (vault / "outside.md").write_text("x", encoding="utf-8")
        with pytest.raises(ProjectPathError):
            diagram_create(str(project), "../../outside.md", '"x"', adapter=adapter)

    def test_uses_mcp_server(self, project, paths, mcp_config):
        from press.integrations.excalidraw import ExcalidrawAdapter

        result = diagram_create(str(project), "essay.md", LOOP_EXCERPT, adapter=ExcalidrawAdapter(mcp_config))
        assert result.warnings == []
        assert "mock-mcp" in (paths.artifacts_dir / "diagram-01.excalidraw").read_text(encoding="utf-8")
        assert load_plan_state(paths).diagrams[0].web_url == "https://example.com/mock-diagram"


class TestDiagramRefine:
    def test_revisions_increment(self, project, paths, adapter):
        diagram_create(str(project), "essay.md", LOOP_EXCERPT, adapter=adapter)

        first = diagram_refine(str(project), "diagram-01", "Add arrows", adapter=adapter)
        second = diagram_refine(str(project), "diagram-01.excalidraw", "Thicker lines", adapter=adapter)
        assert first.data == {"diagramId": "diagram-01", "filename": "diagram-01.excalidraw", "revisions": 1}
        assert second.data["revisions"] == 2

        [record] = load_plan_state(paths).diagrams
        assert record.id == "diagram-01"
        assert record.filename == "diagram-01.excalidraw"
        assert record.revisions == 2
        assert record.linked_excerpt == LOOP_EXCERPT

        doc = json.loads((paths.artifacts_dir / "diagram-01.excalidraw").read_text(encoding="utf-8"))
        assert doc["press"]["lastRefineInstruction"] == "Thicker lines"
        assert doc["press"]["title"] == "diagram-01"

    def test_missing_diagram(self, project, adapter):
        result = diagram_refine(str(project), "diagram-09", "x", adapter=adapter)
        assert not result.ok
        assert result.message == "Diagram not found: diagram-09.excalidraw"
        assert result.errors

    def test_adopts_untracked_file(self, project, paths, adapter):
        paths.artifacts_dir.mkdir(exist_ok=True)
        (paths.artifacts_dir / "diagram-05.excalidraw").write_text('{"type": "excalidraw"}', encoding="utf-8")
        result = diagram_refine(str(project), "diagram-05", "tidy", adapter=adapter)
        assert result.ok
        assert result.data["revisions"] == 1
        assert load_plan_state(paths).diagrams[0].id == "diagram-05"

    def test_untracked_file_outside_naming_is_rejected(self, project, paths, adapter):
        paths.artifacts_dir.mkdir(exist_ok=True)
        sketch = paths.artifacts_dir / "sketch.excalidraw"
        sketch.write_text('{"type": "excalidraw"}', encoding="utf-8")
        result = diagram_refine(str(project), "sketch", "tidy", adapter=adapter)
        assert not result.ok
        assert result.message == "Not a managed diagram: sketch.excalidraw"
        assert sketch.read_text(encoding="utf-8") == '{"type": "excalidraw"}'
        assert load_plan_state(paths).diagrams == []


class TestClassification:
    @pytest.mark.parametrize("text,expected", [
        ("Discipline is not punishment but a form of self-respect.", "Emphasis"),
        ("In the 2014 interview, Jocko Willink described waking early.", "B-Roll B (Specific)"),
        ("The system depends on a feedback loop that compounds for years and years and years.", "Diagram"),
        ("The film captured the atmosphere of a vanished era in quiet long takes and muted colour.", "B-Roll A (Atmospheric)"),
        ("We walked home after dinner and talked about nothing much at all that evening.", None),
    ])
    def test_classify(self, text, expected):
        assert classify_passage(text).visual_type == expected

    @pytest.mark.parametrize("text,pattern", [
        ("Therefore the work is the reward.", "Conclusion after a chain"),
        ("I argue that rest is work.", "Thesis declaration"),
        ("Stop waiting for permission!", "Provocation"),
        ("Consistency is character.", "Distillation"),
    ])
    def test_emphasis_patterns(self, text, pattern):
        assert detect_emphasis_pattern(text) == pattern

    def test_long_passages_are_never_emphasis(self):
        assert detect_emphasis_pattern(" ".join(["word"] * 29) + " is") is None

    def test_context_labels(self):
        assert build_context_label(0, 10, "Diagram") == "Opening hook"
        assert build_context_label(9, 10, "Diagram") == "Conclusion"
        assert build_context_label(5, 10, "Diagram") == "Core argument"
        assert build_context_label(5, 10, "Emphasis") == "Argument landing"

    def test_emphasis_density(self):
        def row(visual_type):
            return PlanRow("r", "e", visual_type, "n", "c", "essay.md")

        assert emphasis_density_warnings([row("Emphasis"), row("Diagram"), row("Emphasis"), row("Emphasis")]) == []
        assert len(emphasis_density_warnings([row("Emphasis")] * 3)) == 1


class TestPlanGenerateAndValidate:
    def test_generate_writes_plan_and_state(self, project, paths, adapter):
        result = plan_generate(str(project), "essay.md", adapter=adapter)
        assert result.ok
        assert result.data["rowCount"] == 5
        assert result.message == "Generated visual plan with 5 departures."

        state = load_plan_state(paths)
        assert [r.visual_type for r in state.rows] == [
            "Diagram", "Emphasis", "B-Roll A (Atmospheric)", "B-Roll B (Specific)", "Emphasis",
        ]
        assert len(state.diagrams) == 1
        assert "`diagram-01.excalidraw`" in state.rows[0].notes_artifacts
        plan = paths.visual_plan_file.read_text(encoding="utf-8")
        assert "| Excerpt | Visual Type | Notes & Artifacts | Context |" in plan

    def test_generate_twice_reuses_diagrams(self, project, paths, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        first_ids = [r.id for r in load_plan_state(paths).rows]
        plan_generate(str(project), "essay.md", adapter=adapter)
        assert [r.id for r in load_plan_state(paths).rows] == first_ids
        assert _diagram_files(paths) == ["diagram-01.excalidraw"]

    def test_rerunning_does_not_grow_saved_warnings(self, project, paths, adapter):
        counts = []
        for _ in range(3):
            result = plan_generate(str(project), "essay.md", adapter=adapter)
            counts.append(len(load_plan_state(paths).warnings))
        assert counts[0] >= 1
        assert counts == [counts[0]] * 3
        assert not any("unavailable" in w for w in result.warnings)

    def test_missing_ruleset_is_a_warning(self, project, vault, adapter):
        (vault / "_system" / "visual-trigger-ruleset.md").unlink()
        result = plan_generate(str(project), "essay.md", adapter=adapter)
        assert result.ok
        assert any("ruleset not found" in w for w in result.warnings)

    def test_validate_after_generate(self, project, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        result = plan_validate(str(project))
        assert result.ok, result.errors
        assert result.message == "Validation passed."

    def test_validate_warns_when_source_edited(self, project, paths, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        source = project / "essay.md"
        source.write_text(source.read_text(encoding="utf-8") + "\nA new closing line.\n", encoding="utf-8")
        result = plan_validate(str(project))
        assert result.ok
        assert any("essay.md was edited since the visual plan was generated" in w for w in result.warnings)
        assert any("plan-generate" in h for h in result.data["repairHints"])

    def test_validate_unedited_source_has_no_stale_warning(self, project, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        result = plan_validate(str(project))
        assert not any("was edited" in w for w in result.warnings)

    def test_validate_missing_plan(self, project):
        result = plan_validate(str(project))
        assert not result.ok
        assert result.data["repairHints"]

    def test_validate_reports_missing_diagram_file(self, project, paths, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        (paths.artifacts_dir / "diagram-01.excalidraw").unlink()
        result = plan_validate(str(project))
        assert not result.ok
        assert any("missing on disk" in e for e in result.errors)
        assert any("State references a missing diagram file" in e for e in result.errors)

    def test_validate_unknown_visual_type(self, project, paths, adapter):
        plan_generate(str(project), "essay.md", adapter=adapter)
        text = paths.visual_plan_file.read_text(encoding="utf-8").replace("| Emphasis |", "| Slideshow |", 1)
        paths.visual_plan_file.write_text(text, encoding="utf-8")
        result = plan_validate(str(project))
        assert "Unknown visual type in table row: Slideshow" in result.errors


class TestRunCapability:
    def test_exceptions_become_envelope(self):
        def boom():
            raise ValueError("bad input")

        result = run_capability(boom)
        assert result == CapabilityResult(ok=False, message="Command failed.", errors=["bad input"])

    def test_to_dict_omits_unset(self):
        assert CapabilityResult(ok=True, message="m").to_dict() == {"ok": True, "message": "m"}
