"""Tests for heuristic tool-name resolution."""

import pytest

from press.bridge.errors import ToolResolutionError
from press.bridge.resolver import (
    MIN_SCORE,
    HeuristicToolResolver,
    ToolResolver,
    resolve_tool_name,
    score_tool_name,
)
from press.bridge.session import McpTool


def _tools(*names):
    return [McpTool(name=n) for n in names]


class TestScoring:
    @pytest.mark.parametrize("name,operation,expected", [
        ("create_excalidraw_diagram", "create", 11),
        ("generate_diagram", "create", 11),
        ("create_file", "create", 10),
        ("excalidraw_export", "create", 1),
        ("refine_excalidraw_diagram", "refine", 11),
        ("Update-Diagram", "refine", 11),
        ("edit_scene", "refine", 10),
        ("ping", "refine", 0),
    ])
    def test_scores(self, name, operation, expected):
        assert score_tool_name(name, operation) == expected

    def test_unknown_operation(self):
        with pytest.raises(ValueError):
            score_tool_name("create_diagram", "delete")


class TestResolve:
    def test_diagram_tools(self):
        tools = _tools("create_excalidraw_diagram", "refine_excalidraw_diagram")
        assert resolve_tool_name(tools, "create") == "create_excalidraw_diagram"
        assert resolve_tool_name(tools, "refine") == "refine_excalidraw_diagram"

    @pytest.mark.parametrize("operation", ["create", "refine"])
    def test_unrelated_tools_fail_explicitly(self, operation):
        with pytest.raises(ToolResolutionError, match=f"Could not infer an Excalidraw {operation} tool"):
            resolve_tool_name(_tools("ping", "list_files"), operation)

    def test_verb_without_diagram_signal_is_not_enough(self):
        with pytest.raises(ToolResolutionError):
            resolve_tool_name(_tools("create_file", "excalidraw_export"), "create")

    def test_empty_tool_list_fails(self):
        with pytest.raises(ToolResolutionError):
            resolve_tool_name([], "create")

    def test_ties_go_to_first_seen(self):
        tools = _tools("generate_diagram", "create_excalidraw_scene")
        assert resolve_tool_name(tools, "create") == "generate_diagram"

    def test_override_wins_without_validation(self):
        assert resolve_tool_name(_tools("ping"), "create", override="custom_tool") == "custom_tool"

    def test_custom_threshold(self):
        resolver = HeuristicToolResolver(min_score=10)
        assert resolver.resolve(_tools("create_file"), "create") == "create_file"
        assert MIN_SCORE == 11

    def test_heuristic_satisfies_protocol(self):
        assert isinstance(HeuristicToolResolver(), ToolResolver)
