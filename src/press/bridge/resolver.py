"""Pick which advertised tool performs a diagram create or refine."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal, Protocol, runtime_checkable

from press.bridge.errors import ToolResolutionError
from press.bridge.session import McpTool

Operation = Literal["create", "refine"]

OPERATIONS: tuple[str, ...] = ("create", "refine")

_DIAGRAM_SIGNALS = ("diagram", "excalidraw")
_VERB_SIGNALS: dict[str, tuple[str, ...]] = {
    "create": ("create", "generate"),
    "refine": ("refine", "update", "edit"),
}

# A verb match is worth 10, a diagram match 1; 11 means both.
MIN_SCORE = 11


def score_tool_name(tool_name: str, operation: str) -> int:
    """Score how well a tool name fits an operation."""
    if operation not in _VERB_SIGNALS:
        raise ValueError(f"Unknown operation {operation!r}. Expected one of: {', '.join(OPERATIONS)}")
    normalized = tool_name.lower()
    diagram_signal = int(any(s in normalized for s in _DIAGRAM_SIGNALS))
    verb_signal = int(any(s in normalized for s in _VERB_SIGNALS[operation]))
    return verb_signal * 10 + diagram_signal


@runtime_checkable
class ToolResolver(Protocol):
    def resolve(
        self,
        tools: Sequence[McpTool],
        operation: str,
        override: str | None = None,
    ) -> str: ...


class HeuristicToolResolver:
    """Name-scoring resolver. An explicit override always wins unchecked."""

    def __init__(self, min_score: int = MIN_SCORE) -> None:
        self.min_score = min_score

    def resolve(
        self,
        tools: Sequence[McpTool],
        operation: str,
        override: str | None = None,
    ) -> str:
        if override:
            return override

        best_name: str | None = None
        best_score = -1
        for tool in tools:
            score = score_tool_name(tool.name, operation)
            # Strict comparison keeps the first-seen tool on ties.
            if score > best_score:
                best_name, best_score = tool.name, score

        if best_name is None or best_score < self.min_score:
            raise ToolResolutionError(
                f"Could not infer an Excalidraw {operation} tool from MCP server tools list."
            )
        return best_name


def resolve_tool_name(
    tools: Sequence[McpTool],
    operation: str,
    override: str | None = None,
) -> str:
    """Resolve with the default heuristic."""
    return HeuristicToolResolver().resolve(tools, operation, override)
