"""Normalize tool-call results into one diagram operation result."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from press.bridge.errors import ResponseShapeError


@dataclass
class BridgeOperationResult:
    """Output of a create/refine operation, whichever backend produced it."""

    content: str
    web_url: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"content": self.content}
        if self.web_url:
            data["webUrl"] = self.web_url
        data["warnings"] = list(self.warnings)
        return data

    @classmethod
    def from_shape(cls, data: Any) -> BridgeOperationResult | None:
        """Build from a ``{content, webUrl?, warnings?}`` object, or None if it isn't one."""
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            return None
        web_url = data.get("webUrl")
        warnings = data.get("warnings")
        return cls(
            content=data["content"],
            web_url=web_url if isinstance(web_url, str) else None,
            warnings=[w for w in warnings if isinstance(w, str)] if isinstance(warnings, list) else [],
        )


def _first_text_entry(content: Any) -> str | None:
    if not isinstance(content, list):
        return None
    for entry in content:
        if isinstance(entry, dict) and isinstance(entry.get("text"), str):
            return entry["text"]
    return None


def coerce_tool_result(raw: Any) -> BridgeOperationResult:
    """Interpret a ``tools/call`` result.

    Accepted encodings, in order:
      1. ``{"structuredContent": {content, webUrl?, warnings?}}``
      2. ``{content: "<string>", webUrl?, warnings?}``
      3. ``{"content": [{"type": "text", "text": "<json>"}, ...]}`` where the first
         text entry is JSON holding the shape above; a first text entry that is
         not JSON at all is taken verbatim as the content.

    Raises ResponseShapeError when none of these yield string content, or when
    the server flagged the result with ``isError``.
    """
    obj = raw if isinstance(raw, dict) else {}

    if obj.get("isError"):
        detail = _first_text_entry(obj.get("content")) or "no details"
        raise ResponseShapeError(f"MCP tool reported an error: {detail}")

    structured = BridgeOperationResult.from_shape(obj.get("structuredContent"))
    if structured is not None:
        return structured

    direct = BridgeOperationResult.from_shape(obj)
    if direct is not None:
        return direct

    text = _first_text_entry(obj.get("content"))
    if text is not None:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return BridgeOperationResult(content=text)
        nested = BridgeOperationResult.from_shape(parsed)
        if nested is not None:
            return nested

    raise ResponseShapeError("MCP tool response did not include diagram content.")
