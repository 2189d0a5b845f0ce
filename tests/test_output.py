"""Tests for tool-result coercion."""

import json

import pytest

from press.bridge.errors import ResponseShapeError
from press.bridge.output import BridgeOperationResult, coerce_tool_result

SHAPE = {"content": "{\"type\": \"excalidraw\"}", "webUrl": "https://example.com/d", "warnings": ["w1"]}


class TestCoerceToolResult:
    def test_structured_content(self):
        result = coerce_tool_result({"structuredContent": SHAPE})
        assert result == BridgeOperationResult(
            content=SHAPE["content"], web_url="https://example.com/d", warnings=["w1"]
        )

    def test_direct_shape(self):
        result = coerce_tool_result({"content": "scene"})
        assert result.content == "scene"
        assert result.web_url is None
        assert result.warnings == []

    def test_text_array_with_json(self):
        raw = {"content": [{"type": "text", "text": json.dumps(SHAPE)}]}
        result = coerce_tool_result(raw)
        assert result.content == SHAPE["content"]
        assert result.web_url == "https://example.com/d"

    def test_first_text_entry_is_used(self):
        raw = {"content": [
            {"type": "image", "data": "..."},
            {"type": "text", "text": json.dumps({"content": "first"})},
            {"type": "text", "text": json.dumps({"content": "second"})},
        ]}
        assert coerce_tool_result(raw).content == "first"

    def test_plain_text_accepted_verbatim(self):
        raw = {"content": [{"type": "text", "text": "<svg>not json</svg>"}]}
        assert coerce_tool_result(raw).content == "<svg>not json</svg>"

    def test_structured_content_preferred(self):
        raw = {"structuredContent": {"content": "structured"}, "content": [{"type": "text", "text": "x"}]}
        assert coerce_tool_result(raw).content == "structured"

    @pytest.mark.parametrize("raw", [
        None,
        "a string",
        {},
        {"content": []},
        {"content": [{"type": "text", "text": json.dumps({"elements": []})}]},
        {"structuredContent": {"content": 42}},
    ])
    def test_unusable_shapes(self, raw):
        with pytest.raises(ResponseShapeError):
            coerce_tool_result(raw)

    def test_is_error_result(self):
        raw = {"isError": True, "content": [{"type": "text", "text": "tool blew up"}]}
        with pytest.raises(ResponseShapeError, match="tool blew up"):
            coerce_tool_result(raw)

    def test_non_string_warnings_dropped(self):
        result = coerce_tool_result({"content": "x", "warnings": ["ok", 3, None]})
        assert result.warnings == ["ok"]


class TestToDict:
    def test_omits_missing_web_url(self):
        assert BridgeOperationResult(content="c").to_dict() == {"content": "c", "warnings": []}

    def test_includes_web_url(self):
        data = BridgeOperationResult(content="c", web_url="u", warnings=["w"]).to_dict()
        assert data == {"content": "c", "webUrl": "u", "warnings": ["w"]}
