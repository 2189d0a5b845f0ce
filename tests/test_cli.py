"""Tests for the ``press`` command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from press import cli, config
from tests.helpers import LOOP_EXCERPT, mock_server_command


@pytest.fixture(autouse=True)
def no_bridge(monkeypatch):
    """Keep capability runs on the local fallback regardless of the caller's environment."""
    monkeypatch.setattr(config, "EXCALIDRAW_EXEC", "")
    monkeypatch.setattr(config, "EXCALIDRAW_MCP_SERVER_CMD", "")
    monkeypatch.setattr(config, "LOCAL_CONFIG_PATH", Path("/nonexistent/.press-local.json"))


def _run(capsys, *argv):
    code = cli.main(list(argv))
    return code, json.loads(capsys.readouterr().out)


class TestCommands:
    def test_diagram_create_and_refine(self, capsys, project):
        code, out = _run(capsys, "diagram-create", "--project", str(project), "--source", "essay.md",
                         "--excerpt", LOOP_EXCERPT)
        assert code == 0
        assert out["data"]["filename"] == "diagram-01.excalidraw"

        code, out = _run(capsys, "diagram-refine", "--project", str(project), "--diagram", "diagram-01",
                         "--instruction", "bolder")
        assert code == 0
        assert out["data"]["revisions"] == 1

    def test_refine_missing_exits_1(self, capsys, project):
        code, out = _run(capsys, "diagram-refine", "--project", str(project), "--diagram", "diagram-03",
                         "--instruction", "x")
        assert code == 1
        assert out["ok"] is False

    def test_invalid_project_reports_error(self, capsys, tmp_path):
        code, out = _run(capsys, "plan-validate", "--project", str(tmp_path))
        assert code == 1
        assert out["message"] == "Command failed."
        assert "Project path" in out["errors"][0]

    def test_plan_generate_then_validate(self, capsys, project):
        code, _ = _run(capsys, "plan-generate", "--project", str(project), "--source", "essay.md")
        assert code == 0
        code, out = _run(capsys, "plan-validate", "--project", str(project))
        assert code == 0
        assert out["message"] == "Validation passed."


class TestConnect:
    def test_connect_ready(self, capsys, tmp_path):
        local = tmp_path / ".press-local.json"
        local.write_text(json.dumps({"other": 1}), encoding="utf-8")
        code, out = _run(capsys, "connect", "--excalidraw-mcp-command", mock_server_command(),
                         "--local-config", str(local))
        assert code == 0
        assert out["data"]["status"] == "READY"
        assert out["data"]["toolCount"] == 2

        saved = json.loads(local.read_text(encoding="utf-8"))
        assert saved["other"] == 1
        assert saved["channel"] == "stable"
        assert saved["excalidrawMcpCommand"] == mock_server_command()
        assert saved["lastServiceConnectAt"]

    def test_connect_not_ready(self, capsys, tmp_path):
        local = tmp_path / ".press-local.json"
        command = mock_server_command("--exit-on", "initialize", "--exit-code", "3")
        code, out = _run(capsys, "connect", "--excalidraw-mcp-command", command, "--local-config", str(local))
        assert code == 1
        assert out["data"]["status"] == "NOT READY"
        assert "code 3" in out["errors"][0]
        assert json.loads(local.read_text(encoding="utf-8"))["excalidrawMcpCommand"] == command
