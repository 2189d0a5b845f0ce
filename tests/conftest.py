"""Shared fixtures: a throwaway vault project and diagram adapters."""

import pytest

from press.config import BridgeConfig
from press.integrations.excalidraw import ExcalidrawAdapter
from press.io.project_paths import resolve_project_paths
from tests.helpers import ESSAY, mock_server_command


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    (root / "_system").mkdir(parents=True)
    (root / "_system" / "visual-trigger-ruleset.md").write_text(
        "# Visual triggers\n\nDiagram when the passage describes a system.\n", encoding="utf-8"
    )
    return root


@pytest.fixture
def project(vault):
    """Project root at <vault>/Essays/discipline containing essay.md."""
    root = vault / "Essays" / "discipline"
    root.mkdir(parents=True)
    (root / "essay.md").write_text(ESSAY, encoding="utf-8")
    return root


@pytest.fixture
def paths(project):
    return resolve_project_paths(project)


@pytest.fixture
def adapter():
    """Adapter with no external command and no MCP server: always the local fallback."""
    return ExcalidrawAdapter(BridgeConfig())


@pytest.fixture
def mcp_config():
    """BridgeConfig pointing at the mock MCP server with short timeouts."""
    return BridgeConfig(server_command=mock_server_command(), request_timeout=10.0, init_timeout=10.0)
