"""Bridge operations: health check and one-shot create/refine over MCP."""

from __future__ import annotations

import logging
import time

from press.bridge.output import BridgeOperationResult, coerce_tool_result
from press.bridge.resolver import OPERATIONS, HeuristicToolResolver, ToolResolver
from press.bridge.session import BridgeSession
from press.config import BridgeConfig

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Excalidraw MCP command is not configured. Set PRESS_EXCALIDRAW_MCP_SERVER_CMD "
    "or configure excalidrawMcpCommand in .press-local.json."
)


def _require_server_command(bridge_config: BridgeConfig) -> str:
    if not bridge_config.server_command:
        raise RuntimeError(NOT_CONFIGURED_MESSAGE)
    return bridge_config.server_command


def _open_session(bridge_config: BridgeConfig) -> BridgeSession:
    return BridgeSession.spawn(
        _require_server_command(bridge_config),
        request_timeout=bridge_config.request_timeout,
        init_timeout=bridge_config.init_timeout,
    )


def check_server(bridge_config: BridgeConfig) -> dict:
    """Initialize against the configured server and list its tools.

    Returns ``{"ok": True, "toolCount": N, "tools": [name, ...]}``. Any failure
    propagates to the caller.
    """
    with _open_session(bridge_config) as session:
        session.initialize()
        tools = session.list_tools()
    return {"ok": True, "toolCount": len(tools), "tools": [t.name for t in tools]}


def run_operation(
    bridge_config: BridgeConfig,
    operation: str,
    payload: dict,
    resolver: ToolResolver | None = None,
) -> BridgeOperationResult:
    """Spawn a session, resolve the tool, call it once, and normalize the result."""
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation: {operation or '(missing)'}")
    resolver = resolver or HeuristicToolResolver()

    t0 = time.perf_counter()
    with _open_session(bridge_config) as session:
        session.initialize()
        tools = session.list_tools()
        tool_name = resolver.resolve(tools, operation, bridge_config.tool_override(operation))
        logger.info("MCP %s via tool %r", operation, tool_name)
        raw = session.call_tool(tool_name, payload)
    result = coerce_tool_result(raw)
    logger.debug("MCP %s complete: %d chars (%.2fs)", operation, len(result.content), time.perf_counter() - t0)
    return result
