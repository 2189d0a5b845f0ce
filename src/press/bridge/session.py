"""One MCP server process: spawn, handshake, discover tools, call, close."""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from press.bridge.errors import BridgeError, SessionStateError
from press.bridge.framing import StdioFrameTransport, Transport
from press.bridge.rpc import RpcClient

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "press", "version": "0.1.0"}


@dataclass
class McpTool:
    """A capability advertised by the server's tools/list."""

    name: str
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> McpTool | None:
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            return None
        description = data.get("description")
        return cls(name=data["name"], description=description if isinstance(description, str) else None)


class SessionState(enum.Enum):
    SPAWNED = "spawned"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class BridgeSession:
    """Single-use session with an MCP diagram server.

    Lifecycle is Spawned -> Initializing -> Ready -> Closed. Tools can only be
    listed or called once Ready. Closing kills the process; any request still
    waiting is rejected by the RPC client's exit handling.
    """

    def __init__(
        self,
        transport: Transport,
        request_timeout: float | None = 30.0,
        init_timeout: float | None = 30.0,
    ) -> None:
        self._transport = transport
        self._client = RpcClient(transport, timeout=request_timeout)
        self._init_timeout = init_timeout
        self._state = SessionState.SPAWNED
        self._state_lock = threading.Lock()
        self._tools: list[McpTool] | None = None
        self.server_info: dict = {}

    @classmethod
    def spawn(
        cls,
        command: str | Sequence[str],
        request_timeout: float | None = 30.0,
        init_timeout: float | None = 30.0,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> BridgeSession:
        """Start the server process and attach a session to it."""
        transport = StdioFrameTransport.spawn(command, env=env, cwd=cwd)
        session = cls(transport, request_timeout=request_timeout, init_timeout=init_timeout)
        transport.start()
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def client(self) -> RpcClient:
        return self._client

    def initialize(self) -> None:
        """Run the initialize handshake, then send notifications/initialized."""
        self._transition(SessionState.SPAWNED, SessionState.INITIALIZING)
        t0 = time.perf_counter()
        try:
            result = self._client.request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "clientInfo": dict(CLIENT_INFO),
                    "capabilities": {},
                },
                timeout=self._init_timeout,
            )
            self._client.notify("notifications/initialized", {})
        except BridgeError:
            self.close()
            raise
        if isinstance(result, dict) and isinstance(result.get("serverInfo"), dict):
            self.server_info = result["serverInfo"]
        self._transition(SessionState.INITIALIZING, SessionState.READY)
        logger.debug(
            "MCP session ready (%s, %.0fms)",
            self.server_info.get("name", "unknown server"),
            (time.perf_counter() - t0) * 1000,
        )

    def list_tools(self) -> list[McpTool]:
        """Return the advertised tools; empty if the server reports none."""
        self._require_ready("tools/list")
        result = self._client.request("tools/list", {})
        raw_tools = result.get("tools") if isinstance(result, dict) else None
        tools = []
        for entry in raw_tools or []:
            tool = McpTool.from_dict(entry)
            if tool is not None:
                tools.append(tool)
        self._tools = tools
        logger.debug("MCP server advertises %d tool(s): %s", len(tools), [t.name for t in tools])
        return tools

    def call_tool(self, name: str, arguments: dict) -> Any:
        """Invoke a tool and return its raw result."""
        self._require_ready("tools/call")
        logger.debug("Calling MCP tool %s", name)
        return self._client.request("tools/call", {"name": name, "arguments": arguments})

    def close(self) -> None:
        with self._state_lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED
        self._transport.close()

    def __enter__(self) -> BridgeSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _transition(self, expected: SessionState, target: SessionState) -> None:
        with self._state_lock:
            if self._state is not expected:
                raise SessionStateError(
                    f"Cannot move MCP session to {target.value} from {self._state.value}."
                )
            self._state = target

    def _require_ready(self, method: str) -> None:
        if self._state is not SessionState.READY:
            raise SessionStateError(f"{method} requires a ready session (state: {self._state.value}).")
