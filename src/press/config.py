"""Configuration loaded from environment variables."""

from __future__ import annotations

import json
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _first_env(*names: str) -> str:
    for name in names:
        val = os.getenv(name, "").strip()
        if val:
            return val
    return ""


# Excalidraw integration
EXCALIDRAW_EXEC: str = os.getenv("PRESS_EXCALIDRAW_EXEC", "").strip()
EXCALIDRAW_ARGS: str = os.getenv("PRESS_EXCALIDRAW_ARGS", "")
EXCALIDRAW_MCP_SERVER_CMD: str = _first_env(
    "PRESS_EXCALIDRAW_MCP_SERVER_CMD", "EXCALIDRAW_MCP_SERVER_CMD"
)
EXCALIDRAW_CREATE_TOOL: str = os.getenv("PRESS_EXCALIDRAW_MCP_CREATE_TOOL", "").strip()
EXCALIDRAW_REFINE_TOOL: str = os.getenv("PRESS_EXCALIDRAW_MCP_REFINE_TOOL", "").strip()

# Timeouts (seconds)
RPC_TIMEOUT: float = float(os.getenv("PRESS_RPC_TIMEOUT", "30"))
INIT_TIMEOUT: float = float(os.getenv("PRESS_INIT_TIMEOUT", "30"))
EXEC_TIMEOUT: float = float(os.getenv("PRESS_EXEC_TIMEOUT", "120"))

# Paths
LOCAL_CONFIG_PATH: Path = Path(os.getenv("PRESS_LOCAL_CONFIG", "./.press-local.json"))

# Server
HOST: str = os.getenv("HOST", "127.0.0.1")
PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


@dataclass(frozen=True)
class BridgeConfig:
    """Everything the diagram adapter and MCP bridge need, resolved up front.

    Protocol code receives one of these instead of reading the environment, so
    tests can build exactly the configuration they want.
    """

    exec_command: str | None = None
    exec_args: tuple[str, ...] = ()
    server_command: str | None = None
    create_tool: str | None = None
    refine_tool: str | None = None
    request_timeout: float = 30.0
    init_timeout: float = 30.0
    exec_timeout: float = 120.0

    def tool_override(self, operation: str) -> str | None:
        """Return the explicit tool name configured for an operation, if any."""
        if operation == "create":
            return self.create_tool
        if operation == "refine":
            return self.refine_tool
        return None


def read_local_config(path: Path | None = None) -> dict:
    """Read the local settings JSON. Missing or unreadable files count as empty."""
    path = path or LOCAL_CONFIG_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable local config %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def write_local_config(data: dict, path: Path | None = None) -> Path:
    """Write the local settings JSON, returning the path written."""
    path = path or LOCAL_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def load_bridge_config(local_config_path: Path | None = None) -> BridgeConfig:
    """Compose environment settings and the local JSON file into a BridgeConfig.

    Server command precedence: PRESS_EXCALIDRAW_MCP_SERVER_CMD, then
    EXCALIDRAW_MCP_SERVER_CMD, then ``excalidrawMcpCommand`` in the local file.
    """
    server_command = EXCALIDRAW_MCP_SERVER_CMD
    if not server_command:
        local = read_local_config(local_config_path)
        value = local.get("excalidrawMcpCommand")
        if isinstance(value, str):
            server_command = value.strip()

    return BridgeConfig(
        exec_command=EXCALIDRAW_EXEC or None,
        exec_args=tuple(shlex.split(EXCALIDRAW_ARGS)),
        server_command=server_command or None,
        create_tool=EXCALIDRAW_CREATE_TOOL or None,
        refine_tool=EXCALIDRAW_REFINE_TOOL or None,
        request_timeout=RPC_TIMEOUT,
        init_timeout=INIT_TIMEOUT,
        exec_timeout=EXEC_TIMEOUT,
    )


def configure_logging(stream=None) -> None:
    """Configure root logging for an entry point."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=stream,
    )
