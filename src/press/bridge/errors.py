"""Exception types raised by the MCP bridge."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for every failure talking to the diagram server."""


class FrameError(BridgeError):
    """Raised when the byte stream cannot be decoded into frames.

    Fatal for the connection that produced it.
    """


class BridgeProcessError(BridgeError):
    """Raised when the server process cannot be started, exits, or stops accepting input."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code

    @classmethod
    def from_exit(cls, exit_code: int | None) -> BridgeProcessError:
        if exit_code is None:
            status = "code unknown"
        elif exit_code < 0:
            status = f"signal {-exit_code}"
        else:
            status = f"code {exit_code}"
        return cls(f"MCP server exited with {status}.", exit_code=exit_code)


class RpcError(BridgeError):
    """A JSON-RPC error response from the server."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"MCP error {code}: {message}")
        self.code = code
        self.data = data


class RpcTimeoutError(BridgeError):
    """Raised when a request gets no response before its deadline."""


class SessionStateError(BridgeError):
    """Raised when a session operation is attempted in the wrong state."""


class ToolResolutionError(BridgeError):
    """Raised when no advertised tool fits the requested operation."""


class ResponseShapeError(BridgeError):
    """Raised when a tool result carries no usable diagram content."""
