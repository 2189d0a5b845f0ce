"""JSON-RPC 2.0 client that correlates responses to requests by id."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from press.bridge.errors import BridgeError, BridgeProcessError, RpcError, RpcTimeoutError
from press.bridge.framing import Transport

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


class RpcClient:
    """Issues requests and notifications over a Transport.

    Every request gets the next id (starting at 1) and a single-shot Future kept
    in a lock-guarded pending table. Responses settle the Future whose id they
    carry, in whatever order they arrive. When the transport exits or hits a
    protocol error, every pending Future is rejected and the table is cleared.
    """

    def __init__(self, transport: Transport, timeout: float | None = 30.0) -> None:
        self._transport = transport
        self._timeout = timeout
        self._next_id = 1
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()
        self._closed_error: BridgeError | None = None

        transport.on_message(self._handle_message)
        transport.on_exit(self._handle_exit)
        transport.on_error(self._handle_error)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, method: str, params: dict | None = None) -> Future:
        """Send a request and return a Future for its result."""
        _, future = self._submit(method, params)
        return future

    def _submit(self, method: str, params: dict | None) -> tuple[int | None, Future]:
        future: Future = Future()
        with self._lock:
            if self._closed_error is not None:
                future.set_exception(self._closed_error)
                return None, future
            request_id = self._next_id
            self._next_id += 1
            self._pending[request_id] = future

        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "method": method,
            "params": params if params is not None else {},
        }
        logger.debug("-> request id=%d %s", request_id, method)
        try:
            self._transport.send(payload)
        except BridgeError as e:
            self._settle(request_id, error=e)
        return request_id, future

    def request(
        self,
        method: str,
        params: dict | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and block until its response, failure, or timeout.

        Raises RpcError for an error response, BridgeProcessError if the server
        exits first, and RpcTimeoutError if nothing arrives in time.
        """
        request_id, future = self._submit(method, params)
        wait = self._timeout if timeout is None else timeout
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError:
            with self._lock:
                owned = self._pending.pop(request_id, None) is future
            if not owned:
                # A response or exit claimed it first and is settling it now.
                return future.result()
            error = RpcTimeoutError(f"MCP request {method!r} timed out after {wait:.1f}s.")
            future.set_exception(error)
            raise error from None

    def notify(self, method: str, params: dict | None = None) -> None:
        """Send a notification. No id, no response expected."""
        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "params": params if params is not None else {},
        }
        logger.debug("-> notify %s", method)
        self._transport.send(payload)

    # ── transport callbacks ──

    def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.debug("Ignoring non-object message: %r", message)
            return
        request_id = message.get("id")
        if "method" in message or not isinstance(request_id, int) or isinstance(request_id, bool):
            logger.debug("Ignoring message without a response id: %s", message.get("method"))
            return

        error = message.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            self._settle(
                request_id,
                error=RpcError(
                    error.get("code", -32603),
                    error.get("message", "Unknown error"),
                    error.get("data"),
                ),
            )
        else:
            self._settle(request_id, result=message.get("result"))

    def _handle_exit(self, exit_code: int | None) -> None:
        self._reject_all(BridgeProcessError.from_exit(exit_code))

    def _handle_error(self, error: Exception) -> None:
        if not isinstance(error, BridgeError):
            error = BridgeError(str(error))
        self._reject_all(error)

    def _settle(self, request_id: int, result: Any = None, error: BaseException | None = None) -> None:
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None:
            logger.debug("Ignoring response for unknown id=%d", request_id)
            return
        logger.debug("<- response id=%d%s", request_id, " (error)" if error else "")
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _reject_all(self, error: BridgeError) -> None:
        with self._lock:
            if self._closed_error is None:
                self._closed_error = error
            pending = list(self._pending.values())
            self._pending.clear()
        if pending:
            logger.warning("Rejecting %d pending MCP request(s): %s", len(pending), error)
        for future in pending:
            future.set_exception(error)
