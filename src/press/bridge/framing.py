"""Content-Length framed JSON messages over a child process's stdio.

Each frame is ``Content-Length: <n>\\r\\n\\r\\n`` followed by exactly ``n`` bytes
of UTF-8 JSON, with nothing after the body. The same framing is used in both
directions.
"""

from __future__ import annotations

import json
import logging
import queue
import re
import subprocess
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any, Protocol

from press.bridge.errors import BridgeProcessError, FrameError

logger = logging.getLogger(__name__)

HEADER_SEPARATOR = b"\r\n\r\n"
_CONTENT_LENGTH_RE = re.compile(r"^content-length[ \t]*:[ \t]*(\d+)[ \t]*\r?$", re.IGNORECASE | re.MULTILINE)
_READ_SIZE = 65536
_END_OF_INPUT = object()

MessageHandler = Callable[[Any], None]
ExitHandler = Callable[["int | None"], None]
ErrorHandler = Callable[[Exception], None]


def encode_frame(message: Any) -> bytes:
    """Serialize a message to JSON and prefix it with its byte length."""
    body = json.dumps(message, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


class FrameDecoder:
    """Incremental decoder for a stream of Content-Length frames.

    Bytes may arrive in arbitrary chunks: one chunk can hold several frames and
    one frame can span several chunks. Decoded messages come out in stream order.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes received but not yet decoded."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[Any]:
        """Append a chunk and return an iterator over every complete message.

        Raises FrameError (while iterating) on a header block without
        Content-Length or a body that is not valid UTF-8 JSON.
        """
        self._buffer.extend(chunk)
        return self._frames()

    def _frames(self) -> Iterator[Any]:
        while True:
            separator = self._buffer.find(HEADER_SEPARATOR)
            if separator == -1:
                return

            header = bytes(self._buffer[:separator]).decode("ascii", errors="replace")
            match = _CONTENT_LENGTH_RE.search(header)
            if not match:
                raise FrameError("Received MCP message without Content-Length header.")

            body_start = separator + len(HEADER_SEPARATOR)
            body_end = body_start + int(match.group(1))
            if len(self._buffer) < body_end:
                return

            body = bytes(self._buffer[body_start:body_end])
            del self._buffer[:body_end]

            try:
                yield json.loads(body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise FrameError(f"Received unparsable MCP message body: {e}") from e


class Transport(Protocol):
    """A bidirectional message channel the RPC client can drive."""

    def send(self, message: Any) -> None: ...

    def on_message(self, handler: MessageHandler) -> None: ...

    def on_exit(self, handler: ExitHandler) -> None: ...

    def on_error(self, handler: ErrorHandler) -> None: ...

    def close(self) -> None: ...


class StdioFrameTransport:
    """Frame transport over the stdin/stdout pipes of a child process.

    Outgoing frames are queued and written by a writer thread, so ``send`` never
    blocks on a server that has stopped reading. A reader thread decodes stdout
    and calls message handlers in arrival order. When stdout reaches EOF the
    process is reaped and exit handlers fire exactly once with its return code
    (negative for a signal). A framing error calls the error handlers and kills
    the process. Stderr is drained and logged only.
    """

    def __init__(self, process: subprocess.Popen) -> None:
        self._process = process
        self._decoder = FrameDecoder()
        self._message_handlers: list[MessageHandler] = []
        self._exit_handlers: list[ExitHandler] = []
        self._error_handlers: list[ErrorHandler] = []
        self._outgoing: queue.Queue = queue.Queue()
        self._input_closed = threading.Event()
        self._exit_lock = threading.Lock()
        self._exited = False
        self._writer: threading.Thread | None = None
        self._reader: threading.Thread | None = None
        self._stderr_reader: threading.Thread | None = None

    @classmethod
    def spawn(
        cls,
        command: str | Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> StdioFrameTransport:
        """Start a server process. A string command runs through the shell."""
        try:
            process = subprocess.Popen(
                command,
                shell=isinstance(command, str),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None,
                cwd=cwd,
            )
        except OSError as e:
            raise BridgeProcessError(f"Failed to start MCP server {command!r}: {e}") from e
        logger.debug("Spawned MCP server pid=%d: %s", process.pid, command)
        return cls(process)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.poll()

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handlers.append(handler)

    def on_exit(self, handler: ExitHandler) -> None:
        self._exit_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    def start(self) -> None:
        """Start the I/O threads. Register handlers before calling this."""
        if self._reader is not None:
            return
        self._writer = threading.Thread(
            target=self._write_stdin, name=f"mcp-stdin-{self.pid}", daemon=True,
        )
        self._reader = threading.Thread(
            target=self._read_stdout, name=f"mcp-stdout-{self.pid}", daemon=True,
        )
        self._stderr_reader = threading.Thread(
            target=self._drain_stderr, name=f"mcp-stderr-{self.pid}", daemon=True,
        )
        self._writer.start()
        self._reader.start()
        self._stderr_reader.start()

    def send(self, message: Any) -> None:
        """Queue a message for the writer thread. Returns without waiting for the write."""
        if self._input_closed.is_set():
            raise BridgeProcessError(
                "MCP server is not accepting input.",
                exit_code=self._process.poll(),
            )
        self._outgoing.put(encode_frame(message))

    def finish_input(self) -> None:
        """Close the server's stdin once every queued frame has been written."""
        self._outgoing.put(_END_OF_INPUT)

    def close(self, timeout: float = 5.0) -> None:
        """Terminate the process and wait for the I/O threads to finish.

        Never waits on a pending write: terminating the process breaks a write
        that is blocked on a full pipe.
        """
        process = self._process
        self._input_closed.set()
        self._outgoing.put(_END_OF_INPUT)
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning("MCP server pid=%d ignored terminate; killing", process.pid)
                process.kill()
                process.wait()

        if self._writer is None:
            self._close_stdin()
        else:
            self._writer.join(timeout=timeout)
            if self._writer.is_alive():
                logger.warning("MCP stdin writer for pid=%d did not stop", process.pid)
        if self._reader is None:
            self._fire_exit(process.wait())
        else:
            self._reader.join(timeout=timeout)
        if self._stderr_reader is not None:
            self._stderr_reader.join(timeout=timeout)

        for stream in (process.stdout, process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass

    # ── I/O threads ──

    def _write_stdin(self) -> None:
        stdin = self._process.stdin
        try:
            while True:
                frame = self._outgoing.get()
                if frame is _END_OF_INPUT:
                    break
                stdin.write(frame)
                stdin.flush()
        except (OSError, ValueError) as e:
            # Pending requests still time out or fail when stdout reaches EOF.
            if not self._input_closed.is_set():
                logger.warning("MCP server pid=%d stopped accepting input: %s", self.pid, e)
        finally:
            self._input_closed.set()
            self._close_stdin()

    def _close_stdin(self) -> None:
        try:
            self._process.stdin.close()
        except (OSError, ValueError):
            pass

    def _read_stdout(self) -> None:
        stdout = self._process.stdout
        try:
            while True:
                chunk = stdout.read1(_READ_SIZE)
                if not chunk:
                    break
                for message in self._decoder.feed(chunk):
                    self._dispatch(message)
        except FrameError as e:
            logger.error("MCP protocol error from pid=%d: %s", self.pid, e)
            self._fire_error(e)
            if self._process.poll() is None:
                self._process.kill()
        except (OSError, ValueError) as e:
            logger.debug("MCP stdout closed for pid=%d: %s", self.pid, e)
        finally:
            self._fire_exit(self._process.wait())

    def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        try:
            for line in iter(stderr.readline, b""):
                logger.debug("[mcp stderr] %s", line.decode("utf-8", errors="replace").rstrip())
        except (OSError, ValueError):
            return

    def _dispatch(self, message: Any) -> None:
        for handler in self._message_handlers:
            try:
                handler(message)
            except Exception:
                logger.exception("MCP message handler failed")

    def _fire_error(self, error: Exception) -> None:
        for handler in self._error_handlers:
            try:
                handler(error)
            except Exception:
                logger.exception("MCP error handler failed")

    def _fire_exit(self, exit_code: int | None) -> None:
        with self._exit_lock:
            if self._exited:
                return
            self._exited = True
        logger.debug("MCP server pid=%d exited with %s", self.pid, exit_code)
        for handler in self._exit_handlers:
            try:
                handler(exit_code)
            except Exception:
                logger.exception("MCP exit handler failed")
