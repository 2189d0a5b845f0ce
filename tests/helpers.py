"""Shared test helpers: sample essay, mock server command, in-memory transport."""

import shlex
import sys
from pathlib import Path

MOCK_SERVER = Path(__file__).resolve().parent / "fixtures" / "mock_mcp_server.py"

ESSAY = """# Discipline

The feedback loop between habit and identity is a system that depends on small repeated actions over many months of practice.

Discipline is not punishment but a form of self-respect.

In the cinema of the era, the atmosphere of a film could carry a whole culture and its quiet aesthetic across decades.

In the 2014 interview, Jocko Willink described waking at four every morning for decades.

Therefore the work is the reward.
"""

LOOP_EXCERPT = '"The feedback loop between habit and...many months of practice."'


def mock_server_command(*flags: str) -> str:
    """Shell command that starts the mock MCP server with the given flags."""
    return " ".join(shlex.quote(part) for part in (sys.executable, str(MOCK_SERVER), *flags))


class FakeTransport:
    """In-memory Transport: records sent messages, lets tests inject replies and exits."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._message_handlers = []
        self._exit_handlers = []
        self._error_handlers = []

    def send(self, message):
        self.sent.append(message)

    def on_message(self, handler):
        self._message_handlers.append(handler)

    def on_exit(self, handler):
        self._exit_handlers.append(handler)

    def on_error(self, handler):
        self._error_handlers.append(handler)

    def close(self):
        self.closed = True

    def deliver(self, message):
        for handler in self._message_handlers:
            handler(message)

    def exit(self, code):
        for handler in self._exit_handlers:
            handler(code)

    def fail(self, error):
        for handler in self._error_handlers:
            handler(error)
