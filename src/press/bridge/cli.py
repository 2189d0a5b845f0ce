"""CLI: first-party bridge to an Excalidraw MCP server.

    press-excalidraw-bridge <create|refine> '<json-payload>'
    press-excalidraw-bridge --check

Prints a JSON object on stdout and exits non-zero on failure; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from press import config
from press.bridge.operations import check_server, run_operation

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="press-excalidraw-bridge",
        description="Run diagram operations against an Excalidraw MCP server over stdio",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Initialize, list tools, and print {ok, toolCount, tools}",
    )
    parser.add_argument("operation", nargs="?", choices=["create", "refine"], help="Operation to run")
    parser.add_argument("payload", nargs="?", help="JSON object passed as the tool arguments")
    return parser


def main(argv: list[str] | None = None) -> int:
    config.configure_logging(stream=sys.stderr)
    parser = _build_parser()
    args = parser.parse_args(argv)
    bridge_config = config.load_bridge_config()

    try:
        if args.check:
            output = check_server(bridge_config)
        else:
            if not args.operation:
                parser.error("an operation (create or refine) or --check is required")
            if not args.payload:
                raise ValueError("Missing JSON payload argument.")
            payload = json.loads(args.payload)
            if not isinstance(payload, dict):
                raise ValueError("JSON payload must be an object.")
            output = run_operation(bridge_config, args.operation, payload).to_dict()
    except Exception as e:
        logger.debug("Bridge failure", exc_info=True)
        print(str(e), file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
