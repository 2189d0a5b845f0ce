"""CLI: press diagram and visual-plan commands.

Every subcommand prints a JSON result envelope ``{ok, message, data?, warnings?, errors?}``
and exits 1 when ``ok`` is false.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from press import config
from press.bridge.operations import check_server
from press.capabilities.diagram_create import diagram_create
from press.capabilities.diagram_refine import diagram_refine
from press.capabilities.plan_generate import plan_generate
from press.capabilities.plan_validate import plan_validate
from press.capabilities.result import CapabilityResult, run_capability

logger = logging.getLogger(__name__)


def connect(excalidraw_mcp_command: str, local_config_path: Path | None = None) -> CapabilityResult:
    """Store the MCP server command in the local settings file and check it."""
    command = excalidraw_mcp_command.strip()
    if not command:
        raise ValueError("--excalidraw-mcp-command must be non-empty.")

    settings = config.read_local_config(local_config_path)
    settings.update({
        "excalidrawMcpCommand": command,
        "channel": "stable",
        "lastServiceConnectAt": datetime.now(timezone.utc).isoformat(),
    })
    written = config.write_local_config(settings, local_config_path)
    logger.info("Saved excalidrawMcpCommand to %s", written)

    bridge_config = dataclasses.replace(config.load_bridge_config(local_config_path), server_command=command)
    try:
        check = check_server(bridge_config)
    except Exception as e:
        logger.warning("Excalidraw MCP check failed: %s", e)
        return CapabilityResult(
            ok=False,
            message="Saved the Excalidraw MCP command, but the server check failed.",
            data={"status": "NOT READY", "localConfig": str(written)},
            errors=[str(e)],
        )
    return CapabilityResult(
        ok=True,
        message=f"Excalidraw MCP is ready ({check['toolCount']} tools).",
        data={"status": "READY", "localConfig": str(written), **check},
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="press", description="Diagram and visual-plan tooling for essays")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("diagram-create", help="Create (or reuse) a diagram for an excerpt")
    p.add_argument("--project", required=True, help="Project root, e.g. <vault>/Essays/<slug>")
    p.add_argument("--source", required=True, help="Markdown source file, relative to the project")
    p.add_argument("--excerpt", required=True, help='Excerpt, e.g. "first words...last words"')
    p.add_argument("--intent", default=None, help="What the diagram should show")

    p = sub.add_parser("diagram-refine", help="Refine an existing diagram")
    p.add_argument("--project", required=True)
    p.add_argument("--diagram", required=True, help="Diagram id or filename, e.g. diagram-02")
    p.add_argument("--instruction", required=True)

    p = sub.add_parser("plan-generate", help="Generate visual-plan.md from a markdown source")
    p.add_argument("--project", required=True)
    p.add_argument("--source", required=True)

    p = sub.add_parser("plan-validate", help="Validate visual-plan.md, diagram files, and state")
    p.add_argument("--project", required=True)

    p = sub.add_parser("connect", help="Configure and check the Excalidraw MCP server command")
    p.add_argument("--excalidraw-mcp-command", required=True)
    p.add_argument(
        "--local-config",
        type=Path,
        default=None,
        help=f"Local settings file (default: {config.LOCAL_CONFIG_PATH})",
    )

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default=config.HOST)
    p.add_argument("--port", type=int, default=config.PORT)

    return parser


def main(argv: list[str] | None = None) -> int:
    config.configure_logging(stream=sys.stderr)
    args = _build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("press.api.server:app", host=args.host, port=args.port)
        return 0

    if args.command == "diagram-create":
        result = run_capability(
            diagram_create,
            project=args.project,
            source=args.source,
            excerpt=args.excerpt,
            intent=args.intent,
        )
    elif args.command == "diagram-refine":
        result = run_capability(
            diagram_refine,
            project=args.project,
            diagram=args.diagram,
            instruction=args.instruction,
        )
    elif args.command == "plan-generate":
        result = run_capability(plan_generate, project=args.project, source=args.source)
    elif args.command == "plan-validate":
        result = run_capability(plan_validate, project=args.project)
    else:
        result = run_capability(
            connect,
            excalidraw_mcp_command=args.excalidraw_mcp_command,
            local_config_path=args.local_config,
        )

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
