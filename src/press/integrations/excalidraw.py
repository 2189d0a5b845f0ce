"""Diagram adapter: the boundary capabilities call for create/refine.

Tiers are tried in order, each only if the previous one is unavailable or
failed:

  1. ExternalCommandTier -- an explicitly configured executable, run once per
     operation with ``<args...> <operation> <json-payload>``; stdout must be a
     JSON object with a string ``content``.
  2. McpBridgeTier -- the in-process MCP bridge session against the configured
     server command.
  3. LocalFallbackTier -- deterministic placeholder output; never fails.

Failures of the first two tiers become warnings on the returned result.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from press.bridge.errors import BridgeError
from press.bridge.operations import run_operation
from press.bridge.output import BridgeOperationResult
from press.bridge.resolver import HeuristicToolResolver, ToolResolver
from press.config import BridgeConfig

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "https://press.local"
SOURCE_SUMMARY_CHARS = 200


@dataclass
class CreateDiagramRequest:
    title: str
    excerpt: str
    source_text: str
    intent: str | None = None

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {
            "title": self.title,
            "excerpt": self.excerpt,
            "sourceText": self.source_text,
        }
        if self.intent:
            payload["intent"] = self.intent
        return payload


@dataclass
class RefineDiagramRequest:
    diagram_id: str
    existing_content: str
    instruction: str

    def to_payload(self) -> dict:
        return {
            "diagramId": self.diagram_id,
            "existingContent": self.existing_content,
            "instruction": self.instruction,
        }


class TierFailure(Exception):
    """A tier was available but could not produce usable content."""


class DiagramTier(Protocol):
    name: str

    def available(self) -> bool: ...

    def run(self, operation: str, payload: dict) -> BridgeOperationResult: ...


class ExternalCommandTier:
    name = "explicit-command"

    def __init__(self, executable: str | None, args: Sequence[str] = (), timeout: float = 120.0) -> None:
        self.executable = executable
        self.args = list(args)
        self.timeout = timeout

    def available(self) -> bool:
        return bool(self.executable)

    def run(self, operation: str, payload: dict) -> BridgeOperationResult:
        command = [self.executable, *self.args, operation, json.dumps(payload)]
        try:
            proc = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except OSError as e:
            raise TierFailure(f"command failed to start for {operation} ({e})") from e
        except subprocess.TimeoutExpired as e:
            raise TierFailure(f"command timed out after {self.timeout:.0f}s for {operation}") from e

        if proc.returncode != 0:
            logger.debug("External command stderr: %s", proc.stderr.strip())
            raise TierFailure(f"command failed for {operation} (exit code {proc.returncode})")

        try:
            parsed = json.loads(proc.stdout or "")
        except json.JSONDecodeError as e:
            raise TierFailure(f"command returned invalid JSON for {operation}") from e
        result = BridgeOperationResult.from_shape(parsed)
        if result is None or not result.content:
            raise TierFailure(f"command returned no diagram content for {operation}")
        return result


class McpBridgeTier:
    name = "first-party-bridge"

    def __init__(self, bridge_config: BridgeConfig, resolver: ToolResolver | None = None) -> None:
        self.bridge_config = bridge_config
        self.resolver = resolver or HeuristicToolResolver()

    def available(self) -> bool:
        return bool(self.bridge_config.server_command)

    def run(self, operation: str, payload: dict) -> BridgeOperationResult:
        try:
            result = run_operation(self.bridge_config, operation, payload, resolver=self.resolver)
        except BridgeError as e:
            raise TierFailure(f"MCP bridge failed for {operation} ({e})") from e
        if not result.content:
            raise TierFailure(f"MCP bridge returned empty content for {operation}")
        return result


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def empty_diagram_document(metadata: dict | None = None) -> dict:
    """A minimal valid Excalidraw scene, optionally tagged with press metadata."""
    document: dict[str, Any] = {
        "type": "excalidraw",
        "version": 2,
        "source": FALLBACK_SOURCE,
        "elements": [],
        "appState": {"viewBackgroundColor": "#ffffff", "gridSize": None},
        "files": {},
    }
    if metadata is not None:
        document["press"] = metadata
    return document


class LocalFallbackTier:
    name = "local-fallback"

    def available(self) -> bool:
        return True

    def run(self, operation: str, payload: dict) -> BridgeOperationResult:
        if operation == "create":
            return self.create(payload)
        return self.refine(payload)

    def create(self, payload: dict) -> BridgeOperationResult:
        document = empty_diagram_document({
            "createdAt": _timestamp(),
            "title": payload.get("title", ""),
            "excerpt": payload.get("excerpt", ""),
            "intent": payload.get("intent") or "",
            "sourceSummary": str(payload.get("sourceText", ""))[:SOURCE_SUMMARY_CHARS],
        })
        return BridgeOperationResult(
            content=json.dumps(document, indent=2),
            warnings=[
                "Excalidraw MCP was unavailable in this run; local .excalidraw file "
                "remains the source of truth."
            ],
        )

    def refine(self, payload: dict) -> BridgeOperationResult:
        try:
            base = json.loads(payload.get("existingContent") or "")
        except json.JSONDecodeError:
            base = None
        if not isinstance(base, dict):
            base = empty_diagram_document()

        press_meta = base.get("press") if isinstance(base.get("press"), dict) else {}
        merged = {
            **base,
            "press": {
                **press_meta,
                "lastRefineInstruction": payload.get("instruction", ""),
                "lastRefinedAt": _timestamp(),
                "fallbackRefine": True,
            },
        }
        return BridgeOperationResult(
            content=json.dumps(merged, indent=2) + "\n",
            warnings=[
                "Excalidraw MCP was unavailable in this refine run; local .excalidraw "
                "file remains the source of truth."
            ],
        )


class ExcalidrawAdapter:
    """Create/refine diagrams through the first tier that produces content."""

    def __init__(
        self,
        bridge_config: BridgeConfig | None = None,
        resolver: ToolResolver | None = None,
        tiers: Sequence[DiagramTier] | None = None,
    ) -> None:
        self.bridge_config = bridge_config or BridgeConfig()
        if tiers is None:
            tiers = [
                ExternalCommandTier(
                    self.bridge_config.exec_command,
                    self.bridge_config.exec_args,
                    timeout=self.bridge_config.exec_timeout,
                ),
                McpBridgeTier(self.bridge_config, resolver=resolver),
            ]
        self.tiers: list[DiagramTier] = list(tiers)
        self.fallback = LocalFallbackTier()

    def create_diagram(self, request: CreateDiagramRequest) -> BridgeOperationResult:
        return self._run("create", request.to_payload())

    def refine_diagram(self, request: RefineDiagramRequest) -> BridgeOperationResult:
        return self._run("refine", request.to_payload())

    def _run(self, operation: str, payload: dict) -> BridgeOperationResult:
        warnings: list[str] = []
        for tier in self.tiers:
            if not tier.available():
                continue
            try:
                result = tier.run(operation, payload)
            except TierFailure as e:
                logger.warning("Excalidraw %s tier failed: %s", tier.name, e)
                warnings.append(
                    f"Excalidraw {tier.name} {e}. Falling back to the next diagram backend."
                )
                continue
            logger.info("Excalidraw %s handled by %s tier", operation, tier.name)
            return BridgeOperationResult(
                content=result.content,
                web_url=result.web_url,
                warnings=warnings + result.warnings,
            )

        result = self.fallback.run(operation, payload)
        logger.info("Excalidraw %s handled by local fallback", operation)
        return BridgeOperationResult(content=result.content, warnings=warnings + result.warnings)
