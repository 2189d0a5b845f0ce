"""The envelope every capability returns, and a wrapper that always produces one."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CapabilityResult:
    ok: bool
    message: str
    data: dict[str, Any] | None = None
    warnings: list[str] | None = None
    errors: list[str] | None = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"ok": self.ok, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        if self.warnings is not None:
            out["warnings"] = list(self.warnings)
        if self.errors is not None:
            out["errors"] = list(self.errors)
        return out


def run_capability(fn: Callable[..., CapabilityResult], **kwargs: Any) -> CapabilityResult:
    """Call a capability, turning any exception into an ok=False envelope."""
    try:
        return fn(**kwargs)
    except Exception as e:
        logger.exception("Capability %s failed", getattr(fn, "__name__", fn))
        return CapabilityResult(ok=False, message="Command failed.", errors=[str(e)])
