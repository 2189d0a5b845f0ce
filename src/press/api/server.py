"""FastAPI server exposing the diagram and visual-plan capabilities."""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from press import config
from press.capabilities.diagram_create import diagram_create
from press.capabilities.diagram_refine import diagram_refine
from press.capabilities.plan_generate import plan_generate
from press.capabilities.plan_validate import plan_validate
from press.integrations.excalidraw import ExcalidrawAdapter

# Configure logging on import, before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format=config.LOG_FORMAT,
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Press", description="Diagram and visual-plan service for essays")

_adapter: ExcalidrawAdapter | None = None


def _get_adapter() -> ExcalidrawAdapter:
    global _adapter
    if _adapter is None:
        bridge_config = config.load_bridge_config()
        logger.info(
            "Diagram adapter: exec=%s, mcp=%s",
            "yes" if bridge_config.exec_command else "no",
            "yes" if bridge_config.server_command else "no",
        )
        _adapter = ExcalidrawAdapter(bridge_config)
    return _adapter


class DiagramCreateRequest(BaseModel):
    project: str
    source: str
    excerpt: str
    intent: str | None = None


class DiagramRefineRequest(BaseModel):
    project: str
    instruction: str


class PlanGenerateRequest(BaseModel):
    project: str
    source: str


class CapabilityResponse(BaseModel):
    ok: bool
    message: str
    data: dict | None = None
    warnings: list[str] | None = None
    errors: list[str] | None = None


def _invoke(label: str, fn, **kwargs) -> CapabilityResponse:
    t0 = time.perf_counter()
    try:
        result = fn(**kwargs)
    except ValueError as e:
        # Includes project path violations
        logger.info("%s rejected: %s", label, e)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("%s failed after %.2fs", label, time.perf_counter() - t0)
        raise HTTPException(status_code=500, detail=str(e))
    logger.info("%s complete: ok=%s (%.2fs)", label, result.ok, time.perf_counter() - t0)
    return CapabilityResponse(**result.to_dict())


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/diagrams", response_model=CapabilityResponse, response_model_exclude_none=True)
def create_diagram(req: DiagramCreateRequest):
    logger.info("POST /diagrams source=%s excerpt=%r", req.source, req.excerpt[:80])
    return _invoke(
        "diagram-create",
        diagram_create,
        project=req.project,
        source=req.source,
        excerpt=req.excerpt,
        intent=req.intent,
        adapter=_get_adapter(),
    )


@app.post("/diagrams/{diagram}/refine", response_model=CapabilityResponse, response_model_exclude_none=True)
def refine_diagram(diagram: str, req: DiagramRefineRequest):
    logger.info("POST /diagrams/%s/refine", diagram)
    response = _invoke(
        "diagram-refine",
        diagram_refine,
        project=req.project,
        diagram=diagram,
        instruction=req.instruction,
        adapter=_get_adapter(),
    )
    if not response.ok:
        raise HTTPException(status_code=404, detail=response.message)
    return response


@app.post("/plans", response_model=CapabilityResponse, response_model_exclude_none=True)
def generate_plan(req: PlanGenerateRequest):
    logger.info("POST /plans source=%s", req.source)
    return _invoke(
        "plan-generate",
        plan_generate,
        project=req.project,
        source=req.source,
        adapter=_get_adapter(),
    )


@app.get("/plans/validate", response_model=CapabilityResponse, response_model_exclude_none=True)
def validate_plan(project: str):
    return _invoke("plan-validate", plan_validate, project=project)
