from __future__ import annotations

from fastapi import APIRouter

from backend.application import get_pipeline_service
from backend.workers.pipeline import get_pipeline_orchestrator

router = APIRouter(tags=["pipeline"])


@router.get("/pipeline/{pipeline_id}")
async def get_pipeline(pipeline_id: str) -> dict:
    service = get_pipeline_service()
    return {"ok": True, "pipeline": service.get_pipeline(pipeline_id)}


@router.get("/pipeline/{pipeline_id}/testcases")
@router.get("/testcases/{pipeline_id}")
async def get_testcases(pipeline_id: str) -> dict:
    """Generated test cases; 404 with ``not_found`` or ``not_ready`` otherwise."""
    service = get_pipeline_service()
    return {"ok": True, "testcases": service.get_testcases(pipeline_id)}


@router.post("/pipeline/{pipeline_id}/cancel")
async def cancel_pipeline(pipeline_id: str) -> dict:
    job = await get_pipeline_orchestrator().cancel(pipeline_id)
    service = get_pipeline_service()
    return {"ok": True, "pipeline": service.describe(job)}
