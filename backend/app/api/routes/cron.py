"""Cron API Routes - Scheduler entry points for campaign assignment"""
import logging
import time
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.app.api.dependencies import get_orchestrator, verify_cron_secret
from backend.app.api.routes.campaign_assignment import batch_response
from backend.app.core.orchestrator import AssignmentOrchestrator
from backend.app.models import RunOptions

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(verify_cron_secret)]
)


class CronRunRequest(BaseModel):
    """Optional overrides sent by the scheduler"""
    max_total: Optional[int] = Field(default=None, ge=1)
    max_per_platform: Optional[int] = Field(default=None, ge=1)
    delay_ms: Optional[int] = Field(default=None, ge=0)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False


async def _run(orchestrator: AssignmentOrchestrator, request: Optional[CronRunRequest]) -> dict:
    started = time.monotonic()
    options = RunOptions(**(request.model_dump() if request else {}))
    logger.info("Scheduled campaign assignment triggered")

    try:
        result = await orchestrator.run(options)
    except Exception as e:
        logger.error("Scheduled campaign assignment failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return batch_response(result, int((time.monotonic() - started) * 1000))


@router.get("/campaign-assignment")
async def cron_campaign_assignment(orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)):
    """Sequential run with stored settings (one chunk per call)"""
    return await _run(orchestrator, None)


@router.post("/campaign-assignment")
async def cron_campaign_assignment_with_options(
    request: Optional[CronRunRequest] = None,
    orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)
):
    """Sequential run with optional overrides"""
    return await _run(orchestrator, request)


@router.post("/campaign-assignment-parallel")
async def cron_campaign_assignment_parallel(
    request: Optional[CronRunRequest] = None,
    orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)
):
    """One worker per channel, all channels at once"""
    started = time.monotonic()
    options = RunOptions(**(request.model_dump() if request else {}))

    try:
        result = await orchestrator.run_parallel(options)
    except Exception as e:
        logger.error("Parallel campaign assignment failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        **result.model_dump(mode="json"),
        "duration_ms": int((time.monotonic() - started) * 1000),
    }
