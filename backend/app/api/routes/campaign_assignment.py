"""Campaign Assignment API Routes - Manual runs, monitoring and settings"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from backend.app.api.dependencies import (
    get_batch_repo, get_log_repo, get_orchestrator, get_selector, get_settings_repo
)
from backend.app.core.errors import BatchNotFoundError, NothingToCancelError
from backend.app.core.orchestrator import AssignmentOrchestrator
from backend.app.core.reporting import batch_totals, daily_trend, summarize_logs
from backend.app.core.selection import CandidateSelector
from backend.app.integrations.supabase import (
    AssignmentLogRepository, BatchRepository, SettingsRepository
)
from backend.app.models import BatchResult, BatchStatus, RunOptions, SettingsUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaign-assignment", tags=["campaign-assignment"])


class RunRequest(BaseModel):
    """Manual run; omitted values come from the stored settings"""
    max_total: Optional[int] = Field(default=None, ge=1)
    max_per_platform: Optional[int] = Field(default=None, ge=1)
    delay_ms: Optional[int] = Field(default=None, ge=0)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False
    resume_batch_id: Optional[str] = None
    auto_continue: bool = True


class CancelRequest(BaseModel):
    batch_id: Optional[str] = None


def batch_response(result: BatchResult, duration_ms: Optional[int] = None) -> dict:
    """JSON shape shared by manual and cron runs"""
    stats = result.stats
    if result.skipped:
        message = result.message
    elif result.has_more_to_process:
        message = f"Chunk completed ({stats.processed}/{stats.total_candidates})"
    else:
        message = result.message or "Campaign assignment completed"

    return {
        "success": result.status != BatchStatus.FAILED,
        "message": message,
        "batch_id": result.batch_id,
        "status": result.status.value,
        "has_more_to_process": result.has_more_to_process,
        "lead_limit_reached": result.lead_limit_reached,
        "skipped": result.skipped,
        "is_resume": result.is_resume,
        "error": result.error,
        "stats": stats.model_dump(exclude={"platform_stats"}),
        "platform_stats": {k: v.model_dump() for k, v in stats.platform_stats.items()},
        "duration_ms": duration_ms,
    }


async def continue_batch(orchestrator: AssignmentOrchestrator, options: RunOptions) -> None:
    """Keep processing chunks of one batch until it is done or stops"""
    while True:
        try:
            result = await orchestrator.run(options)
        except Exception as e:
            logger.error("[%s] Auto-continue stopped: %s", options.resume_batch_id, e)
            return
        if not result.has_more_to_process or result.error:
            logger.info("[%s] Auto-continue finished with status %s", result.batch_id, result.status.value)
            return
        logger.info("[%s] %d contacts remaining, next chunk", result.batch_id, result.stats.remaining)


@router.post("/run")
async def run_assignment(
    request: RunRequest,
    background_tasks: BackgroundTasks,
    orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)
):
    """Run one chunk now; remaining chunks continue in the background"""
    started = time.monotonic()
    options = RunOptions(**request.model_dump(exclude={"auto_continue"}))

    try:
        result = await orchestrator.run(options)
    except Exception as e:
        logger.error("Error in manual campaign assignment: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    continuing = request.auto_continue and result.has_more_to_process and not result.error
    if continuing:
        background_tasks.add_task(
            continue_batch,
            orchestrator,
            options.model_copy(update={"resume_batch_id": result.batch_id}),
        )

    response = batch_response(result, int((time.monotonic() - started) * 1000))
    response["auto_continue"] = continuing
    return response


@router.get("/run")
async def preview_candidates(
    max_total: int = Query(50, ge=1, le=5000),
    max_per_platform: int = Query(10, ge=1, le=500),
    selector: CandidateSelector = Depends(get_selector)
):
    """Candidates a run would pick, without creating a batch"""
    preview = await selector.preview(max_total, max_per_platform)
    return {"success": True, **preview}


@router.post("/cancel")
async def cancel_batch(
    request: Optional[CancelRequest] = None,
    orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)
):
    """Cancel the given batch, or the most recent running one"""
    try:
        batch_id = await orchestrator.cancel(request.batch_id if request else None)
    except BatchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NothingToCancelError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, "message": "Batch cancelled", "batch_id": batch_id}


@router.get("/batches")
async def list_batches(
    limit: int = Query(10, ge=1, le=100),
    repo: BatchRepository = Depends(get_batch_repo)
):
    """Most recent batches"""
    return {"success": True, "batches": await repo.recent(limit)}


@router.get("/batches/{batch_id}")
async def get_batch(batch_id: str, repo: BatchRepository = Depends(get_batch_repo)):
    """Progress of one batch"""
    batch = await repo.get(batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")

    return {
        "success": True,
        "batch": batch.model_dump(mode="json", exclude={"candidates", "candidate_ids", "processed_ids"}),
        "remaining": len(batch.pending_candidates()),
    }


@router.get("/logs")
async def get_logs(
    batch_id: str,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    repo: AssignmentLogRepository = Depends(get_log_repo)
):
    """Per-contact outcomes of one batch, oldest first"""
    logs = await repo.list_for_batch(batch_id, status=status, limit=limit, offset=offset)
    return {"success": True, "batch_id": batch_id, "count": len(logs), "logs": logs}


@router.get("/stats")
async def get_stats(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    logs: AssignmentLogRepository = Depends(get_log_repo),
    batches: BatchRepository = Depends(get_batch_repo)
):
    """Outcome statistics for a period (default: today)"""
    now = datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    date_from = date_from or today
    date_to = date_to or now

    try:
        period_logs = await logs.list_between(date_from.isoformat(), date_to.isoformat())
        trend_logs = await logs.list_between((now - timedelta(days=7)).isoformat(), now.isoformat())
        recent = await batches.recent(10)
        today_batches = await batches.created_since(today)
    except Exception as e:
        logger.error("Error fetching campaign assignment stats: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to fetch stats: {e}")

    return {
        "success": True,
        "period": {"from": date_from.isoformat(), "to": date_to.isoformat()},
        **summarize_logs(period_logs),
        "today": batch_totals(today_batches),
        "recent_batches": recent,
        "daily_trend": daily_trend(trend_logs),
    }


@router.get("/settings")
async def get_assignment_settings(repo: SettingsRepository = Depends(get_settings_repo)):
    """Current operator settings"""
    return {"success": True, "settings": await repo.get_settings()}


@router.put("/settings")
async def update_assignment_settings(
    update: SettingsUpdate,
    updated_by: Optional[str] = None,
    repo: SettingsRepository = Depends(get_settings_repo)
):
    """Change operator settings; bounds are validated by the model"""
    if not update.model_dump(exclude_none=True):
        raise HTTPException(status_code=400, detail="No settings to update")

    try:
        settings = await repo.update_settings(update, updated_by=updated_by)
    except Exception as e:
        logger.error("Error updating campaign assignment settings: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update settings")

    return {"success": True, "settings": settings}
