"""Scheduler API - inspect and drive the tick loop.

Implements:
- GET /scheduler/status - Lifecycle state and last tick
- POST /scheduler/tick - Run one tick immediately
"""

from fastapi import APIRouter, HTTPException, Request

from dca_service.logging_config import get_logger
from dca_service.models import SchedulerStatusResponse, TickReportResponse
from dca_service.services.lifecycle import NotInitializedError, SchedulerController

logger = get_logger(__name__)
router = APIRouter(tags=["Scheduler"], prefix="/scheduler")


def _controller(request: Request) -> SchedulerController:
    return request.app.state.scheduler_controller


@router.get("/status", response_model=SchedulerStatusResponse, summary="Scheduler status")
async def scheduler_status(request: Request) -> SchedulerStatusResponse:
    return SchedulerStatusResponse(**_controller(request).status())


@router.post("/tick", response_model=TickReportResponse, summary="Trigger tick")
async def trigger_tick(request: Request) -> TickReportResponse:
    """Run one tick now. It queues behind a tick already in progress.

    Raises:
        409: Scheduler is not running
    """
    try:
        report = await _controller(request).trigger_tick()
    except NotInitializedError as e:
        logger.warning("tick_rejected", reason=str(e))
        raise HTTPException(
            status_code=409,
            detail={"error": "Scheduler not running", "message": str(e)},
        )

    logger.info("manual_tick_completed", due=report.due, succeeded=report.succeeded)
    return TickReportResponse(
        started_at=report.started_at,
        candidates=report.candidates,
        due=report.due,
        succeeded=report.succeeded,
        failed=report.failed,
        skipped=report.skipped,
        abandoned=report.abandoned,
        store_failed=report.store_failed,
    )
