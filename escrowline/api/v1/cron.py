"""Scheduler-facing trigger endpoints, one per batch engine.

The caller authenticates with ``Authorization: Bearer <CRON_SECRET>``; the
check runs as a dependency, so a bad secret is rejected before any engine
is constructed.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from escrowline.api.deps import (
    get_escalation_engine,
    get_release_engine,
    get_reminder_dispatcher,
    verify_cron_secret,
)
from escrowline.common.logging import get_logger
from escrowline.core.disputes.escalation import DisputeEscalationEngine
from escrowline.core.escrow.release import HoldReleaseEngine
from escrowline.core.escrow.reminders import ReminderDispatcher

logger = get_logger("api.cron")

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])

METHODS = ["GET", "POST"]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failure(error: str, exc: Exception) -> JSONResponse:
    logger.exception("[Cron] %s", error)
    return JSONResponse(
        status_code=500,
        content={"error": error, "details": str(exc), "timestamp": _timestamp()},
    )


@router.api_route("/release-holds", methods=METHODS)
async def release_expired_holds(
    threshold_days: int | None = Query(None, ge=0),
    engine: HoldReleaseEngine = Depends(get_release_engine),
):
    logger.info("[Cron] Starting escrow hold release")
    try:
        result = await engine.run(threshold_days)
    except Exception as e:
        return _failure("Failed to release expired holds", e)

    return {
        "success": True,
        "message": f"Released {result.succeeded} holds, failed {result.failed}",
        "released": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "timestamp": _timestamp(),
    }


@router.api_route("/release-reminders", methods=METHODS)
async def send_release_reminders(
    reminder_window_days: int | None = Query(None, ge=0),
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    logger.info("[Cron] Starting release reminders")
    try:
        result = await dispatcher.run(reminder_window_days)
    except Exception as e:
        return _failure("Failed to send release reminders", e)

    return {
        "success": True,
        "message": f"Sent {result.succeeded} reminders, failed {result.failed}",
        "reminders_sent": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "timestamp": _timestamp(),
    }


@router.api_route("/escalate-disputes", methods=METHODS)
async def escalate_old_disputes(
    threshold_days: int | None = Query(None, ge=0),
    engine: DisputeEscalationEngine = Depends(get_escalation_engine),
):
    logger.info("[Cron] Starting dispute escalation")
    try:
        result = await engine.run(threshold_days)
    except Exception as e:
        return _failure("Failed to escalate disputes", e)

    return {
        "success": True,
        "message": f"Escalated {result.succeeded} disputes, failed {result.failed}",
        "escalated": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "timestamp": _timestamp(),
    }
