import hmac

from fastapi import Depends, Header, Request

from escrowline.common.exceptions import UnauthorizedError
from escrowline.config import settings
from escrowline.core.disputes.escalation import DisputeEscalationEngine
from escrowline.core.disputes.service import DisputeService
from escrowline.core.escrow.release import HoldReleaseEngine
from escrowline.core.escrow.reminders import ReminderDispatcher
from escrowline.core.escrow.service import EscrowService
from escrowline.core.notifications.service import NotificationService
from escrowline.db.session import DatabaseSessionManager


def get_db_manager(request: Request) -> DatabaseSessionManager:
    return request.app.state.db


def get_notifier(db: DatabaseSessionManager = Depends(get_db_manager)) -> NotificationService:
    return NotificationService(db)


def get_release_engine(
    db: DatabaseSessionManager = Depends(get_db_manager),
    notifier: NotificationService = Depends(get_notifier),
) -> HoldReleaseEngine:
    return HoldReleaseEngine(db, notifier)


def get_reminder_dispatcher(
    db: DatabaseSessionManager = Depends(get_db_manager),
    notifier: NotificationService = Depends(get_notifier),
) -> ReminderDispatcher:
    return ReminderDispatcher(db, notifier)


def get_escalation_engine(
    db: DatabaseSessionManager = Depends(get_db_manager),
    notifier: NotificationService = Depends(get_notifier),
) -> DisputeEscalationEngine:
    return DisputeEscalationEngine(db, notifier)


def get_escrow_service(
    db: DatabaseSessionManager = Depends(get_db_manager),
    notifier: NotificationService = Depends(get_notifier),
) -> EscrowService:
    return EscrowService(db, notifier)


def get_dispute_service(
    db: DatabaseSessionManager = Depends(get_db_manager),
    notifier: NotificationService = Depends(get_notifier),
) -> DisputeService:
    return DisputeService(db, notifier)


def _check_bearer(authorization: str | None, secret: str) -> None:
    # An unset secret rejects everything rather than accepting "Bearer ".
    if not secret or not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError()
    token = authorization[len("Bearer "):]
    if not hmac.compare_digest(token.encode(), secret.encode()):
        raise UnauthorizedError()


async def verify_cron_secret(
    authorization: str | None = Header(None, description="Bearer <CRON_SECRET>"),
) -> None:
    _check_bearer(authorization, settings.CRON_SECRET)


async def verify_internal_secret(
    authorization: str | None = Header(None, description="Bearer <INTERNAL_API_SECRET>"),
) -> None:
    _check_bearer(authorization, settings.INTERNAL_API_SECRET)
