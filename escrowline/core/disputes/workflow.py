from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from escrowline.common.clock import ensure_utc
from escrowline.common.enums import DisputeStatus, EscalationLevel
from escrowline.core.disputes.schemas import EscalationRule

# Statuses the scheduled escalation engine picks up
ESCALATABLE_STATUSES = (DisputeStatus.OPEN.value, DisputeStatus.UNDER_REVIEW.value)

TERMINAL_STATUSES = (DisputeStatus.RESOLVED.value, DisputeStatus.REJECTED.value)

# Manual moves; escalated never goes back to open or under_review
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    DisputeStatus.OPEN.value: (
        DisputeStatus.UNDER_REVIEW.value,
        DisputeStatus.ESCALATED.value,
        DisputeStatus.RESOLVED.value,
        DisputeStatus.REJECTED.value,
    ),
    DisputeStatus.UNDER_REVIEW.value: (
        DisputeStatus.ESCALATED.value,
        DisputeStatus.RESOLVED.value,
        DisputeStatus.REJECTED.value,
    ),
    DisputeStatus.ESCALATED.value: (
        DisputeStatus.RESOLVED.value,
        DisputeStatus.REJECTED.value,
    ),
    DisputeStatus.RESOLVED.value: (),
    DisputeStatus.REJECTED.value: (),
}

# SLA tiers, hours since the dispute was opened: 24h, 72h, 7 days
SLA_RULES = [
    EscalationRule(
        level=EscalationLevel.LEVEL1.value,
        after_hours=24,
        notification_message="Dispute has been open for over 24 hours and needs a response.",
    ),
    EscalationRule(
        level=EscalationLevel.LEVEL2.value,
        after_hours=72,
        notification_message="Dispute has been open for over 72 hours and needs support team attention.",
    ),
    EscalationRule(
        level=EscalationLevel.LEVEL3.value,
        after_hours=168,
        notification_message="Dispute has been open for over 7 days and is escalated to management.",
    ),
]

AT_RISK_AFTER_HOURS = SLA_RULES[0].after_hours


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


def is_escalation_due(opened_at: datetime, threshold_days: int, now: datetime) -> bool:
    return ensure_utc(opened_at) <= now - timedelta(days=threshold_days)


def hours_open(opened_at: datetime, now: datetime) -> float:
    return (now - ensure_utc(opened_at)).total_seconds() / 3600


def sla_level(hours_elapsed: float) -> tuple[str, float]:
    """Return the SLA tier reached and hours left until the next one (0 at the top tier)."""
    reached = EscalationLevel.INITIAL.value
    remaining = float(SLA_RULES[0].after_hours) - hours_elapsed
    for idx, rule in enumerate(SLA_RULES):
        if hours_elapsed > rule.after_hours:
            reached = rule.level
            if idx + 1 < len(SLA_RULES):
                remaining = SLA_RULES[idx + 1].after_hours - hours_elapsed
            else:
                remaining = 0.0
    return reached, max(0.0, remaining)


def history_entry(action: str, at: datetime, **fields: Any) -> dict[str, Any]:
    entry = {"action": action, "at": at.isoformat()}
    entry.update({k: v for k, v in fields.items() if v is not None})
    return entry


def append_history(history: list | None, entry: dict[str, Any]) -> list:
    # New list so SQLAlchemy sees the JSON column change
    return [*(history or []), entry]
