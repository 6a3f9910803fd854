"""Time rules for escrow holds. Pure functions, no I/O.

A hold stores its ``releasable_at`` instant when it is created, so the
scheduled engines can select due holds with an indexed range predicate.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from escrowline.common.clock import ensure_utc
from escrowline.common.enums import DisputeStatus, HoldStatus

# Holds the release engine may move to ``released``
RELEASABLE_HOLD_STATUSES = (HoldStatus.ACTIVE.value, HoldStatus.REMINDER_SENT.value)

# Dispute statuses that block a release
UNRESOLVED_DISPUTE_STATUSES = (
    DisputeStatus.OPEN.value,
    DisputeStatus.UNDER_REVIEW.value,
    DisputeStatus.ESCALATED.value,
)


def releasable_at(created_at: datetime, hold_duration_days: int) -> datetime:
    return ensure_utc(created_at) + timedelta(days=hold_duration_days)


def release_cutoff(now: datetime, threshold_days: int) -> datetime:
    """Holds created at or before this instant are past an explicit threshold."""
    return now - timedelta(days=threshold_days)


def reminder_horizon(now: datetime, reminder_window_days: int) -> datetime:
    """Holds releasing after ``now`` and at or before this instant are due a reminder."""
    return now + timedelta(days=reminder_window_days)


def days_remaining(release_at: datetime, now: datetime) -> int:
    remaining = ensure_utc(release_at) - now
    if remaining.total_seconds() <= 0:
        return 0
    return math.ceil(remaining.total_seconds() / 86400)
