from datetime import datetime, timedelta, timezone

import pytest

from escrowline.common.enums import DisputeStatus, EscalationLevel
from escrowline.core.disputes.workflow import (
    append_history,
    can_transition,
    history_entry,
    is_escalation_due,
    sla_level,
)
from escrowline.core.escrow.policy import days_remaining, release_cutoff, releasable_at, reminder_horizon

NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW, True),
        (DisputeStatus.OPEN, DisputeStatus.ESCALATED, True),
        (DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED, True),
        (DisputeStatus.ESCALATED, DisputeStatus.REJECTED, True),
        (DisputeStatus.ESCALATED, DisputeStatus.OPEN, False),
        (DisputeStatus.ESCALATED, DisputeStatus.UNDER_REVIEW, False),
        (DisputeStatus.RESOLVED, DisputeStatus.OPEN, False),
        (DisputeStatus.REJECTED, DisputeStatus.RESOLVED, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current.value, target.value) is allowed


def test_sla_level_boundaries():
    assert sla_level(24) == (EscalationLevel.INITIAL.value, 0.0)
    assert sla_level(24.5) == (EscalationLevel.LEVEL1.value, 47.5)
    assert sla_level(500) == (EscalationLevel.LEVEL3.value, 0.0)


def test_escalation_due_is_inclusive():
    assert is_escalation_due(NOW - timedelta(days=7), 7, NOW)
    assert not is_escalation_due(NOW - timedelta(days=7) + timedelta(seconds=1), 7, NOW)


def test_release_cutoff_and_reminder_horizon():
    assert release_cutoff(NOW, 30) == NOW - timedelta(days=30)
    assert reminder_horizon(NOW, 5) == NOW + timedelta(days=5)


def test_releasable_at_accepts_naive_timestamps():
    naive = (NOW - timedelta(days=31)).replace(tzinfo=None)
    assert releasable_at(naive, 30) == NOW - timedelta(days=1)


def test_days_remaining_rounds_up_and_floors_at_zero():
    assert days_remaining(NOW + timedelta(hours=23), NOW) == 1
    assert days_remaining(NOW + timedelta(days=4, hours=1), NOW) == 5
    assert days_remaining(NOW - timedelta(days=15), NOW) == 0
    assert days_remaining((NOW + timedelta(days=2)).replace(tzinfo=None), NOW) == 2


def test_history_helpers_copy():
    history = [history_entry("opened", NOW, by="buyer")]
    updated = append_history(history, history_entry("review_started", NOW, by=None))

    assert len(history) == 1
    assert updated[-1] == {"action": "review_started", "at": NOW.isoformat()}
