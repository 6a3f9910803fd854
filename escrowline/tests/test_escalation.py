import pytest

from escrowline.common.clock import ensure_utc
from escrowline.common.enums import DisputeStatus
from escrowline.core.disputes.escalation import DisputeEscalationEngine
from escrowline.db.models import Dispute


@pytest.fixture
def engine(db, notifier, clock):
    return DisputeEscalationEngine(db, notifier, clock=clock)


@pytest.mark.asyncio
async def test_failures_are_isolated_per_dispute(db, notifier, clock, factory, now):
    disputes = [await factory.dispute(age_days=10) for _ in range(6)]
    failing = {disputes[0].id, disputes[2].id, disputes[5].id}

    class FlakyEngine(DisputeEscalationEngine):
        async def _apply_escalation(self, session, dispute, now):
            if dispute.id in failing:
                raise RuntimeError("deadlock detected")
            return await super()._apply_escalation(session, dispute, now)

    result = await FlakyEngine(db, notifier, clock=clock).run(threshold_days=7)

    assert result.succeeded == 3
    assert result.failed == 3
    for dispute in disputes:
        stored = await factory.get(Dispute, dispute.id)
        if dispute.id in failing:
            assert stored.status == DisputeStatus.OPEN.value
            assert stored.escalated_at is None
            assert stored.history == []
        else:
            assert stored.status == DisputeStatus.ESCALATED.value
            assert ensure_utc(stored.escalated_at) == now


@pytest.mark.asyncio
async def test_failure_raised_after_write_rolls_back(db, notifier, clock, factory):
    dispute = await factory.dispute(age_days=10)

    class CrashAfterWrite(DisputeEscalationEngine):
        async def _apply_escalation(self, session, dispute, now):
            await super()._apply_escalation(session, dispute, now)
            raise RuntimeError("lost connection before commit")

    result = await CrashAfterWrite(db, notifier, clock=clock).run(threshold_days=7)

    assert result.failed == 1
    assert (await factory.get(Dispute, dispute.id)).status == DisputeStatus.OPEN.value


@pytest.mark.asyncio
async def test_only_old_open_or_under_review_disputes_escalate(engine, factory):
    old_open = await factory.dispute(age_days=8)
    old_review = await factory.dispute(age_days=9, status=DisputeStatus.UNDER_REVIEW)
    young = await factory.dispute(age_days=2)
    resolved = await factory.dispute(age_days=30, status=DisputeStatus.RESOLVED)
    rejected = await factory.dispute(age_days=30, status=DisputeStatus.REJECTED)

    result = await engine.run(threshold_days=7)

    assert result.succeeded == 2
    assert (await factory.get(Dispute, old_open.id)).status == DisputeStatus.ESCALATED.value
    assert (await factory.get(Dispute, old_review.id)).status == DisputeStatus.ESCALATED.value
    assert (await factory.get(Dispute, young.id)).status == DisputeStatus.OPEN.value
    assert (await factory.get(Dispute, resolved.id)).status == DisputeStatus.RESOLVED.value
    assert (await factory.get(Dispute, rejected.id)).status == DisputeStatus.REJECTED.value


@pytest.mark.asyncio
async def test_escalation_is_monotonic(engine, factory):
    dispute = await factory.dispute(age_days=10)

    first = await engine.run(threshold_days=7)
    second = await engine.run(threshold_days=0)

    assert first.succeeded == 1
    assert second.succeeded == 0
    stored = await factory.get(Dispute, dispute.id)
    assert stored.status == DisputeStatus.ESCALATED.value
    assert [entry["action"] for entry in stored.history] == ["auto_escalated"]
    assert stored.history[0]["from"] == DisputeStatus.OPEN.value


@pytest.mark.asyncio
async def test_default_threshold_is_per_dispute(engine, factory):
    strict = await factory.dispute(age_days=4, escalation_threshold_days=3)
    lenient = await factory.dispute(age_days=4, escalation_threshold_days=7)

    result = await engine.run()

    assert result.succeeded == 1
    assert (await factory.get(Dispute, strict.id)).status == DisputeStatus.ESCALATED.value
    assert (await factory.get(Dispute, lenient.id)).status == DisputeStatus.OPEN.value


@pytest.mark.asyncio
async def test_admins_are_alerted(engine, factory, monkeypatch):
    from escrowline.config import settings

    monkeypatch.setattr(settings, "ADMIN_ALERT_EMAIL", "ops@escrowline.test")
    dispute = await factory.dispute(age_days=8)

    await engine.run(threshold_days=7)

    [alert] = await factory.notifications(category="escalation")
    assert alert.recipient_id is None
    assert alert.audience == "admin"
    assert alert.severity == "critical"
    assert alert.related_entity_id == dispute.id
    assert alert.email == "ops@escrowline.test"
    assert "192 hours" in alert.message
