import uuid

import pytest

from escrowline.common.enums import (
    DisputeResolution,
    DisputeStatus,
    EscalationLevel,
    HoldStatus,
    PayoutStatus,
)
from escrowline.core.disputes.escalation import DisputeEscalationEngine
from escrowline.core.disputes.service import DisputeService
from escrowline.db.models import Dispute, EscrowHold, LedgerEntry

BASE = "/api/v1/internal"


async def _open(client, headers, order, reason="Wrong size delivered"):
    return await client.post(
        f"{BASE}/orders/{order.id}/disputes",
        json={"buyer_id": str(order.buyer_id), "reason": reason, "evidence": ["receipt.png"]},
        headers=headers,
    )


@pytest.fixture
async def disputed_order(client, factory, internal_headers):
    order = await factory.order(amount_cents=100_000)
    hold = await factory.hold(order, age_days=4)
    response = await _open(client, internal_headers, order)
    assert response.status_code == 201
    return order, hold, response.json()["id"]


@pytest.mark.asyncio
async def test_open_dispute_freezes_hold(client, factory, internal_headers, mock_celery_tasks):
    order = await factory.order()
    hold = await factory.hold(order)

    response = await _open(client, internal_headers, order)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == DisputeStatus.OPEN.value
    assert data["order_id"] == str(order.id)
    assert data["evidence"] == ["receipt.png"]
    assert (await factory.get(EscrowHold, hold.id)).status == HoldStatus.DISPUTED.value
    assert await factory.count(LedgerEntry) == 1
    [notice] = await factory.notifications(category="dispute")
    assert notice.recipient_id == order.seller_id
    assert mock_celery_tasks.called


@pytest.mark.asyncio
async def test_open_dispute_by_other_user(client, factory, internal_headers):
    order = await factory.order()
    await factory.hold(order)

    response = await client.post(
        f"{BASE}/orders/{order.id}/disputes",
        json={"buyer_id": str(uuid.uuid4()), "reason": "not mine"},
        headers=internal_headers,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_second_dispute_conflicts(client, internal_headers, disputed_order):
    order, _, _ = disputed_order

    response = await _open(client, internal_headers, order, reason="again")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cannot_dispute_paid_order(client, factory, internal_headers):
    order = await factory.order(payout_status=PayoutStatus.PAID.value)
    await factory.hold(order, status=HoldStatus.RELEASED)

    response = await _open(client, internal_headers, order)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cannot_dispute_released_hold(client, factory, internal_headers):
    order = await factory.order()
    await factory.hold(order, status=HoldStatus.RELEASED)

    response = await _open(client, internal_headers, order)

    assert response.status_code == 409
    assert await factory.count(Dispute) == 0


@pytest.mark.asyncio
async def test_review_then_review_again(client, internal_headers, disputed_order):
    _, _, dispute_id = disputed_order

    first = await client.post(f"{BASE}/disputes/{dispute_id}/review", json={}, headers=internal_headers)
    second = await client.post(f"{BASE}/disputes/{dispute_id}/review", json={}, headers=internal_headers)

    assert first.status_code == 200
    assert first.json()["status"] == DisputeStatus.UNDER_REVIEW.value
    assert second.status_code == 400


@pytest.mark.asyncio
async def test_resolve_with_full_refund(client, factory, internal_headers, disputed_order):
    order, hold, dispute_id = disputed_order

    response = await client.post(
        f"{BASE}/disputes/{dispute_id}/resolve",
        json={"resolution": "buyer_refund", "note": "never shipped"},
        headers=internal_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == DisputeStatus.RESOLVED.value
    assert data["resolution"] == "buyer_refund"
    stored = await factory.get(EscrowHold, hold.id)
    assert stored.status == HoldStatus.REFUNDED.value
    assert await factory.balance(order.seller_id) == 0


@pytest.mark.asyncio
async def test_resolve_in_sellers_favour(client, factory, internal_headers, disputed_order):
    order, hold, dispute_id = disputed_order

    response = await client.post(
        f"{BASE}/disputes/{dispute_id}/resolve", json={"resolution": "seller_keep"}, headers=internal_headers
    )

    assert response.status_code == 200
    assert (await factory.get(EscrowHold, hold.id)).status == HoldStatus.RELEASED.value
    assert await factory.balance(order.seller_id) == 100_000


@pytest.mark.asyncio
async def test_resolve_with_partial_refund(client, factory, internal_headers, disputed_order):
    order, hold, dispute_id = disputed_order

    response = await client.post(
        f"{BASE}/disputes/{dispute_id}/resolve",
        json={"resolution": "partial_refund", "refund_amount_cents": 30_000},
        headers=internal_headers,
    )

    assert response.status_code == 200
    stored = await factory.get(EscrowHold, hold.id)
    assert stored.status == HoldStatus.RELEASED.value
    assert stored.amount_cents == 70_000
    assert await factory.balance(order.seller_id) == 70_000


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"resolution": "partial_refund"},
        {"resolution": "partial_refund", "refund_amount_cents": 100_000},
    ],
)
async def test_invalid_partial_refund_changes_nothing(client, factory, internal_headers, disputed_order, body):
    _, hold, dispute_id = disputed_order

    response = await client.post(f"{BASE}/disputes/{dispute_id}/resolve", json=body, headers=internal_headers)

    assert response.status_code == 400
    assert (await factory.get(Dispute, uuid.UUID(dispute_id))).status == DisputeStatus.OPEN.value
    assert (await factory.get(EscrowHold, hold.id)).status == HoldStatus.DISPUTED.value


@pytest.mark.asyncio
async def test_resolved_dispute_cannot_be_resolved_again(client, internal_headers, disputed_order):
    _, _, dispute_id = disputed_order
    body = {"resolution": "seller_keep"}

    await client.post(f"{BASE}/disputes/{dispute_id}/resolve", json=body, headers=internal_headers)
    response = await client.post(f"{BASE}/disputes/{dispute_id}/resolve", json=body, headers=internal_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reject_returns_hold_to_escrow(client, factory, internal_headers, disputed_order):
    _, hold, dispute_id = disputed_order

    response = await client.post(
        f"{BASE}/disputes/{dispute_id}/reject", json={"note": "item matches listing"}, headers=internal_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == DisputeStatus.REJECTED.value
    assert (await factory.get(EscrowHold, hold.id)).status == HoldStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_reject_keeps_reminder_state(db, notifier, clock, factory, now):
    order = await factory.order()
    hold = await factory.hold(order, age_days=27, status=HoldStatus.REMINDER_SENT, reminder_sent_at=now)
    service = DisputeService(db, notifier, clock=clock)
    dispute = await service.open_dispute(order.id, order.buyer_id, "scratched")

    await service.reject_dispute(dispute.id, "wear and tear")

    assert (await factory.get(EscrowHold, hold.id)).status == HoldStatus.REMINDER_SENT.value


@pytest.mark.asyncio
async def test_escalated_dispute_can_still_be_resolved(db, notifier, clock, factory):
    hold = await factory.hold(status=HoldStatus.DISPUTED)
    dispute = await factory.dispute(hold, age_days=9, status=DisputeStatus.ESCALATED)
    service = DisputeService(db, notifier, clock=clock)

    resolved = await service.resolve_dispute(dispute.id, DisputeResolution.SELLER_KEEP)

    assert resolved.status == DisputeStatus.RESOLVED.value
    assert [entry["action"] for entry in resolved.history] == ["resolved"]


@pytest.mark.asyncio
@pytest.mark.parametrize("close", ["resolve", "reject"])
async def test_closing_an_escalated_dispute_clears_escalated_at(db, notifier, clock, factory, close):
    hold = await factory.hold(status=HoldStatus.DISPUTED)
    dispute = await factory.dispute(hold, age_days=9)
    escalated = await DisputeEscalationEngine(db, notifier, clock=clock).run(threshold_days=7)
    assert escalated.succeeded == 1
    assert (await factory.get(Dispute, dispute.id)).escalated_at is not None
    service = DisputeService(db, notifier, clock=clock)

    if close == "resolve":
        closed = await service.resolve_dispute(dispute.id, DisputeResolution.SELLER_KEEP)
        assert closed.status == DisputeStatus.RESOLVED.value
    else:
        closed = await service.reject_dispute(dispute.id, "No evidence of damage")
        assert closed.status == DisputeStatus.REJECTED.value

    assert closed.escalated_at is None
    assert [entry["action"] for entry in closed.history] == ["auto_escalated", f"{close}d"]


@pytest.mark.asyncio
async def test_unknown_dispute(client, internal_headers):
    response = await client.get(f"{BASE}/disputes/{uuid.uuid4()}", headers=internal_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "age_days,level,remaining,at_risk",
    [
        (0.5, EscalationLevel.INITIAL.value, 12, False),
        (2, EscalationLevel.LEVEL1.value, 24, True),
        (5, EscalationLevel.LEVEL2.value, 48, True),
        (8, EscalationLevel.LEVEL3.value, 0, True),
    ],
)
async def test_sla_status(db, notifier, clock, factory, age_days, level, remaining, at_risk):
    dispute = await factory.dispute(age_days=age_days)
    service = DisputeService(db, notifier, clock=clock)

    sla = await service.get_sla_status(dispute.id)

    assert sla.escalation_level == level
    assert sla.remaining_hours == remaining
    assert sla.is_at_risk is at_risk
    assert sla.hours_elapsed == round(age_days * 24)


@pytest.mark.asyncio
async def test_sla_of_closed_dispute_is_not_at_risk(client, internal_headers, disputed_order):
    _, _, dispute_id = disputed_order
    await client.post(f"{BASE}/disputes/{dispute_id}/reject", json={"note": "no issue"}, headers=internal_headers)

    response = await client.get(f"{BASE}/disputes/{dispute_id}/sla", headers=internal_headers)

    assert response.status_code == 200
    assert response.json()["is_at_risk"] is False
    assert response.json()["status"] == DisputeStatus.REJECTED.value
