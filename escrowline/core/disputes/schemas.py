import uuid
from datetime import datetime

from pydantic import BaseModel


class EscalationRule(BaseModel):
    level: str
    after_hours: int
    notification_message: str


class SLAStatus(BaseModel):
    dispute_id: uuid.UUID
    status: str
    escalation_level: str
    hours_elapsed: int
    remaining_hours: int
    opened_at: datetime
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    is_at_risk: bool


class DisputeView(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    status: str
    reason: str
    evidence: list[str] | None = None
    opened_at: datetime
    escalated_at: datetime | None
    resolution: str | None
    resolution_note: str | None
    resolved_at: datetime | None

    model_config = {"from_attributes": True}
