import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from escrowline.api.deps import get_dispute_service, verify_internal_secret
from escrowline.common.enums import DisputeResolution
from escrowline.core.disputes.schemas import DisputeView, SLAStatus
from escrowline.core.disputes.service import DisputeService

router = APIRouter(prefix="/internal", tags=["Disputes"], dependencies=[Depends(verify_internal_secret)])


# ---------- Schemas ----------


class DisputeCreateRequest(BaseModel):
    buyer_id: uuid.UUID
    reason: str = Field(..., min_length=1)
    evidence: list[str] | None = None


class DisputeReviewRequest(BaseModel):
    reviewer_id: uuid.UUID | None = None


class DisputeResolveRequest(BaseModel):
    resolution: DisputeResolution
    refund_amount_cents: int | None = Field(None, gt=0)
    note: str | None = None


class DisputeRejectRequest(BaseModel):
    note: str = Field(..., min_length=1)


# ---------- Endpoints ----------


@router.post("/orders/{order_id}/disputes", response_model=DisputeView, status_code=201)
async def open_dispute(
    order_id: uuid.UUID,
    body: DisputeCreateRequest,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.open_dispute(order_id, body.buyer_id, body.reason, body.evidence)


@router.get("/disputes/{dispute_id}", response_model=DisputeView)
async def get_dispute(
    dispute_id: uuid.UUID,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.get_dispute(dispute_id)


@router.post("/disputes/{dispute_id}/review", response_model=DisputeView)
async def start_review(
    dispute_id: uuid.UUID,
    body: DisputeReviewRequest,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.start_review(dispute_id, body.reviewer_id)


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeView)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    body: DisputeResolveRequest,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.resolve_dispute(dispute_id, body.resolution, body.refund_amount_cents, body.note)


@router.post("/disputes/{dispute_id}/reject", response_model=DisputeView)
async def reject_dispute(
    dispute_id: uuid.UUID,
    body: DisputeRejectRequest,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.reject_dispute(dispute_id, body.note)


@router.get("/disputes/{dispute_id}/sla", response_model=SLAStatus)
async def dispute_sla(
    dispute_id: uuid.UUID,
    service: DisputeService = Depends(get_dispute_service),
):
    return await service.get_sla_status(dispute_id)
