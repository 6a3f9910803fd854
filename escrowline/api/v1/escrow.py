import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from escrowline.api.deps import get_escrow_service, verify_internal_secret
from escrowline.config import settings
from escrowline.core.escrow.schemas import HoldStatusView, RefundOutcome, SellerEscrowSummary
from escrowline.core.escrow.service import EscrowService

router = APIRouter(prefix="/internal", tags=["Escrow"], dependencies=[Depends(verify_internal_secret)])


# ---------- Schemas ----------


class HoldCreateRequest(BaseModel):
    payment_ref: str | None = None
    hold_duration_days: int | None = Field(None, gt=0)


class DeliveryConfirmationRequest(BaseModel):
    buyer_id: uuid.UUID


class RefundRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    reason: str


class EscrowBalanceResponse(BaseModel):
    seller_id: uuid.UUID
    currency: str
    balance_cents: int


# ---------- Endpoints ----------


@router.post("/orders/{order_id}/hold", response_model=HoldStatusView, status_code=201)
async def create_hold(
    order_id: uuid.UUID,
    body: HoldCreateRequest,
    service: EscrowService = Depends(get_escrow_service),
):
    await service.create_hold(order_id, body.payment_ref, body.hold_duration_days)
    return await service.get_hold_status(order_id)


@router.get("/orders/{order_id}/hold", response_model=HoldStatusView)
async def get_hold_status(
    order_id: uuid.UUID,
    service: EscrowService = Depends(get_escrow_service),
):
    return await service.get_hold_status(order_id)


@router.post("/orders/{order_id}/delivery-confirmation", response_model=HoldStatusView)
async def confirm_delivery(
    order_id: uuid.UUID,
    body: DeliveryConfirmationRequest,
    service: EscrowService = Depends(get_escrow_service),
):
    return await service.confirm_delivery(order_id, body.buyer_id)


@router.post("/orders/{order_id}/refunds", response_model=RefundOutcome)
async def refund_order(
    order_id: uuid.UUID,
    body: RefundRequest,
    service: EscrowService = Depends(get_escrow_service),
):
    return await service.refund(order_id, body.amount_cents, body.reason)


@router.get("/sellers/{seller_id}/escrow-balance", response_model=EscrowBalanceResponse)
async def seller_escrow_balance(
    seller_id: uuid.UUID,
    currency: str = Query(settings.DEFAULT_CURRENCY, min_length=3, max_length=3),
    service: EscrowService = Depends(get_escrow_service),
):
    balance = await service.seller_escrow_balance(seller_id, currency.upper())
    return EscrowBalanceResponse(seller_id=seller_id, currency=currency.upper(), balance_cents=balance)


@router.get("/sellers/{seller_id}/escrow-summary", response_model=SellerEscrowSummary)
async def seller_escrow_summary(
    seller_id: uuid.UUID,
    currency: str = Query(settings.DEFAULT_CURRENCY, min_length=3, max_length=3),
    service: EscrowService = Depends(get_escrow_service),
):
    return await service.seller_escrow_summary(seller_id, currency.upper())
