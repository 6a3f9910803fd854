from fastapi import APIRouter

from escrowline.api.v1.cron import router as cron_router
from escrowline.api.v1.disputes import router as disputes_router
from escrowline.api.v1.escrow import router as escrow_router

v1_router = APIRouter()

v1_router.include_router(cron_router)
v1_router.include_router(escrow_router)
v1_router.include_router(disputes_router)
