"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import events, deals, payouts, adjustments

api_router = APIRouter()

api_router.include_router(
    events.router,
    prefix="/events",
    tags=["events"]
)

api_router.include_router(
    deals.router,
    prefix="/deals",
    tags=["deals"]
)

api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["payouts"]
)

api_router.include_router(
    adjustments.router,
    prefix="/adjustments",
    tags=["adjustments"]
)
