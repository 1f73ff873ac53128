"""
Payout endpoints: paid-status changes and merchant id corrections.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from residuals.api.deps import get_db, get_feature_flags, get_request_id
from residuals.config import FeatureFlags
from residuals.models.schemas.base import BatchErrorDetail, BatchResponse, ResponseBase
from residuals.models.schemas.payouts import MassMarkPaidRequest, UpdateMerchantRequest
from residuals.services.payout_operations import mass_mark_paid, toggle_paid, update_merchant
from residuals.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/mass-mark-paid",
    response_model=BatchResponse,
    summary="Mark all unpaid payouts of the given partners as paid"
)
async def mark_partners_paid(
    payload: MassMarkPaidRequest,
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> BatchResponse:
    result = mass_mark_paid(db, payload.partner_ids, flags=flags, request_id=get_request_id(request))
    return BatchResponse(
        success=True,
        message=f"Marked {result.succeeded} payouts as paid",
        total=result.total,
        succeeded=result.succeeded,
        errors=[BatchErrorDetail(**e) for e in result.errors],
    )

@router.patch(
    "/update-merchant",
    response_model=ResponseBase,
    summary="Correct a merchant id / name across payouts, events and deals"
)
async def patch_merchant(
    payload: UpdateMerchantRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ResponseBase:
    outcome = update_merchant(
        db,
        payload.old_mid,
        new_mid=payload.new_mid,
        new_merchant_name=payload.new_merchant_name,
        request_id=get_request_id(request),
    )
    return ResponseBase(success=True, message=f"Updated merchant {payload.old_mid}", data=outcome)

@router.post(
    "/{payout_id}/mark-paid",
    response_model=ResponseBase,
    summary="Toggle a payout between paid and unpaid"
)
async def toggle_payout_paid(
    payout_id: int,
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ResponseBase:
    outcome = toggle_paid(db, payout_id, flags=flags, request_id=get_request_id(request))
    return ResponseBase(success=True, message=f"Payout marked as {outcome['paid_status']}", data=outcome)
