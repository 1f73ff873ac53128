"""
Adjustment endpoints: per-deal batch counts and bulk reject / confirm.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from residuals.api.deps import get_db, get_request_id
from residuals.errors import BatchResult
from residuals.models.schemas.adjustments import AdjustmentActionRequest, AdjustmentSummary
from residuals.models.schemas.base import BatchErrorDetail, BatchResponse
from residuals.services.adjustment_batcher import confirm_adjustments, load_adjustment_summary, reject_adjustments
from residuals.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

def _batch_response(result: BatchResult, verb: str) -> BatchResponse:
    # Partial failure is still a success; failed rows are listed in errors
    return BatchResponse(
        success=True,
        message=f"{verb} {result.succeeded} of {result.total} adjustment(s)",
        data={verb.lower(): result.succeeded},
        total=result.total,
        succeeded=result.succeeded,
        errors=[BatchErrorDetail(**e) for e in result.errors],
    )

@router.get(
    "/summary",
    response_model=AdjustmentSummary,
    summary="Adjustment batch counts per deal"
)
async def adjustment_summary(db: Session = Depends(get_db)) -> AdjustmentSummary:
    """Rows by the same deal within the same minute and status count as one batch."""
    return AdjustmentSummary(success=True, summary=load_adjustment_summary(db))

@router.post(
    "/reject",
    response_model=BatchResponse,
    summary="Reject (void) adjustment audit rows"
)
async def reject(
    payload: AdjustmentActionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> BatchResponse:
    request_id = get_request_id(request)
    logger.info("Rejecting adjustments", ids=payload.adjustment_ids, reason=payload.reason, request_id=request_id)
    result = reject_adjustments(db, payload.adjustment_ids, reason=payload.reason, request_id=request_id)
    return _batch_response(result, "Rejected")

@router.post(
    "/confirm",
    response_model=BatchResponse,
    summary="Confirm pending adjustment audit rows"
)
async def confirm(
    payload: AdjustmentActionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> BatchResponse:
    request_id = get_request_id(request)
    logger.info("Confirming adjustments", ids=payload.adjustment_ids, request_id=request_id)
    result = confirm_adjustments(db, payload.adjustment_ids, request_id=request_id)
    return _batch_response(result, "Confirmed")
