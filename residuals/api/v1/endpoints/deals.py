"""
Deal recovery endpoints: reconstruction from payouts and partner reference backfill.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import time
from residuals.api.deps import get_db, get_feature_flags, get_request_id
from residuals.config import FeatureFlags
from residuals.integrations.partner_directory import PartnerDirectoryClient, build_name_map
from residuals.models.schemas.base import ResponseBase
from residuals.services.deal_reconstructor import DealReconstructor
from residuals.services.partner_backfill import backfill_partner_references, mirror_partners
from residuals.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

def get_directory_client() -> PartnerDirectoryClient:
    return PartnerDirectoryClient()

@router.post(
    "/reconstruct",
    response_model=ResponseBase,
    summary="Rebuild deals from legacy payouts"
)
async def reconstruct_deals(
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ResponseBase:
    """Safe to re-run: deals are upserted on (mid, payout_type).

    Failed batches are listed in ``errors``; earlier batches stay committed.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    logger.info("Deal reconstruction requested", request_id=request_id)

    result = DealReconstructor(flags).reconstruct(db, request_id=request_id)

    log_performance(
        operation="reconstruct_deals",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"deals_upserted": result.deals_upserted}
    )
    return ResponseBase(
        success=True,
        message=f"Upserted {result.deals_upserted} deal(s) from {result.payouts_processed} payout(s)",
        data=result.model_dump()
    )

@router.post(
    "/backfill-partner-references",
    response_model=ResponseBase,
    summary="Fill missing partner references from the partner directory"
)
async def backfill_references(
    request: Request,
    db: Session = Depends(get_db),
    client: PartnerDirectoryClient = Depends(get_directory_client),
) -> ResponseBase:
    request_id = get_request_id(request)
    partners = await client.fetch_all()
    mirror_partners(db, partners)
    logger.info("Partner directory loaded for backfill", partners=len(partners), request_id=request_id)

    result = backfill_partner_references(db, build_name_map(partners), request_id=request_id)
    return ResponseBase(
        success=True,
        message=f"Fixed {result.participants_fixed} participant(s) across {result.deals_fixed} deal(s)",
        data=result.model_dump()
    )
