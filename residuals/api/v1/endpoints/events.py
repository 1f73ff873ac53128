"""
Residual event endpoints: CSV import, assignment, correction, deletion and confirmation.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import time
from residuals.api.deps import get_db, get_feature_flags, get_request_id
from residuals.config import FeatureFlags
from residuals.models.schemas.base import ResponseBase
from residuals.models.schemas.events import AssignEventRequest, CsvImportRequest, CsvImportResult, EventUpdate
from residuals.services.csv_ingestor import CsvIngestor
from residuals.services.event_confirmer import EventConfirmer
from residuals.services.residual_events import assign_event, delete_event, event_snapshot, update_event
from residuals.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/import",
    response_model=ResponseBase,
    summary="Import a residual CSV export"
)
async def import_csv(
    payload: CsvImportRequest,
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ResponseBase:
    """Parse and persist a CSV export.

    Row-level parse errors are returned next to the counts; rows already
    imported (same dedup hash) are skipped, so re-uploading a file is a no-op.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    ingestor = CsvIngestor(flags)

    parsed = ingestor.parse(payload.csv_text, payout_month=payload.payout_month)
    logger.info(
        "CSV parsed",
        rows=len(parsed.rows),
        errors=len(parsed.errors),
        payout_month=payload.payout_month,
        request_id=request_id
    )
    batch_id, inserted, duplicates = ingestor.import_rows(
        db, parsed.rows, batch_id=payload.batch_id, request_id=request_id
    )
    result = CsvImportResult(
        batch_id=batch_id,
        parsed=len(parsed.rows),
        inserted=inserted,
        duplicates=duplicates,
        errors=parsed.errors,
    )

    log_performance(
        operation="csv_import",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"rows": len(parsed.rows), "inserted": inserted}
    )
    return ResponseBase(
        success=True,
        message=f"Imported {inserted} row(s), skipped {duplicates} duplicate(s)",
        data=result.model_dump()
    )

@router.post(
    "/{event_id}/assign",
    response_model=ResponseBase,
    summary="Assign an event to an existing or new deal"
)
async def assign_event_to_deal(
    event_id: int,
    payload: AssignEventRequest,
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ResponseBase:
    """Link the event to ``deal_id`` or to ``new_deal`` (upserted on mid + payout type).

    The event moves to pending unless ``is_draft`` is set. Every participant
    needs a partner reference; no payouts are written until confirmation.
    """
    request_id = get_request_id(request)
    result = assign_event(
        db,
        event_id,
        deal_id=payload.deal_id,
        new_deal=payload.new_deal,
        is_draft=payload.is_draft,
        flags=flags,
        request_id=request_id,
    )
    logger.info(
        "Event assigned",
        event_id=event_id,
        deal_id=result.deal_id,
        status=result.assignment_status,
        request_id=request_id
    )
    return ResponseBase(
        success=True,
        message=f"Event assigned to deal {result.deal_ref}",
        data=result.model_dump()
    )

@router.patch(
    "/{event_id}",
    response_model=ResponseBase,
    summary="Correct an event's merchant details"
)
async def patch_event(
    event_id: int,
    payload: EventUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> ResponseBase:
    event = update_event(
        db,
        event_id,
        mid=payload.mid,
        merchant_name=payload.merchant_name,
        request_id=get_request_id(request),
    )
    return ResponseBase(success=True, message="Event updated", data=event_snapshot(event))

@router.delete(
    "/{event_id}",
    response_model=ResponseBase,
    summary="Delete an unassigned or pending event"
)
async def remove_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> ResponseBase:
    outcome = delete_event(db, event_id, request_id=get_request_id(request))
    return ResponseBase(success=True, message="Event deleted", data=outcome)

@router.post(
    "/{event_id}/confirm",
    response_model=ResponseBase,
    summary="Confirm an event into per-partner payouts"
)
async def confirm_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ResponseBase:
    """Create one payout per deal participant and mark the event confirmed.

    Re-confirming is a no-op reported with ``already_confirmed``.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    confirmer = EventConfirmer(flags, post_commit_hooks=getattr(request.app.state, "post_commit_hooks", None))
    result = confirmer.confirm(db, event_id, request_id=request_id)

    log_performance(
        operation="confirm_event",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"event_id": event_id, "payouts_created": result.payouts_created}
    )
    if result.already_confirmed:
        message = "Event already confirmed"
    else:
        message = f"Created {result.payouts_created} payout(s)"
    return ResponseBase(success=True, message=message, data=result.model_dump())
