"""Paid-status and merchant-id operations on existing payouts.

Payout amounts are never re-derived here; only ``paid_status``/``paid_at``
and the merchant identity fields change.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.config import BATCH_SETTINGS, FEATURE_FLAGS, FeatureFlags
from residuals.errors import BatchResult, DependencyError, NotFoundError, ValidationError
from residuals.models.db import Deal, PaidStatus, Payout, ResidualEvent
from residuals.services.audit_log import record_action
from residuals.services.status_validator import validate_paid_status
from residuals.utils import get_logger, log_business_event
from residuals.utils.chunking import chunked
from residuals.utils.time import utc_now

logger = get_logger(__name__)


def _paid_value(status: PaidStatus, flags: FeatureFlags) -> str:
    if flags.validate_status_fields:
        return validate_paid_status(status.value).value
    return status.value


def toggle_paid(
    session: Session,
    payout_id: int,
    *,
    flags: FeatureFlags | None = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    """Flip a payout between paid and unpaid, stamping or clearing ``paid_at``."""
    flags = flags or FEATURE_FLAGS
    payout = session.get(Payout, payout_id)
    if payout is None:
        raise NotFoundError("Payout not found", payout_id=payout_id)

    previous = payout.paid_status
    target = PaidStatus.UNPAID if previous == PaidStatus.PAID.value else PaidStatus.PAID
    payout.paid_status = _paid_value(target, flags)
    payout.paid_at = utc_now() if target is PaidStatus.PAID else None

    record_action(
        session,
        action_type="update",
        entity_type="payout",
        entity_id=payout.id,
        entity_name=f"{payout.merchant_name or payout.mid} - {payout.partner_name}",
        description=f"Marked payout as {payout.paid_status}",
        previous_data={"paid_status": previous},
        new_data={"paid_status": payout.paid_status},
        request_id=request_id,
    )
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to toggle payout paid status", payout_id=payout_id, error=str(exc))
        raise DependencyError("Failed to update payout", payout_id=payout_id, cause=str(exc)) from exc

    logger.info("Payout paid status toggled", payout_id=payout_id, paid_status=target.value, request_id=request_id)
    return {"id": payout_id, "paid_status": target.value}


def mass_mark_paid(
    session: Session,
    partner_refs: Sequence[str],
    *,
    flags: FeatureFlags | None = None,
    chunk_size: int | None = None,
    request_id: Optional[str] = None,
) -> BatchResult:
    """Mark every unpaid payout of the given partners paid, chunk by chunk."""
    flags = flags or FEATURE_FLAGS
    refs = [r.strip() for r in partner_refs if r and r.strip()]
    if not refs:
        raise ValidationError("No partner IDs provided")

    try:
        payout_ids = [
            pid
            for (pid,) in session.query(Payout.id)
            .filter(Payout.partner_airtable_id.in_(refs))
            .filter(Payout.paid_status == PaidStatus.UNPAID.value)
            .order_by(Payout.id)
        ]
    except SQLAlchemyError as exc:
        logger.error("Failed to load unpaid payouts", partners=refs, error=str(exc))
        raise DependencyError("Failed to load unpaid payouts", cause=str(exc)) from exc

    paid = _paid_value(PaidStatus.PAID, flags)
    result = BatchResult(total=len(payout_ids))
    size = int(chunk_size or BATCH_SETTINGS["mass_mark_paid_chunk_size"])
    for number, chunk in chunked(payout_ids, size):
        try:
            updated = (
                session.query(Payout)
                .filter(Payout.id.in_(list(chunk)))
                .filter(Payout.paid_status == PaidStatus.UNPAID.value)
                .update({Payout.paid_status: paid, Payout.paid_at: utc_now()}, synchronize_session=False)
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Mass mark paid chunk failed", chunk=number, payout_ids=list(chunk), error=str(exc))
            result.record_error(f"chunk {number}", str(exc))
            continue
        result.succeeded += updated

    if result.succeeded:
        record_action(
            session,
            action_type="bulk_update",
            entity_type="payout",
            entity_id=",".join(refs),
            entity_name=f"{len(refs)} partners",
            description=f"Mass marked {result.succeeded} payouts as paid for {len(refs)} partner(s)",
            previous_data={"paid_status": PaidStatus.UNPAID.value, "payout_ids": payout_ids},
            new_data={"paid_status": paid, "count": result.succeeded, "partner_ids": refs},
            request_id=request_id,
        )
        session.commit()

    log_business_event(
        "payouts_mass_marked_paid",
        {"partners": len(refs), "updated": result.succeeded, "failed_chunks": result.failed},
        request_id=request_id,
    )
    return result


def update_merchant(
    session: Session,
    old_mid: str,
    *,
    new_mid: Optional[str] = None,
    new_merchant_name: Optional[str] = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    """Cascade a merchant id / name correction across payouts, events and deals.

    Payouts and events change together. Deals are matched both through the
    deal labels carried on the affected payouts and by the old mid, and are
    updated in a second step whose failure (e.g. the new key already exists) is
    reported without undoing the first.
    """
    old_mid = str(old_mid or "").strip()
    if not old_mid:
        raise ValidationError("Old MID is required")
    if new_mid is not None:
        new_mid = str(new_mid).strip()

    changes: dict[str, Any] = {}
    if new_mid is not None:
        changes["mid"] = new_mid
    if new_merchant_name is not None:
        changes["merchant_name"] = new_merchant_name
    if not changes:
        raise ValidationError("Nothing to update", old_mid=old_mid)

    try:
        deal_labels = sorted(
            {label for (label,) in session.query(Payout.deal_id).filter(Payout.mid == old_mid) if label}
        )
        payouts_updated = (
            session.query(Payout)
            .filter(Payout.mid == old_mid)
            .update({getattr(Payout, k): v for k, v in changes.items()}, synchronize_session=False)
        )
        events_updated = (
            session.query(ResidualEvent)
            .filter(ResidualEvent.mid == old_mid)
            .update({getattr(ResidualEvent, k): v for k, v in changes.items()}, synchronize_session=False)
        )
        record_action(
            session,
            action_type="update",
            entity_type="merchant",
            entity_id=old_mid,
            entity_name=new_merchant_name,
            description=f"Updated merchant {old_mid}",
            previous_data={"mid": old_mid},
            new_data=changes,
            request_id=request_id,
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to update merchant", old_mid=old_mid, error=str(exc))
        raise DependencyError("Failed to update merchant", old_mid=old_mid, cause=str(exc)) from exc

    deals_updated = 0
    errors: list[str] = []
    if new_mid is not None:
        try:
            deal_filter = Deal.mid == old_mid
            if deal_labels:
                deal_filter = deal_filter | Deal.deal_id.in_(deal_labels)
            deals_updated = (
                session.query(Deal)
                .filter(deal_filter)
                .update({Deal.mid: new_mid, Deal.updated_at: utc_now()}, synchronize_session=False)
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Failed to update deals for merchant", old_mid=old_mid, new_mid=new_mid, error=str(exc))
            errors.append(f"deals: {exc}")

    log_business_event(
        "merchant_updated",
        {
            "old_mid": old_mid,
            "new_mid": new_mid,
            "payouts_updated": payouts_updated,
            "events_updated": events_updated,
            "deals_updated": deals_updated,
        },
        request_id=request_id,
    )
    return {
        "payouts_updated": payouts_updated,
        "events_updated": events_updated,
        "deals_updated": deals_updated,
        "errors": errors,
    }


__all__ = ["toggle_paid", "mass_mark_paid", "update_merchant"]
