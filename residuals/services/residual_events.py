"""Residual events before confirmation: assignment to a deal, correction, deletion.

Assignment links an event to an existing deal or to a deal created on the spot
(upserted on its mid + payout type key) and moves it to pending. Every
participant must carry a partner reference at this point, the same rule the
confirmation step enforces later.
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.config import FEATURE_FLAGS, INGESTION_SETTINGS, FeatureFlags
from residuals.errors import (
    DependencyError,
    InvalidStateTransition,
    MissingPartnerReference,
    NoParticipants,
    NotFoundError,
    ValidationError,
)
from residuals.models.db import AssignmentStatus, Deal, Payout, ResidualEvent
from residuals.models.db.deals import _new_deal_ref
from residuals.models.schemas.events import AssignResult, NewDeal
from residuals.models.schemas.participants import NormalizedParticipant
from residuals.services.audit_log import record_action
from residuals.services.participant_normalizer import normalize_participants
from residuals.services.status_validator import validate_assignment_status
from residuals.utils import get_logger, log_business_event
from residuals.utils.time import utc_now
from residuals.utils.upsert import upsert_rows

logger = get_logger(__name__)

# None covers legacy rows imported before the status column existed
DELETABLE_STATUSES = (AssignmentStatus.UNASSIGNED.value, AssignmentStatus.PENDING.value, None)


def _get_event(session: Session, event_id: int) -> ResidualEvent:
    event = session.get(ResidualEvent, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found", event_id=event_id)
    return event


def event_snapshot(event: ResidualEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "batch_id": event.batch_id,
        "mid": event.mid,
        "merchant_name": event.merchant_name,
        "volume": event.volume,
        "fees": event.fees,
        "adjustments": event.adjustments,
        "chargebacks": event.chargebacks,
        "date": event.date.isoformat() if event.date else None,
        "payout_month": event.payout_month,
        "row_hash": event.row_hash,
        "assignment_status": event.assignment_status,
        "payout_type": event.payout_type,
        "deal_id": event.deal_id,
    }


def _require_references(event_id: int, participants: list[NormalizedParticipant]) -> None:
    missing = [p.partner_name or "Unknown" for p in participants if not p.has_reference]
    if missing:
        logger.warning("Assignment rejected: missing partner references", event_id=event_id, participants=missing)
        raise MissingPartnerReference(event_id, missing)


def _upsert_deal(session: Session, new_deal: NewDeal, records: list[dict[str, Any]], payout_type: str) -> tuple[Deal, bool]:
    """Create the deal or refresh the participants of the one already holding its key."""
    key = session.query(Deal).filter(Deal.mid == new_deal.mid, Deal.payout_type == payout_type)
    created = key.first() is None
    now = utc_now()
    upsert_rows(
        session,
        Deal,
        [
            {
                "deal_id": _new_deal_ref(),
                "mid": new_deal.mid,
                "payout_type": payout_type,
                "participants_json": records,
                "assigned_at": now,
                "is_legacy_import": False,
                "created_at": now,
                "updated_at": now,
            }
        ],
        conflict_columns=["mid", "payout_type"],
        # The existing deal reference stays; payouts may already carry it
        update_columns=["participants_json", "assigned_at", "updated_at"],
    )
    return key.populate_existing().one(), created


def assign_event(
    session: Session,
    event_id: int,
    *,
    deal_id: Optional[int] = None,
    new_deal: Optional[NewDeal] = None,
    is_draft: bool = False,
    flags: FeatureFlags | None = None,
    request_id: Optional[str] = None,
) -> AssignResult:
    """Link an event to a deal and move it to pending (or keep it unassigned as a draft).

    Payouts are not created here; that happens on confirmation.
    """
    flags = flags or FEATURE_FLAGS
    if (deal_id is None) == (new_deal is None):
        raise ValidationError("Provide exactly one of deal_id or new_deal", event_id=event_id)

    event = _get_event(session, event_id)
    if event.assignment_status == AssignmentStatus.CONFIRMED.value:
        raise InvalidStateTransition(
            "Confirmed events cannot be reassigned",
            event_id=event_id,
            assignment_status=event.assignment_status,
        )

    status = AssignmentStatus.UNASSIGNED.value if is_draft else AssignmentStatus.PENDING.value
    if flags.validate_status_fields:
        status = validate_assignment_status(status).value

    deal: Deal | None = None
    if new_deal is not None:
        participants = normalize_participants(new_deal.participants)
        _require_references(event.id, participants)
        payout_type = new_deal.payout_type or event.payout_type or INGESTION_SETTINGS["default_payout_type"]
    else:
        deal = session.get(Deal, deal_id)
        if deal is None:
            raise NotFoundError(f"Deal {deal_id} not found", deal_id=deal_id)
        participants = normalize_participants(deal.participants_json)
        if not participants:
            raise NoParticipants(event.id, deal.id)
        _require_references(event.id, participants)
        payout_type = event.payout_type or deal.payout_type or INGESTION_SETTINGS["default_payout_type"]

    records = [p.to_record() for p in participants]
    before = {"assignment_status": event.assignment_status, "deal_id": event.deal_id}
    created = False
    try:
        if new_deal is not None:
            deal, created = _upsert_deal(session, new_deal, records, payout_type)
        event.deal_id = deal.id
        event.assignment_status = status
        event.payout_type = payout_type
        record_action(
            session,
            action_type="create" if created else "update",
            entity_type="assignment",
            entity_id=event.id,
            entity_name=event.merchant_name or event.mid,
            description=(
                f"Assigned {event.merchant_name or event.mid} to "
                f"{', '.join(p.partner_name or p.partner_airtable_id for p in participants)}"
            ),
            previous_data=before,
            new_data={"assignment_status": status, "deal_id": deal.deal_id, "participants": records},
            request_id=request_id,
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to assign event", event_id=event_id, error=str(exc))
        raise DependencyError("Failed to assign event", event_id=event_id, cause=str(exc)) from exc

    log_business_event(
        "event_assigned",
        {
            "event_id": event_id,
            "deal_id": deal.id,
            "assignment_status": status,
            "participants": len(participants),
            "created_deal": created,
        },
        request_id=request_id,
    )
    return AssignResult(
        event_id=event_id,
        deal_id=deal.id,
        deal_ref=deal.deal_id,
        assignment_status=status,
        payout_type=payout_type,
        participants_count=len(participants),
        created_deal=created,
    )


def update_event(
    session: Session,
    event_id: int,
    *,
    mid: Optional[str] = None,
    merchant_name: Optional[str] = None,
    request_id: Optional[str] = None,
) -> ResidualEvent:
    """Correct an event's merchant id / name; the mid stays a trimmed string."""
    event = _get_event(session, event_id)
    before = {"mid": event.mid, "merchant_name": event.merchant_name}
    if mid is not None:
        event.mid = str(mid).strip()
    if merchant_name is not None:
        event.merchant_name = merchant_name

    record_action(
        session,
        action_type="update",
        entity_type="csv_data",
        entity_id=event.id,
        entity_name=event.merchant_name,
        description=f"Updated event {event.id} merchant details",
        previous_data=before,
        new_data={"mid": event.mid, "merchant_name": event.merchant_name},
        request_id=request_id,
    )
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to update event", event_id=event_id, error=str(exc))
        raise DependencyError("Failed to update event", event_id=event_id, cause=str(exc)) from exc
    session.refresh(event)
    logger.info("Event updated", event_id=event_id, mid=event.mid, request_id=request_id)
    return event


def delete_event(session: Session, event_id: int, *, request_id: Optional[str] = None) -> dict[str, Any]:
    """Delete an unconfirmed event together with any stray payouts it left.

    Confirmed events have payouts that may already be paid; they must go
    through a reversal flow instead.
    """
    event = _get_event(session, event_id)
    if event.assignment_status not in DELETABLE_STATUSES:
        raise InvalidStateTransition(
            "Can only delete unassigned or pending events",
            event_id=event_id,
            assignment_status=event.assignment_status,
        )

    snapshot = event_snapshot(event)
    try:
        removed = (
            session.query(Payout)
            .filter(Payout.csv_data_id == event.id)
            .filter(Payout.assignment_status != AssignmentStatus.CONFIRMED.value)
            .delete(synchronize_session=False)
        )
        record_action(
            session,
            action_type="delete",
            entity_type="csv_data",
            entity_id=event.id,
            entity_name=event.merchant_name,
            description=f"Deleted event: {event.merchant_name} (MID: {event.mid})",
            previous_data={"event": snapshot, "payouts_removed": removed},
            request_id=request_id,
        )
        session.delete(event)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to delete event", event_id=event_id, error=str(exc))
        raise DependencyError("Failed to delete event", event_id=event_id, cause=str(exc)) from exc

    log_business_event(
        "event_deleted",
        {"event_id": event_id, "mid": snapshot["mid"], "payouts_removed": removed},
        request_id=request_id,
    )
    return {"event_id": event_id, "payouts_removed": removed}


__all__ = ["assign_event", "update_event", "delete_event", "event_snapshot", "DELETABLE_STATUSES"]
