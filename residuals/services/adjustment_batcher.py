"""Adjustment batches over the append-only audit log.

One user action that touches several participants writes several audit rows;
they are perceived as one adjustment. Rows collapse into a batch when subject,
creation minute and outcome status all match. Batches are derived on every
read and never stored.

Bulk reject / confirm act on raw ``action_history`` ids, not batch keys, and
tolerate partial failure: each row is updated and committed on its own, failed
rows are reported, and the rows that did update stay committed. Every bulk
action appends one ``adjustment_batch`` summary row.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.config import BATCH_SETTINGS
from residuals.errors import BatchResult, DependencyError, NotFoundError
from residuals.models.db import ActionHistory, AdjustmentStatus
from residuals.models.schemas.adjustments import AdjustmentCounts
from residuals.services.audit_log import query_actions, record_action
from residuals.utils import get_logger, log_business_event
from residuals.utils.chunking import chunked
from residuals.utils.time import truncate_to_minute, utc_now

logger = get_logger(__name__)

ADJUSTMENT_ENTITY_TYPES = ("assignment", "deal")
DEFAULT_REJECTION_REASON = "Manually rejected"


@dataclass(frozen=True)
class BatchKey:
    subject: str
    minute: datetime
    status: str


def is_adjustment(row: ActionHistory) -> bool:
    if row.is_undone:
        return False
    if row.entity_type == "assignment":
        return True
    return row.entity_type == "deal" and (row.new_data or {}).get("adjustment_type") is not None


def batch_key(row: ActionHistory) -> Optional[BatchKey]:
    """Grouping key, or None for rows without a subject."""
    new_data = row.new_data or {}
    subject = new_data.get("deal_id") or row.entity_id
    if not subject or row.created_at is None:
        return None
    status = new_data.get("status") or AdjustmentStatus.CONFIRMED.value
    return BatchKey(subject=str(subject), minute=truncate_to_minute(row.created_at), status=str(status))


def summarize_batches(rows: Iterable[ActionHistory]) -> dict[str, AdjustmentCounts]:
    """Distinct batch counts per subject; pure function of the given snapshot."""
    batches: dict[str, set[BatchKey]] = {}
    for row in rows:
        if not is_adjustment(row):
            continue
        key = batch_key(row)
        if key is None:
            continue
        batches.setdefault(key.subject, set()).add(key)

    return {
        subject: AdjustmentCounts(
            total=len(keys),
            pending=sum(1 for k in keys if k.status == AdjustmentStatus.PENDING.value),
        )
        for subject, keys in batches.items()
    }


def load_adjustment_summary(session: Session) -> dict[str, AdjustmentCounts]:
    try:
        rows = query_actions(session, entity_types=ADJUSTMENT_ENTITY_TYPES)
    except SQLAlchemyError as exc:
        logger.error("Failed to read audit log for adjustment summary", error=str(exc))
        raise DependencyError("Failed to read adjustment records", cause=str(exc)) from exc
    return summarize_batches(rows)


def _apply_outcome(row: ActionHistory, outcome: dict[str, Any], *, void: bool) -> None:
    # Reassign rather than mutate so the JSON column is flagged dirty
    row.new_data = {**(row.new_data or {}), **outcome}
    if void:
        row.is_undone = True


def _bulk_update(
    session: Session,
    adjustment_ids: Sequence[int],
    outcome: dict[str, Any],
    *,
    void: bool,
    verb: str,
) -> BatchResult:
    result = BatchResult(total=len(adjustment_ids))
    found = 0
    for number, id_chunk in chunked(list(adjustment_ids), BATCH_SETTINGS["bulk_reject_chunk_size"]):
        try:
            rows = (
                session.query(ActionHistory)
                .filter(ActionHistory.id.in_(list(id_chunk)))
                .filter(ActionHistory.is_undone.is_(False))
                .order_by(ActionHistory.id)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Failed to fetch adjustments to {verb}", chunk=number, ids=list(id_chunk), error=str(exc))
            for target in id_chunk:
                result.record_error(target, f"Failed to {verb} {target}: {exc}")
            continue
        found += len(rows)

        for row in rows:
            row_id = row.id
            try:
                _apply_outcome(row, outcome, void=void)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error(f"Failed to {verb} adjustment", adjustment_id=row_id, error=str(exc))
                result.record_error(row_id, f"Failed to {verb} {row_id}: {exc}")
                continue
            result.succeeded += 1

    if found == 0 and not result.errors:
        raise NotFoundError("No valid adjustment records found", adjustment_ids=list(adjustment_ids))
    return result


def reject_adjustments(
    session: Session,
    adjustment_ids: Sequence[int],
    *,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> BatchResult:
    """Void the named audit rows, marking their outcome "rejected"."""
    reason = reason or DEFAULT_REJECTION_REASON
    outcome = {
        "status": AdjustmentStatus.REJECTED.value,
        "rejection_reason": reason,
        "rejected_at": utc_now().isoformat(),
    }
    result = _bulk_update(session, adjustment_ids, outcome, void=True, verb="reject")

    record_action(
        session,
        action_type="reject",
        entity_type="adjustment_batch",
        entity_id=adjustment_ids[0],
        entity_name=f"Rejected {result.succeeded} adjustment(s)",
        description=f"Rejected {result.succeeded} pending adjustment(s): {reason}",
        previous_data={"status": AdjustmentStatus.PENDING.value},
        new_data={
            "status": AdjustmentStatus.REJECTED.value,
            "rejected_ids": list(adjustment_ids),
            "rejected_count": result.succeeded,
            "reason": reason,
        },
        request_id=request_id,
    )
    session.commit()

    log_business_event(
        "adjustments_rejected",
        {"requested": len(adjustment_ids), "rejected": result.succeeded, "failed": result.failed},
        request_id=request_id,
    )
    return result


def confirm_adjustments(
    session: Session,
    adjustment_ids: Sequence[int],
    *,
    request_id: Optional[str] = None,
) -> BatchResult:
    """Mark the named audit rows' outcome "confirmed" without voiding them."""
    outcome = {"status": AdjustmentStatus.CONFIRMED.value, "confirmed_at": utc_now().isoformat()}
    result = _bulk_update(session, adjustment_ids, outcome, void=False, verb="confirm")

    record_action(
        session,
        action_type="confirm",
        entity_type="adjustment_batch",
        entity_id=adjustment_ids[0],
        entity_name=f"Confirmed {result.succeeded} adjustment(s)",
        description=f"Confirmed {result.succeeded} pending adjustment(s)",
        previous_data={"status": AdjustmentStatus.PENDING.value},
        new_data={
            "status": AdjustmentStatus.CONFIRMED.value,
            "confirmed_ids": list(adjustment_ids),
            "confirmed_count": result.succeeded,
        },
        request_id=request_id,
    )
    session.commit()

    log_business_event(
        "adjustments_confirmed",
        {"requested": len(adjustment_ids), "confirmed": result.succeeded, "failed": result.failed},
        request_id=request_id,
    )
    return result


__all__ = [
    "BatchKey",
    "is_adjustment",
    "batch_key",
    "summarize_batches",
    "load_adjustment_summary",
    "reject_adjustments",
    "confirm_adjustments",
]
