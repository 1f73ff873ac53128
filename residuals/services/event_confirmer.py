"""Event confirmation: residual event -> one payout per deal participant.

Single public entry point ``EventConfirmer.confirm(session, event_id)``:
1. Loads the event and its deal (404 if the event is missing).
2. Detects an earlier confirmation (status or existing payouts) and returns it
   as a no-op, repairing the status if a previous run stopped half way.
3. Rejects deals with no participants or with participants lacking a partner
   reference (all-or-nothing, nothing written).
4. Computes net residual = volume - fees - adjustments - chargebacks.
   Negative values are clawback months, not errors.
5. Inserts every payout in one commit, then marks the event confirmed in a
   second commit. A failed payout insert leaves the event untouched; a failed
   status update is reported while the payouts stay.
6. Runs post-commit hooks (e.g. directory sync). Hook failures are logged and
   reported, never rolled back into the primary write.

The (csv_data_id, partner_airtable_id) unique constraint on payouts turns a
racing double confirmation into a detected no-op.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.config import FEATURE_FLAGS, INGESTION_SETTINGS, FeatureFlags
from residuals.errors import DependencyError, MissingPartnerReference, NoParticipants, NotFoundError
from residuals.models.db import AssignmentStatus, Deal, PaidStatus, Partner, Payout, ResidualEvent
from residuals.models.schemas.events import ConfirmResult
from residuals.models.schemas.participants import NormalizedParticipant
from residuals.services.audit_log import record_action
from residuals.services.participant_normalizer import normalize_participants
from residuals.services.status_validator import validate_assignment_status, validate_paid_status
from residuals.utils import get_logger, log_business_event

logger = get_logger(__name__)

PostCommitHook = Callable[[ResidualEvent, Sequence[Payout]], Any]


def compute_net_residual(event: ResidualEvent) -> float:
    return (
        (event.volume or 0.0)
        - (event.fees or 0.0)
        - (event.adjustments or 0.0)
        - (event.chargebacks or 0.0)
    )


def _participant_records(deal: Deal, flags: FeatureFlags) -> list[dict[str, Any]]:
    if flags.read_from_normalized_tables:
        return [
            {
                "partner_airtable_id": dp.partner.external_id if dp.partner else None,
                "partner_name": dp.partner.name if dp.partner else None,
                "partner_role": dp.role,
                "split_pct": dp.split_pct,
            }
            for dp in deal.participants
        ]
    return list(deal.participants_json or [])


class EventConfirmer:
    """Confirms residual events into payouts."""

    def __init__(
        self,
        flags: FeatureFlags | None = None,
        *,
        post_commit_hooks: Sequence[PostCommitHook] | None = None,
    ):
        self.flags = flags or FEATURE_FLAGS
        self.post_commit_hooks = list(post_commit_hooks or [])

    def _build_payouts(
        self,
        session: Session,
        event: ResidualEvent,
        deal: Deal,
        participants: list[NormalizedParticipant],
        net_residual: float,
    ) -> list[Payout]:
        assignment_status = AssignmentStatus.CONFIRMED.value
        paid_status = PaidStatus.UNPAID.value
        if self.flags.validate_status_fields:
            assignment_status = validate_assignment_status(assignment_status).value
            paid_status = validate_paid_status(paid_status).value

        partner_ids: dict[str, str] = {}
        if self.flags.write_partner_id_to_payouts:
            refs = [p.partner_airtable_id for p in participants]
            partner_ids = {
                ext: pid
                for ext, pid in session.query(Partner.external_id, Partner.id).filter(Partner.external_id.in_(refs))
                if ext
            }

        payout_type = event.payout_type or deal.payout_type or INGESTION_SETTINGS["default_payout_type"]
        return [
            Payout(
                csv_data_id=event.id,
                deal_id=deal.deal_id,
                payout_month=event.payout_month,
                payout_date=event.date,
                mid=event.mid,
                merchant_name=event.merchant_name,
                payout_type=payout_type,
                volume=event.volume or 0.0,
                fees=event.fees or 0.0,
                adjustments=event.adjustments or 0.0,
                chargebacks=event.chargebacks or 0.0,
                net_residual=net_residual,
                partner_airtable_id=p.partner_airtable_id,
                partner_id=partner_ids.get(p.partner_airtable_id),
                partner_name=p.partner_name,
                partner_role=p.partner_role,
                partner_split_pct=p.split_pct,
                partner_payout_amount=net_residual * (p.split_pct / 100),
                assignment_status=assignment_status,
                paid_status=paid_status,
            )
            for p in participants
        ]

    def _mark_confirmed(self, session: Session, event: ResidualEvent, payouts_created: int, request_id: Optional[str]) -> Optional[str]:
        """Second commit of the transition; returns an error message instead of raising."""
        status = AssignmentStatus.CONFIRMED.value
        if self.flags.validate_status_fields:
            status = validate_assignment_status(status).value
        try:
            event.assignment_status = status
            record_action(
                session,
                action_type="confirm",
                entity_type="csv_data",
                entity_id=event.id,
                entity_name=f"{event.merchant_name or event.mid}",
                description=f"Confirmed event {event.mid} ({event.payout_month}) into {payouts_created} payout(s)",
                new_data={"assignment_status": status, "payouts_created": payouts_created},
                request_id=request_id,
            )
            session.commit()
            return None
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "Event status update failed after payouts were inserted",
                event_id=event.id,
                mid=event.mid,
                error=str(exc),
            )
            return str(exc)

    def _run_hooks(self, event: ResidualEvent, payouts: Sequence[Payout]) -> list[str]:
        errors: list[str] = []
        for hook in self.post_commit_hooks:
            name = getattr(hook, "__name__", type(hook).__name__)
            try:
                hook(event, payouts)
            except Exception as exc:  # hooks are best-effort; the confirmation is already committed
                logger.error("Post-commit hook failed", hook=name, event_id=event.id, error=str(exc), exc_info=True)
                errors.append(f"{name}: {exc}")
        return errors

    def confirm(self, session: Session, event_id: int, *, request_id: Optional[str] = None) -> ConfirmResult:
        event: ResidualEvent | None = session.get(ResidualEvent, event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", event_id=event_id)

        net_residual = compute_net_residual(event)
        existing = session.query(Payout).filter(Payout.csv_data_id == event.id).count()
        if existing or event.assignment_status == AssignmentStatus.CONFIRMED.value:
            status_error = None
            if existing and event.assignment_status != AssignmentStatus.CONFIRMED.value:
                logger.warning("Repairing status of event with existing payouts", event_id=event.id, payouts=existing)
                status_error = self._mark_confirmed(session, event, existing, request_id)
            logger.info("Event already confirmed; skipping", event_id=event.id, payouts=existing)
            return ConfirmResult(
                event_id=event.id,
                payouts_created=0,
                net_residual=net_residual,
                already_confirmed=True,
                existing_payouts=existing,
                status_update_error=status_error,
            )

        deal = event.deal
        raw_participants = _participant_records(deal, self.flags) if deal is not None else []
        if deal is None or not raw_participants:
            logger.warning("Confirmation rejected: no participants", event_id=event.id, deal_id=event.deal_id)
            raise NoParticipants(event.id, event.deal_id)

        participants = normalize_participants(raw_participants)
        missing = [p.partner_name or "Unknown" for p in participants if not p.has_reference]
        if missing:
            logger.warning("Confirmation rejected: missing partner references", event_id=event.id, participants=missing)
            raise MissingPartnerReference(event.id, missing)

        payouts = self._build_payouts(session, event, deal, participants, net_residual)
        try:
            session.add_all(payouts)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            # A concurrent confirmation already inserted this event's payouts
            logger.warning("Payout insert hit idempotency key", event_id=event_id, error=str(exc.orig))
            return ConfirmResult(
                event_id=event_id,
                payouts_created=0,
                net_residual=net_residual,
                already_confirmed=True,
                existing_payouts=session.query(Payout).filter(Payout.csv_data_id == event_id).count(),
            )
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Payout insert failed; event left unconfirmed", event_id=event_id, error=str(exc))
            raise DependencyError("Failed to insert payouts", event_id=event_id, cause=str(exc)) from exc

        status_error = self._mark_confirmed(session, event, len(payouts), request_id)
        hook_errors = self._run_hooks(event, payouts)

        log_business_event(
            "event_confirmed",
            {
                "event_id": event_id,
                "mid": event.mid,
                "payouts_created": len(payouts),
                "net_residual": net_residual,
                "status_update_failed": status_error is not None,
            },
            request_id=request_id,
        )
        return ConfirmResult(
            event_id=event_id,
            payouts_created=len(payouts),
            net_residual=net_residual,
            status_update_error=status_error,
            hook_errors=hook_errors,
        )


__all__ = ["EventConfirmer", "PostCommitHook", "compute_net_residual"]
