"""Partner reference repair and the normalized partners mirror.

``backfill_partner_references`` fills empty participant references on deals and
payouts by partner name so that those deals become confirmable.
``mirror_partners`` upserts directory records into ``partners`` so the
normalized paths (partner uuid on payouts, deal_participants) can resolve them.
"""
from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.errors import DependencyError
from residuals.integrations.partner_directory import DirectoryPartner
from residuals.models.db import Deal, ExternalSource, Payout, Partner
from residuals.models.schemas.base import BatchErrorDetail
from residuals.models.schemas.deals import BackfillResult, UnfixableParticipant
from residuals.utils import get_logger, log_business_event
from residuals.utils.time import utc_now
from residuals.utils.upsert import upsert_rows

logger = get_logger(__name__)

# Response payload lists only the first few unfixable names
UNFIXABLE_SAMPLE_SIZE = 20


def lookup_reference(name_map: Mapping[str, str], name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return name_map.get(name) or name_map.get(name.lower().strip())


def backfill_partner_references(
    session: Session,
    name_map: Mapping[str, str],
    *,
    request_id: Optional[str] = None,
) -> BackfillResult:
    deals_fixed = 0
    participants_fixed = 0
    unfixable: list[UnfixableParticipant] = []
    errors: list[BatchErrorDetail] = []

    try:
        deals = session.query(Deal).filter(Deal.participants_json.isnot(None)).order_by(Deal.id).all()
    except SQLAlchemyError as exc:
        logger.error("Failed to load deals for backfill", error=str(exc))
        raise DependencyError("Failed to load deals", cause=str(exc)) from exc

    for deal in deals:
        fixed: list[dict[str, Any]] = []
        filled = 0
        for participant in deal.participants_json or []:
            if participant.get("partner_airtable_id"):
                fixed.append(participant)
                continue
            name = participant.get("partner_name") or participant.get("name") or ""
            reference = lookup_reference(name_map, name)
            if reference is None:
                unfixable.append(UnfixableParticipant(mid=deal.mid, name=name))
                fixed.append(participant)
                continue
            filled += 1
            fixed.append({**participant, "partner_airtable_id": reference, "partner_id": reference})

        if not filled:
            continue
        deal_pk = deal.id
        try:
            deal.participants_json = fixed
            deal.updated_at = utc_now()
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Failed to backfill deal participants", deal_id=deal_pk, error=str(exc))
            errors.append(BatchErrorDetail(target=deal_pk, message=f"Failed to update deal {deal_pk}: {exc}"))
            continue
        deals_fixed += 1
        participants_fixed += filled

    payouts_fixed = 0
    bad_payouts = (
        session.query(Payout)
        .filter(or_(Payout.partner_airtable_id.is_(None), Payout.partner_airtable_id == ""))
        .order_by(Payout.id)
        .all()
    )
    for payout in bad_payouts:
        reference = lookup_reference(name_map, payout.partner_name)
        if reference is None:
            continue
        payout_pk = payout.id
        try:
            payout.partner_airtable_id = reference
            session.commit()
        except SQLAlchemyError as exc:
            # Another payout of the same event may already hold this reference
            session.rollback()
            logger.error("Failed to backfill payout reference", payout_id=payout_pk, error=str(exc))
            errors.append(BatchErrorDetail(target=payout_pk, message=f"Failed to update payout {payout_pk}: {exc}"))
            continue
        payouts_fixed += 1

    log_business_event(
        "partner_references_backfilled",
        {
            "deals_fixed": deals_fixed,
            "participants_fixed": participants_fixed,
            "payouts_fixed": payouts_fixed,
            "unfixable": len(unfixable),
            "errors": len(errors),
        },
        request_id=request_id,
    )
    return BackfillResult(
        deals_fixed=deals_fixed,
        participants_fixed=participants_fixed,
        payouts_fixed=payouts_fixed,
        unfixable=unfixable[:UNFIXABLE_SAMPLE_SIZE],
        unfixable_count=len(unfixable),
        errors=errors,
    )


def mirror_partners(session: Session, partners: Sequence[DirectoryPartner]) -> int:
    """Upsert directory partners into ``partners`` keyed on the external reference."""
    rows = [
        {
            "id": str(uuid.uuid4()),
            "external_id": p.reference,
            "external_source": ExternalSource.AIRTABLE.value,
            "name": p.name,
            "email": p.email or None,
            "role": p.role,
            "is_active": p.status.lower() == "active",
            "created_at": utc_now(),
        }
        for p in partners
    ]
    try:
        written = upsert_rows(
            session,
            Partner,
            rows,
            conflict_columns=["external_id"],
            update_columns=["name", "email", "role", "is_active"],
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to mirror directory partners", partners=len(rows), error=str(exc))
        raise DependencyError("Failed to mirror partners", cause=str(exc)) from exc
    logger.info("Directory partners mirrored", partners=len(rows))
    return written


__all__ = ["backfill_partner_references", "mirror_partners", "lookup_reference"]
