"""Deal reconstruction from historical payouts.

Recovery path for deals that were lost or never created for imported history:
legacy payouts are grouped by merchant id and folded into one deal per
``(mid, payout_type)``. Merchant identity wins over the original deal linkage,
so fragmented historical ``deal_id`` values collapse into one deal.

Within a merchant the first payout seen for a partner reference decides role
and split; later rows for the same reference are ignored. Upserts overwrite on
the deal key and run in fixed-size chunks that commit independently, so a rerun
is always safe and a failed chunk never loses the ones before it.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from residuals.config import BATCH_SETTINGS, FEATURE_FLAGS, INGESTION_SETTINGS, FeatureFlags
from residuals.errors import DependencyError
from residuals.models.db import Deal, DealParticipant, Partner, Payout
from residuals.models.db.deals import _new_deal_ref
from residuals.models.schemas.deals import ReconstructionResult
from residuals.services.participant_normalizer import normalize_participant
from residuals.utils import get_logger, log_business_event, log_performance
from residuals.utils.chunking import chunked
from residuals.utils.time import utc_now
from residuals.utils.upsert import upsert_rows

logger = get_logger(__name__)


@dataclass
class DealCandidate:
    mid: Optional[str]
    payout_type: str
    deal_id: str
    participants: list[dict[str, Any]] = field(default_factory=list)
    effective_date: Any = None
    assigned_at: Any = None
    created_at: Any = None
    updated_at: Any = None

    def to_row(self) -> dict[str, Any]:
        now = utc_now()
        return {
            "deal_id": self.deal_id,
            "mid": self.mid,
            "payout_type": self.payout_type,
            "participants_json": self.participants,
            "effective_date": self.effective_date,
            "assigned_at": self.assigned_at,
            "is_legacy_import": True,
            "created_at": self.created_at or now,
            "updated_at": self.updated_at or now,
        }


def build_candidates(payouts: Sequence[Payout]) -> list[DealCandidate]:
    """Group payouts by mid (exact string match) into deal candidates.

    Pure function of the input order: the first payout of a group supplies the
    deal fields, the first payout per partner reference supplies role and split.
    """
    groups: dict[Optional[str], list[Payout]] = {}
    for payout in payouts:
        groups.setdefault(payout.mid, []).append(payout)

    candidates: list[DealCandidate] = []
    for mid, group in groups.items():
        first = group[0]
        seen: dict[str, dict[str, Any]] = {}
        for payout in group:
            ref = (payout.partner_airtable_id or "").strip()
            if not ref or ref in seen:
                continue
            seen[ref] = normalize_participant(
                {
                    "partner_airtable_id": ref,
                    "partner_name": payout.partner_name,
                    "partner_role": payout.partner_role,
                    "split_pct": payout.partner_split_pct,
                }
            ).to_record()

        candidates.append(
            DealCandidate(
                mid=mid,
                payout_type=first.payout_type or INGESTION_SETTINGS["default_payout_type"],
                deal_id=first.deal_id or _new_deal_ref(),
                participants=list(seen.values()),
                effective_date=first.payout_date,
                assigned_at=first.created_at,
                created_at=first.created_at,
                updated_at=first.updated_at,
            )
        )
    return candidates


class DealReconstructor:
    """Rebuilds deals from ``is_legacy_import`` payouts."""

    def __init__(self, flags: FeatureFlags | None = None, *, batch_size: int | None = None):
        self.flags = flags or FEATURE_FLAGS
        self.batch_size = int(batch_size or BATCH_SETTINGS["deal_reconstruction_batch_size"])

    def _load_legacy_payouts(self, session: Session) -> list[Payout]:
        try:
            return (
                session.query(Payout)
                .filter(Payout.is_legacy_import.is_(True))
                .order_by(Payout.id)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to load legacy payouts", error=str(exc))
            raise DependencyError("Failed to load legacy payouts", cause=str(exc)) from exc

    def _replace_participants(self, session: Session, chunk: Sequence[DealCandidate]) -> None:
        """Dual write: rewrite deal_participants for the chunk's deals (replace strategy)."""
        mids = [c.mid for c in chunk]
        deals = session.query(Deal).filter(Deal.mid.in_(mids)).all()
        by_key = {(d.mid, d.payout_type): d for d in deals}

        refs = {p["partner_airtable_id"] for c in chunk for p in c.participants}
        partner_ids = {
            ext: pid
            for ext, pid in session.query(Partner.external_id, Partner.id).filter(Partner.external_id.in_(refs))
        }

        for candidate in chunk:
            deal = by_key.get((candidate.mid, candidate.payout_type))
            if deal is None:
                continue
            session.query(DealParticipant).filter(DealParticipant.deal_id == deal.id).delete(synchronize_session=False)
            effective_from = candidate.effective_date.date() if candidate.effective_date else None
            for participant in candidate.participants:
                partner_id = partner_ids.get(participant["partner_airtable_id"])
                if partner_id is None:
                    logger.debug(
                        "Skipping participant without normalized partner",
                        mid=candidate.mid,
                        partner_airtable_id=participant["partner_airtable_id"],
                    )
                    continue
                session.add(
                    DealParticipant(
                        deal_id=deal.id,
                        partner_id=partner_id,
                        split_pct=participant["split_pct"],
                        role=participant["partner_role"],
                        effective_from=effective_from,
                        created_by="deal_reconstruction",
                    )
                )

    def reconstruct(self, session: Session, *, request_id: Optional[str] = None) -> ReconstructionResult:
        start = time.time()
        payouts = self._load_legacy_payouts(session)
        candidates = build_candidates(payouts)
        logger.info(
            "Deal reconstruction started",
            payouts=len(payouts),
            merchants=len(candidates),
            batch_size=self.batch_size,
            request_id=request_id,
        )

        upserted = 0
        batches_failed = 0
        errors: list[dict[str, Any]] = []
        for number, chunk in chunked(candidates, self.batch_size):
            try:
                upsert_rows(
                    session,
                    Deal,
                    [c.to_row() for c in chunk],
                    conflict_columns=["mid", "payout_type"],
                    update_columns=[
                        "deal_id",
                        "participants_json",
                        "effective_date",
                        "assigned_at",
                        "is_legacy_import",
                        "updated_at",
                    ],
                )
                if self.flags.dual_write_deal_participants:
                    self._replace_participants(session, chunk)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                batches_failed += 1
                errors.append({"target": f"batch {number}", "message": str(exc)})
                logger.error(
                    "Deal reconstruction batch failed",
                    batch=number,
                    mids=[c.mid for c in chunk],
                    error=str(exc),
                )
                continue
            upserted += len(chunk)
            logger.info("Deal reconstruction batch committed", batch=number, upserted=upserted, total=len(candidates))

        log_performance(
            "deal_reconstruction",
            (time.time() - start) * 1000,
            {"payouts": len(payouts), "deals": upserted, "batches_failed": batches_failed},
        )
        log_business_event(
            "deals_reconstructed",
            {"payouts_processed": len(payouts), "deals_upserted": upserted, "batches_failed": batches_failed},
            request_id=request_id,
        )
        return ReconstructionResult(
            payouts_processed=len(payouts),
            merchants=len(candidates),
            deals_upserted=upserted,
            batches_failed=batches_failed,
            errors=errors,
        )


__all__ = ["DealCandidate", "DealReconstructor", "build_candidates"]
