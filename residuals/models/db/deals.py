from __future__ import annotations
"""SQLAlchemy model for deals (revenue-sharing agreements per merchant)."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any
from sqlalchemy import Integer, String, DateTime, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .residual_events import ResidualEvent
    from .deal_participants import DealParticipant
from residuals.database import Base
from residuals.utils.time import utc_now
from .enums import PayoutType


def _new_deal_ref() -> str:
    return f"deal_{uuid.uuid4().hex[:12]}"


class Deal(Base):
    __tablename__ = "deals"
    # Reconstruction upserts on this key; there must never be two deals for it
    __table_args__ = (UniqueConstraint("mid", "payout_type", name="uq_deals_mid_payout_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # External deal reference carried onto payouts
    deal_id: Mapped[str | None] = mapped_column(String, default=_new_deal_ref, index=True)
    mid: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    payout_type: Mapped[str | None] = mapped_column(String, default=PayoutType.RESIDUAL.value)
    # Legacy embedded participants; shape normalized on every read
    participants_json: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, default=list)
    effective_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_legacy_import: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    events: Mapped[list[ResidualEvent]] = relationship("ResidualEvent", back_populates="deal")
    participants: Mapped[list[DealParticipant]] = relationship(
        "DealParticipant", back_populates="deal", cascade="all, delete-orphan"
    )
