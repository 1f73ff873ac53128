from __future__ import annotations
"""SQLAlchemy model for normalized deal participants (deal x partner junction)."""
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Date, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .deals import Deal
    from .partners import Partner
from residuals.database import Base
from residuals.utils.time import utc_now

class DealParticipant(Base):
    __tablename__ = "deal_participants"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), nullable=False, index=True)
    partner_id: Mapped[str] = mapped_column(String(36), ForeignKey("partners.id"), nullable=False, index=True)
    split_pct: Mapped[float] = mapped_column(Float, default=0.0)
    role: Mapped[str] = mapped_column(String, default="Partner")
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    deal: Mapped["Deal"] = relationship("Deal", back_populates="participants")
    partner: Mapped["Partner"] = relationship("Partner")
