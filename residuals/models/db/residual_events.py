from __future__ import annotations
"""SQLAlchemy model for ingested residual events (one CSV line per merchant/month)."""
from datetime import datetime
from typing import TYPE_CHECKING, Any
from sqlalchemy import Integer, String, DateTime, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .deals import Deal
from residuals.database import Base
from residuals.utils.time import utc_now
from .enums import AssignmentStatus

class ResidualEvent(Base):
    __tablename__ = "csv_data"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    batch_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    # Opaque merchant identifier; String so leading zeros survive
    mid: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    merchant_name: Mapped[str | None] = mapped_column(String, nullable=True)

    volume: Mapped[float | None] = mapped_column(Float, default=0.0)
    fees: Mapped[float | None] = mapped_column(Float, default=0.0)
    adjustments: Mapped[float | None] = mapped_column(Float, default=0.0)
    chargebacks: Mapped[float | None] = mapped_column(Float, default=0.0)

    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_month: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)
    row_hash: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)

    assignment_status: Mapped[str | None] = mapped_column(String, default=AssignmentStatus.UNASSIGNED.value, index=True)
    payout_type: Mapped[str | None] = mapped_column(String, nullable=True)
    deal_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("deals.id"), nullable=True, index=True)
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    deal: Mapped[Deal | None] = relationship("Deal", back_populates="events")
