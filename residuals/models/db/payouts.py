from __future__ import annotations
"""SQLAlchemy model for per-partner payout line items.

A payout is derived once from (residual event x participant) and never
re-derived; only paid status and merchant identifier corrections mutate it.
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Float, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from residuals.database import Base
from residuals.utils.time import utc_now
from .enums import AssignmentStatus, PaidStatus

class Payout(Base):
    __tablename__ = "payouts"
    # Idempotency key: confirming the same event twice cannot duplicate a partner's line
    __table_args__ = (
        UniqueConstraint("csv_data_id", "partner_airtable_id", name="uq_payouts_event_partner"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    csv_data_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("csv_data.id"), nullable=True, index=True)
    deal_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    mid: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    merchant_name: Mapped[str | None] = mapped_column(String, nullable=True)
    payout_month: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)
    payout_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_type: Mapped[str | None] = mapped_column(String, nullable=True)

    volume: Mapped[float] = mapped_column(Float, default=0.0)
    fees: Mapped[float] = mapped_column(Float, default=0.0)
    adjustments: Mapped[float] = mapped_column(Float, default=0.0)
    chargebacks: Mapped[float] = mapped_column(Float, default=0.0)
    net_residual: Mapped[float] = mapped_column(Float, default=0.0)

    partner_airtable_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    partner_id: Mapped[str | None] = mapped_column(String, ForeignKey("partners.id"), nullable=True)
    partner_name: Mapped[str | None] = mapped_column(String, nullable=True)
    partner_role: Mapped[str | None] = mapped_column(String, nullable=True)
    partner_split_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    partner_payout_amount: Mapped[float | None] = mapped_column(Float, nullable=True)

    assignment_status: Mapped[str] = mapped_column(String, default=AssignmentStatus.CONFIRMED.value)
    paid_status: Mapped[str] = mapped_column(String, default=PaidStatus.UNPAID.value, index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_legacy_import: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
