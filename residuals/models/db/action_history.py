from __future__ import annotations
"""SQLAlchemy model for the append-only audit log (action_history)."""
from datetime import datetime
from typing import Any
from sqlalchemy import Integer, String, Text, DateTime, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from residuals.database import Base
from residuals.utils.time import utc_now

class ActionHistory(Base):
    __tablename__ = "action_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    action_type: Mapped[str] = mapped_column(String, nullable=False)
    # Subject: entity type + id (deal, assignment, payout, csv_data, adjustment_batch)
    entity_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    entity_name: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # Voided rows are ignored by every read path
    is_undone: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
