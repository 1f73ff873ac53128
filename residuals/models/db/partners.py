from __future__ import annotations
"""SQLAlchemy model for the normalized partners table (mirror of the directory)."""
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from residuals.database import Base
from residuals.utils.time import utc_now
from .enums import ExternalSource

class Partner(Base):
    __tablename__ = "partners"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Directory record reference (e.g. "recABC123"); what payouts carry as partner_airtable_id
    external_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True, index=True)
    external_source: Mapped[str] = mapped_column(String, default=ExternalSource.AIRTABLE.value)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, default="Partner")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
