"""
Pydantic schemas for deal participants.

Stored participants come in several historical shapes; they are decoded into
``NormalizedParticipant`` at the boundary by
``residuals.services.participant_normalizer`` and only the canonical shape
flows through business logic.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class RawParticipant(BaseModel):
    """Any mix of current and legacy participant field names."""
    partner_airtable_id: Optional[str] = None
    partner_id: Optional[str] = None
    partner_name: Optional[str] = None
    name: Optional[str] = None
    partner_role: Optional[str] = None
    role: Optional[str] = None
    split_pct: Optional[float] = None
    split: Optional[float] = None

    model_config = ConfigDict(extra="allow")


class NormalizedParticipant(BaseModel):
    partner_airtable_id: str = ""
    partner_name: str = ""
    partner_role: str = "Partner"
    split_pct: float = Field(0.0, description="0-100; sums across a deal are not enforced here")

    model_config = ConfigDict(frozen=True)

    @property
    def has_reference(self) -> bool:
        return bool(self.partner_airtable_id.strip())

    def to_record(self) -> Dict[str, Any]:
        """Canonical fields plus the legacy ``name``/``role`` aliases, kept identical."""
        return {
            "partner_airtable_id": self.partner_airtable_id,
            "partner_name": self.partner_name,
            "partner_role": self.partner_role,
            "split_pct": self.split_pct,
            "name": self.partner_name,
            "role": self.partner_role,
        }
