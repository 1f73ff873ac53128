"""
Pydantic schemas for residual event import, correction and confirmation.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class CsvImportRequest(BaseModel):
    csv_text: str = Field(min_length=1, description="Raw CSV content")
    payout_month: Optional[str] = Field(
        None,
        pattern=r"^\d{4}-\d{2}$",
        description="YYYY-MM; overrides any month column in the file",
    )
    batch_id: Optional[str] = None


class CsvImportResult(BaseModel):
    batch_id: str
    parsed: int
    inserted: int
    duplicates: int
    errors: List[str] = Field(default_factory=list)


class EventUpdate(BaseModel):
    """Direct correction of an unconfirmed event's merchant fields."""
    # Accept numbers from loose clients but always store the trimmed string form
    mid: Optional[str] = None
    merchant_name: Optional[str] = None

    @field_validator("mid", mode="before")
    @classmethod
    def _mid_as_string(cls, v):
        if v is None:
            return v
        return str(v).strip()


class ConfirmResult(BaseModel):
    event_id: int
    payouts_created: int
    net_residual: float
    already_confirmed: bool = False
    existing_payouts: int = 0
    status_update_error: Optional[str] = None
    hook_errors: List[str] = Field(default_factory=list)


class NewDeal(BaseModel):
    """Deal created (or refreshed on its mid + payout type key) while assigning an event."""
    mid: str = Field(min_length=1)
    merchant_name: Optional[str] = None
    payout_type: Optional[str] = None
    participants: List[Dict[str, Any]] = Field(min_length=1, description="Participants in any supported shape")

    @field_validator("mid", mode="before")
    @classmethod
    def _mid_as_string(cls, v):
        return str(v).strip() if v is not None else v


class AssignEventRequest(BaseModel):
    deal_id: Optional[int] = Field(None, description="Existing deal to link")
    new_deal: Optional[NewDeal] = None
    is_draft: bool = Field(False, description="Keep the event unassigned instead of moving it to pending")

    @model_validator(mode="after")
    def _one_target(self):
        if (self.deal_id is None) == (self.new_deal is None):
            raise ValueError("Provide exactly one of deal_id or new_deal")
        return self


class AssignResult(BaseModel):
    event_id: int
    deal_id: int
    deal_ref: Optional[str] = None
    assignment_status: str
    payout_type: str
    participants_count: int
    created_deal: bool = False
