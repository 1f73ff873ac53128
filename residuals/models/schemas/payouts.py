"""
Pydantic schemas for payout paid-status and merchant correction operations.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class MassMarkPaidRequest(BaseModel):
    partner_ids: List[str] = Field(min_length=1, description="Partner references whose unpaid payouts are marked paid")


class UpdateMerchantRequest(BaseModel):
    old_mid: str = Field(min_length=1)
    new_mid: Optional[str] = None
    new_merchant_name: Optional[str] = None

    @field_validator("old_mid", "new_mid", mode="before")
    @classmethod
    def _mid_as_string(cls, v):
        # Leading zeros matter: never let a mid become a number
        if v is None:
            return v
        return str(v).strip()
