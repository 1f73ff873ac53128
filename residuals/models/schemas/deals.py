"""
Pydantic schemas for deal reconstruction and partner-reference backfill.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, Field

from residuals.models.schemas.base import BatchErrorDetail


class ReconstructionResult(BaseModel):
    payouts_processed: int
    merchants: int
    deals_upserted: int
    batches_failed: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class UnfixableParticipant(BaseModel):
    mid: str | None
    name: str


class BackfillResult(BaseModel):
    deals_fixed: int
    participants_fixed: int
    payouts_fixed: int
    unfixable: List[UnfixableParticipant] = Field(default_factory=list)
    unfixable_count: int = 0
    errors: List[BatchErrorDetail] = Field(default_factory=list)
