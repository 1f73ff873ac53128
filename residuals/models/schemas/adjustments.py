"""
Pydantic schemas for adjustment batches over the audit log.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class AdjustmentCounts(BaseModel):
    total: int
    pending: int


class AdjustmentSummary(BaseModel):
    success: bool = True
    summary: Dict[str, AdjustmentCounts] = Field(default_factory=dict)


class AdjustmentActionRequest(BaseModel):
    adjustment_ids: List[int] = Field(min_length=1, description="Raw action_history row ids")
    reason: Optional[str] = Field(None, max_length=1000)
