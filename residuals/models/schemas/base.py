"""
Base schemas used across the application.
"""
from datetime import datetime, timezone
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field, ConfigDict


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResponseBase(BaseModel):
    """Base response envelope for API endpoints with an optional data payload."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class BatchErrorDetail(BaseModel):
    """One failed target inside a partially successful bulk operation."""
    target: Any = Field(description="Offending id (audit row, payout, chunk number)")
    message: str


class BatchResponse(ResponseBase):
    total: int = 0
    succeeded: int = 0
    errors: List[BatchErrorDetail] = Field(default_factory=list)
