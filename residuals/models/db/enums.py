"""Central Enum definitions for the two status vocabularies and payout types.

The storage layer still holds these as plain strings (the move to a closed
database ENUM is pending); every write path validates through
``residuals.services.status_validator`` first.
"""
from __future__ import annotations
import enum


class AssignmentStatus(str, enum.Enum):
    UNASSIGNED = "unassigned"
    PENDING = "pending"
    CONFIRMED = "confirmed"


class PaidStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"


class PayoutType(str, enum.Enum):
    RESIDUAL = "residual"
    UPFRONT = "upfront"
    TRUEUP = "trueup"
    BONUS = "bonus"
    CLAWBACK = "clawback"
    ADJUSTMENT = "adjustment"


class ExternalSource(str, enum.Enum):
    AIRTABLE = "airtable"
    MANUAL = "manual"
    SYSTEM = "system"


# Outcome status carried in action_history.new_data["status"]
class AdjustmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


__all__ = [
    "AssignmentStatus",
    "PaidStatus",
    "PayoutType",
    "ExternalSource",
    "AdjustmentStatus",
]
