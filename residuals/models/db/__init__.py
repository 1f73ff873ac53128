from .enums import AssignmentStatus, PaidStatus, PayoutType, ExternalSource, AdjustmentStatus
from .partners import Partner
from .deals import Deal
from .deal_participants import DealParticipant
from .residual_events import ResidualEvent
from .payouts import Payout
from .action_history import ActionHistory

__all__ = [
    "AssignmentStatus",
    "PaidStatus",
    "PayoutType",
    "ExternalSource",
    "AdjustmentStatus",
    "Partner",
    "Deal",
    "DealParticipant",
    "ResidualEvent",
    "Payout",
    "ActionHistory",
]
