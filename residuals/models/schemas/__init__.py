from .base import ResponseBase, BatchResponse, BatchErrorDetail
from .participants import RawParticipant, NormalizedParticipant
from .events import CsvImportRequest, CsvImportResult, EventUpdate, ConfirmResult, NewDeal, AssignEventRequest, AssignResult
from .deals import ReconstructionResult, BackfillResult, UnfixableParticipant
from .payouts import MassMarkPaidRequest, UpdateMerchantRequest
from .adjustments import AdjustmentCounts, AdjustmentSummary, AdjustmentActionRequest

__all__ = [
    # Base
    "ResponseBase",
    "BatchResponse",
    "BatchErrorDetail",
    # Participants
    "RawParticipant",
    "NormalizedParticipant",
    # Events
    "CsvImportRequest",
    "CsvImportResult",
    "EventUpdate",
    "ConfirmResult",
    "NewDeal",
    "AssignEventRequest",
    "AssignResult",
    # Deals
    "ReconstructionResult",
    "BackfillResult",
    "UnfixableParticipant",
    # Payouts
    "MassMarkPaidRequest",
    "UpdateMerchantRequest",
    # Adjustments
    "AdjustmentCounts",
    "AdjustmentSummary",
    "AdjustmentActionRequest",
]
