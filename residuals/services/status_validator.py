"""Status vocabulary guards.

Single choke point for every write that sets ``assignment_status`` or
``paid_status``. Values are lower-cased and trimmed, then must be exactly one
of the enum values. The ``try_*`` variants return None instead of raising for
call sites validating opportunistically inside a larger batch.
"""
from __future__ import annotations

from typing import Any, Optional

from residuals.errors import InvalidStatus
from residuals.models.db.enums import AssignmentStatus, PaidStatus

_ASSIGNMENT_VALUES: tuple[str, ...] = tuple(s.value for s in AssignmentStatus)
_PAID_VALUES: tuple[str, ...] = tuple(s.value for s in PaidStatus)


def _normalize(raw: Any) -> str:
    if isinstance(raw, (AssignmentStatus, PaidStatus)):
        return raw.value
    if not isinstance(raw, str):
        return ""
    return raw.strip().lower()


def validate_assignment_status(raw: Any) -> AssignmentStatus:
    normalized = _normalize(raw)
    if normalized not in _ASSIGNMENT_VALUES:
        raise InvalidStatus("assignment_status", raw, _ASSIGNMENT_VALUES)
    return AssignmentStatus(normalized)


def validate_paid_status(raw: Any) -> PaidStatus:
    normalized = _normalize(raw)
    if normalized not in _PAID_VALUES:
        raise InvalidStatus("paid_status", raw, _PAID_VALUES)
    return PaidStatus(normalized)


def try_validate_assignment_status(raw: Any) -> Optional[AssignmentStatus]:
    try:
        return validate_assignment_status(raw)
    except InvalidStatus:
        return None


def try_validate_paid_status(raw: Any) -> Optional[PaidStatus]:
    try:
        return validate_paid_status(raw)
    except InvalidStatus:
        return None


__all__ = [
    "validate_assignment_status",
    "validate_paid_status",
    "try_validate_assignment_status",
    "try_validate_paid_status",
]
