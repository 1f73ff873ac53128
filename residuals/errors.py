"""Domain error taxonomy.

Every error carries a ``context`` dict (offending id, field, underlying
message) so callers can retry or repair. Partial batch failures are not raised;
bulk operations return a ``BatchResult`` instead because the successful part
must stay committed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ResidualsError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class ValidationError(ResidualsError):
    """Bad input rejected before any write."""


class InvalidStatus(ValidationError):
    def __init__(self, field_name: str, value: Any, allowed: tuple[str, ...]):
        super().__init__(
            f'Invalid {field_name}: "{value}". Valid values: {", ".join(allowed)}',
            field=field_name,
            value=value,
        )


class IncompleteDealError(ResidualsError):
    """Deal cannot be confirmed as-is; nothing was written."""


class NoParticipants(IncompleteDealError):
    def __init__(self, event_id: Any, deal_id: Any = None):
        super().__init__("Event has no assigned participants", event_id=event_id, deal_id=deal_id)


class MissingPartnerReference(IncompleteDealError):
    def __init__(self, event_id: Any, names: list[str]):
        super().__init__(
            f"Cannot confirm: missing partner references for participants: {', '.join(names)}",
            event_id=event_id,
            participants=names,
        )
        self.names = names


class NotFoundError(ResidualsError):
    pass


class InvalidStateTransition(ResidualsError):
    """Requested change is not allowed from the record's current status."""


class DependencyError(ResidualsError):
    """Store or directory unavailable; the whole operation failed."""


@dataclass
class BatchResult:
    """Outcome of a chunked bulk operation (partial success is allowed)."""

    total: int = 0
    succeeded: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors) and self.succeeded > 0

    def record_error(self, target: Any, message: str) -> None:
        self.errors.append({"target": target, "message": message})


__all__ = [
    "ResidualsError",
    "ValidationError",
    "InvalidStatus",
    "IncompleteDealError",
    "NoParticipants",
    "MissingPartnerReference",
    "NotFoundError",
    "InvalidStateTransition",
    "DependencyError",
    "BatchResult",
]
