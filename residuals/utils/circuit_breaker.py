"""In-memory circuit breaker for outbound dependencies (process-local).

Keyed by dependency name (e.g. ``partner_directory``). The breaker only guards
calls to external services; it never caches any Deal/Payout state.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict

from residuals.config import CIRCUIT_BREAKER


@dataclass
class BreakerState:
    failures: int = 0
    state: str = "CLOSED"
    opened_at: datetime | None = None
    half_open_probes: int = 0


class CircuitBreaker:
    def __init__(self, settings: dict[str, int | float] | None = None):
        self._settings = settings or CIRCUIT_BREAKER
        self._states: Dict[str, BreakerState] = {}

    def _get(self, dependency: str) -> BreakerState:
        return self._states.setdefault(dependency, BreakerState())

    def allow_call(self, dependency: str) -> tuple[bool, str | None]:
        st = self._get(dependency)
        if st.state == "OPEN":
            cooldown = float(self._settings["open_cooldown_seconds"])
            if st.opened_at and datetime.now(timezone.utc) - st.opened_at >= timedelta(seconds=cooldown):
                st.state = "HALF_OPEN"
                st.half_open_probes = 0
            else:
                return False, "circuit_open"
        if st.state == "HALF_OPEN":
            if st.half_open_probes >= int(self._settings["half_open_probe_count"]):
                return False, "half_open_probe_exhausted"
            st.half_open_probes += 1
        return True, None

    def record_success(self, dependency: str) -> None:
        st = self._get(dependency)
        st.failures = 0
        st.state = "CLOSED"
        st.opened_at = None
        st.half_open_probes = 0

    def record_failure(self, dependency: str) -> None:
        st = self._get(dependency)
        st.failures += 1
        threshold = int(self._settings["failure_threshold"])
        if st.state == "HALF_OPEN" or (st.state == "CLOSED" and st.failures >= threshold):
            st.state = "OPEN"
            st.opened_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[str, dict[str, object]]:
        return {
            k: {
                "failures": v.failures,
                "state": v.state,
                "opened_at": v.opened_at.isoformat() if v.opened_at else None,
            }
            for k, v in self._states.items()
        }


GLOBAL_CIRCUIT_BREAKER = CircuitBreaker()

__all__ = ["CircuitBreaker", "GLOBAL_CIRCUIT_BREAKER"]
