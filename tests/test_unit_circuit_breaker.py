from datetime import datetime, timedelta, timezone
from residuals.utils.circuit_breaker import CircuitBreaker


def test_circuit_opens_and_half_open_cycle():
    cb = CircuitBreaker()
    dependency = "partner_directory"
    # Failure threshold from config is 5; exceed it
    for _ in range(6):
        cb.record_failure(dependency)
    allowed, reason = cb.allow_call(dependency)
    assert allowed is False and reason == "circuit_open"
    st = cb._states[dependency]
    assert st.state == "OPEN"
    assert st.opened_at is not None

    # Pretend the cooldown elapsed
    st.opened_at = datetime.now(timezone.utc) - timedelta(seconds=301)
    allowed, reason = cb.allow_call(dependency)
    assert allowed is True and reason is None
    assert st.state == "HALF_OPEN"

    # A failed probe re-opens immediately
    cb.record_failure(dependency)
    assert st.state == "OPEN"


def test_success_closes_and_snapshot_reports_state():
    cb = CircuitBreaker({"failure_threshold": 2, "open_cooldown_seconds": 60, "half_open_probe_count": 1})
    cb.record_failure("dir")
    cb.record_failure("dir")
    assert cb.snapshot()["dir"]["state"] == "OPEN"
    cb.record_success("dir")
    snap = cb.snapshot()["dir"]
    assert snap["state"] == "CLOSED"
    assert snap["failures"] == 0
    cb.reset()
    assert cb.snapshot() == {}
