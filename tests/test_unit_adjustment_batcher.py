from datetime import datetime, timezone

from residuals.models.db import ActionHistory
from residuals.services.adjustment_batcher import batch_key, is_adjustment, summarize_batches


def _row(subject, ts, status="pending", entity_type="assignment", is_undone=False, **new_data):
    data = {"deal_id": subject, **new_data}
    if status is not None:
        data["status"] = status
    return ActionHistory(
        action_type="update",
        entity_type=entity_type,
        entity_id=subject,
        new_data=data,
        is_undone=is_undone,
        created_at=datetime.fromisoformat(f"2025-01-10T{ts}").replace(tzinfo=timezone.utc),
    )


def test_rows_within_same_minute_form_one_batch():
    rows = [_row("D1", "12:00:01"), _row("D1", "12:00:45")]
    summary = summarize_batches(rows)
    assert summary["D1"].total == 1
    assert summary["D1"].pending == 1


def test_next_minute_is_a_distinct_batch():
    rows = [_row("D1", "12:00:01"), _row("D1", "12:00:45"), _row("D1", "12:01:05")]
    summary = summarize_batches(rows)
    assert summary["D1"].total == 2
    assert summary["D1"].pending == 2


def test_status_splits_batches_and_defaults_to_confirmed():
    rows = [_row("D1", "12:00:01"), _row("D1", "12:00:02", status=None), _row("D1", "12:00:03", status="confirmed")]
    summary = summarize_batches(rows)
    assert summary["D1"].total == 2
    assert summary["D1"].pending == 1
    assert batch_key(rows[1]).status == "confirmed"


def test_subjects_are_counted_separately_and_order_does_not_matter():
    rows = [_row("D2", "09:15:00"), _row("D1", "12:00:01"), _row("D2", "09:15:59")]
    assert summarize_batches(rows) == summarize_batches(list(reversed(rows)))
    assert summarize_batches(rows)["D2"].total == 1
    assert set(summarize_batches(rows)) == {"D1", "D2"}


def test_selection_rules():
    assert is_adjustment(_row("D1", "12:00:00"))
    assert not is_adjustment(_row("D1", "12:00:00", is_undone=True))
    assert not is_adjustment(_row("D1", "12:00:00", entity_type="deal"))
    assert is_adjustment(_row("D1", "12:00:00", entity_type="deal", adjustment_type="split_change"))
    assert not is_adjustment(_row("D1", "12:00:00", entity_type="payout"))


def test_subject_falls_back_to_entity_id():
    row = ActionHistory(
        action_type="update",
        entity_type="assignment",
        entity_id="77",
        new_data={"status": "pending"},
        is_undone=False,
        created_at=datetime(2025, 1, 10, 8, 30, 12, tzinfo=timezone.utc),
    )
    key = batch_key(row)
    assert key.subject == "77"
    assert key.minute == datetime(2025, 1, 10, 8, 30, tzinfo=timezone.utc)


def test_naive_timestamps_group_with_aware_ones():
    aware = _row("D1", "12:00:01")
    naive = _row("D1", "12:00:30")
    naive.created_at = naive.created_at.replace(tzinfo=None)
    assert summarize_batches([aware, naive])["D1"].total == 1
