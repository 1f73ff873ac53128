import pytest

from residuals.config import FeatureFlags
from residuals.errors import MissingPartnerReference, NoParticipants, ValidationError
from residuals.models.db import ActionHistory, Deal, Payout, ResidualEvent
from residuals.models.schemas.events import NewDeal
from residuals.services.residual_events import assign_event

CSV_TEXT = (
    "Merchant ID,Merchant Name,Volume,Fees,Date\n"
    "0042,Corner Cafe,1000,0,01/15/2025\n"
)

NEW_DEAL = {
    "mid": "0042",
    "participants": [
        {"partner_airtable_id": "recA", "partner_name": "Alice", "partner_role": "Partner", "split_pct": 60},
        {"partner_id": "recB", "name": "Bob", "role": "Agent", "split": 40},
    ],
}


def _event(db_session, event_id):
    db_session.expire_all()
    return db_session.get(ResidualEvent, event_id)


def test_imported_event_can_be_assigned_and_confirmed(client, db_session):
    imported = client.post("/api/v1/events/import", json={"csv_text": CSV_TEXT, "payout_month": "2025-01"})
    assert imported.json()["data"]["inserted"] == 1
    (event,) = db_session.query(ResidualEvent).all()
    event_id = event.id

    assigned = client.post(f"/api/v1/events/{event_id}/assign", json={"new_deal": NEW_DEAL})

    assert assigned.status_code == 200
    data = assigned.json()["data"]
    assert data["assignment_status"] == "pending"
    assert data["participants_count"] == 2
    assert data["created_deal"] is True
    assert data["deal_ref"].startswith("deal_")
    fresh = _event(db_session, event_id)
    assert fresh.deal_id == data["deal_id"]
    assert fresh.assignment_status == "pending"

    confirmed = client.post(f"/api/v1/events/{event_id}/confirm")

    assert confirmed.status_code == 200
    assert confirmed.json()["data"]["payouts_created"] == 2
    payouts = {p.partner_airtable_id: p for p in db_session.query(Payout).all()}
    assert payouts["recA"].partner_payout_amount == pytest.approx(600.0)
    assert payouts["recB"].partner_payout_amount == pytest.approx(400.0)
    assert payouts["recB"].partner_role == "Agent"
    assert payouts["recA"].deal_id == data["deal_ref"]
    assert payouts["recA"].mid == "0042"
    assert _event(db_session, event_id).assignment_status == "confirmed"


def test_assign_to_existing_deal(db_session, deal_factory, event_factory):
    deal = deal_factory("M1", [{"partner_airtable_id": "recA", "partner_name": "Alice", "split_pct": 100}])
    event = event_factory("M1")

    result = assign_event(db_session, event.id, deal_id=deal.id, flags=FeatureFlags())

    assert result.deal_id == deal.id
    assert result.created_deal is False
    assert result.payout_type == "residual"
    fresh = _event(db_session, event.id)
    assert fresh.deal_id == deal.id
    assert fresh.assignment_status == "pending"
    assert db_session.query(Deal).count() == 1


def test_new_deal_reuses_row_on_mid_and_payout_type(db_session, deal_factory, event_factory):
    existing = deal_factory("0042", [{"partner_airtable_id": "recOld", "split_pct": 100}], deal_id="deal_keep")
    event = event_factory("0042")

    result = assign_event(db_session, event.id, new_deal=NewDeal(**NEW_DEAL), flags=FeatureFlags())

    assert result.deal_id == existing.id
    assert result.deal_ref == "deal_keep"
    assert result.created_deal is False
    db_session.expire_all()
    (deal,) = db_session.query(Deal).all()
    assert [p["partner_airtable_id"] for p in deal.participants_json] == ["recA", "recB"]
    assert deal.participants_json[1]["partner_name"] == "Bob"


def test_draft_assignment_keeps_event_unassigned(db_session, event_factory):
    event = event_factory("0042")

    result = assign_event(db_session, event.id, new_deal=NewDeal(**NEW_DEAL), is_draft=True, flags=FeatureFlags())

    assert result.assignment_status == "unassigned"
    fresh = _event(db_session, event.id)
    assert fresh.assignment_status == "unassigned"
    assert fresh.deal_id == result.deal_id


def test_missing_reference_rejects_without_writing(db_session, event_factory):
    event = event_factory("0042")
    new_deal = NewDeal(mid="0042", participants=[{"partner_name": "Ghost", "split_pct": 100}])

    with pytest.raises(MissingPartnerReference) as exc_info:
        assign_event(db_session, event.id, new_deal=new_deal, flags=FeatureFlags())

    assert exc_info.value.names == ["Ghost"]
    assert db_session.query(Deal).count() == 0
    assert _event(db_session, event.id).deal_id is None


def test_existing_deal_without_participants_is_rejected(db_session, deal_factory, event_factory):
    deal = deal_factory("M1", [])
    event = event_factory("M1")

    with pytest.raises(NoParticipants):
        assign_event(db_session, event.id, deal_id=deal.id, flags=FeatureFlags())


def test_exactly_one_target_required(db_session, event_factory):
    event = event_factory("M1")
    with pytest.raises(ValidationError):
        assign_event(db_session, event.id, flags=FeatureFlags())


def test_assignment_writes_audit_row(db_session, event_factory):
    event = event_factory("0042")

    result = assign_event(db_session, event.id, new_deal=NewDeal(**NEW_DEAL), flags=FeatureFlags(), request_id="req-7")

    row = db_session.query(ActionHistory).filter(ActionHistory.entity_type == "assignment").one()
    assert row.action_type == "create"
    assert row.entity_id == str(event.id)
    assert row.previous_data == {"assignment_status": "unassigned", "deal_id": None}
    assert row.new_data["deal_id"] == result.deal_ref
    assert row.new_data["assignment_status"] == "pending"
    assert row.request_id == "req-7"


def test_assign_endpoint_error_mapping(client, deal_factory, event_factory):
    confirmed = event_factory("M1", assignment_status="confirmed")
    open_event = event_factory("M2")
    deal = deal_factory("M2", [{"partner_name": "Ghost", "split_pct": 100}])

    refused = client.post(f"/api/v1/events/{confirmed.id}/assign", json={"new_deal": NEW_DEAL})
    assert refused.status_code == 409
    assert refused.json()["error"] == "InvalidStateTransition"

    incomplete = client.post(f"/api/v1/events/{open_event.id}/assign", json={"deal_id": deal.id})
    assert incomplete.status_code == 400
    assert incomplete.json()["details"]["participants"] == ["Ghost"]

    missing = client.post(f"/api/v1/events/{open_event.id}/assign", json={"deal_id": 999999})
    assert missing.status_code == 404

    both = client.post(f"/api/v1/events/{open_event.id}/assign", json={"deal_id": deal.id, "new_deal": NEW_DEAL})
    assert both.status_code == 422
