from residuals.models.db import ActionHistory, Deal, Payout, ResidualEvent

CSV_TEXT = (
    "Merchant ID,Merchant Name,Volume,Fees,Date\n"
    '007123,Corner Cafe,"$1,000.00",$50,01/15/2025\n'
    "M2,Book Barn,250,10,2025-01-20\n"
    "M2,Book Barn,250,10,2025-01-20\n"
    "M3,Bad Date,5,1,someday\n"
)


def _import(client, text=CSV_TEXT, month="2025-01"):
    return client.post("/api/v1/events/import", json={"csv_text": text, "payout_month": month})


def test_import_persists_rows_and_reports_parse_errors(client, db_session):
    resp = _import(client)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["parsed"] == 3
    assert data["inserted"] == 2
    assert data["duplicates"] == 1
    assert data["errors"] == ['Row 5: Invalid date format "someday"']
    assert data["batch_id"].startswith("batch_")

    events = {e.mid: e for e in db_session.query(ResidualEvent).all()}
    assert set(events) == {"007123", "M2"}
    assert events["007123"].volume == 1000.0
    assert events["007123"].assignment_status == "unassigned"
    assert events["007123"].payout_type == "residual"
    assert events["007123"].payout_month == "2025-01"


def test_reimport_is_a_noop(client, db_session):
    _import(client)
    resp = _import(client)

    data = resp.json()["data"]
    assert data["inserted"] == 0
    assert data["duplicates"] == 3
    assert db_session.query(ResidualEvent).count() == 2


def test_import_rejects_bad_month(client):
    resp = _import(client, month="January")
    assert resp.status_code == 422


def test_confirm_endpoint_creates_payouts(client, db_session, deal_factory, event_factory):
    deal = deal_factory(
        "007123",
        [
            {"partner_airtable_id": "recA", "partner_name": "Alice", "split_pct": 60},
            {"partner_airtable_id": "recB", "partner_name": "Bob", "split_pct": 40},
        ],
    )
    event = event_factory("007123", volume=1000.0, deal=deal)

    resp = client.post(f"/api/v1/events/{event.id}/confirm")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Created 2 payout(s)"

    again = client.post(f"/api/v1/events/{event.id}/confirm")
    assert again.status_code == 200
    assert again.json()["message"] == "Event already confirmed"
    assert again.json()["data"]["already_confirmed"] is True
    assert db_session.query(Payout).count() == 2


def test_confirm_endpoint_maps_incomplete_deal_to_400(client, deal_factory, event_factory):
    deal = deal_factory("M1", [{"partner_name": "Ghost", "split_pct": 100}])
    event = event_factory("M1", deal=deal)

    resp = client.post(f"/api/v1/events/{event.id}/confirm")

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "MissingPartnerReference"
    assert body["details"]["participants"] == ["Ghost"]


def test_confirm_unknown_event_is_404(client):
    resp = client.post("/api/v1/events/999999/confirm")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFoundError"


def test_confirm_honours_feature_flags(client, db_session, deal_factory, event_factory, partner_factory, flags_override):
    alice = partner_factory("recA", "Alice")
    deal = deal_factory("M1", [{"partner_airtable_id": "recA", "split_pct": 100}])
    event = event_factory("M1", deal=deal)
    flags_override(write_partner_id_to_payouts=True)

    assert client.post(f"/api/v1/events/{event.id}/confirm").status_code == 200

    (payout,) = db_session.query(Payout).all()
    assert payout.partner_id == alice.id


def test_patch_event_keeps_mid_as_string(client, db_session, event_factory):
    event = event_factory("M1")

    resp = client.patch(f"/api/v1/events/{event.id}", json={"mid": " 000456 ", "merchant_name": "Fixed Name"})

    assert resp.status_code == 200
    assert resp.json()["data"]["mid"] == "000456"
    db_session.expire_all()
    fresh = db_session.get(ResidualEvent, event.id)
    assert fresh.mid == "000456"
    assert fresh.merchant_name == "Fixed Name"
    audit = db_session.query(ActionHistory).filter(ActionHistory.entity_type == "csv_data").one()
    assert audit.previous_data == {"mid": "M1", "merchant_name": "Merchant M1"}


def test_delete_unconfirmed_event(client, db_session, event_factory):
    event_id = event_factory("M1", assignment_status="pending").id

    resp = client.delete(f"/api/v1/events/{event_id}")

    assert resp.status_code == 200
    assert resp.json()["data"] == {"event_id": event_id, "payouts_removed": 0}
    db_session.expire_all()
    assert db_session.get(ResidualEvent, event_id) is None
    audit = db_session.query(ActionHistory).filter(ActionHistory.action_type == "delete").one()
    assert audit.previous_data["event"]["mid"] == "M1"


def test_delete_confirmed_event_is_refused(client, db_session, event_factory):
    event = event_factory("M1", assignment_status="confirmed")

    resp = client.delete(f"/api/v1/events/{event.id}")

    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateTransition"
    db_session.expire_all()
    assert db_session.get(ResidualEvent, event.id) is not None


def test_toggle_paid_round_trip(client, db_session, payout_factory):
    payout = payout_factory("M1", "recA")

    first = client.post(f"/api/v1/payouts/{payout.id}/mark-paid")
    assert first.status_code == 200
    assert first.json()["data"] == {"id": payout.id, "paid_status": "paid"}
    db_session.expire_all()
    assert db_session.get(Payout, payout.id).paid_at is not None

    second = client.post(f"/api/v1/payouts/{payout.id}/mark-paid")
    assert second.json()["data"]["paid_status"] == "unpaid"
    db_session.expire_all()
    assert db_session.get(Payout, payout.id).paid_at is None


def test_toggle_unknown_payout_is_404(client):
    assert client.post("/api/v1/payouts/424242/mark-paid").status_code == 404


def test_mass_mark_paid_only_touches_unpaid_rows_of_named_partners(client, db_session, payout_factory):
    a1 = payout_factory("M1", "recA")
    a2 = payout_factory("M2", "recA")
    already = payout_factory("M3", "recA", paid_status="paid")
    other = payout_factory("M1", "recB")

    resp = client.post("/api/v1/payouts/mass-mark-paid", json={"partner_ids": ["recA", " "]})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["total"] == 2
    assert body["succeeded"] == 2
    assert body["errors"] == []
    db_session.expire_all()
    statuses = {p.id: p.paid_status for p in db_session.query(Payout).all()}
    assert statuses == {a1.id: "paid", a2.id: "paid", already.id: "paid", other.id: "unpaid"}
    assert db_session.query(ActionHistory).filter(ActionHistory.action_type == "bulk_update").count() == 1


def test_mass_mark_paid_rejects_blank_partner_list(client):
    resp = client.post("/api/v1/payouts/mass-mark-paid", json={"partner_ids": ["  "]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


def test_update_merchant_cascades(client, db_session, deal_factory, event_factory, payout_factory):
    deal_factory("0099", [{"partner_airtable_id": "recA", "split_pct": 100}], deal_id="deal_x")
    deal_factory("OTHER", [], payout_type="upfront", deal_id="deal_legacy")
    event_factory("0099")
    payout_factory("0099", "recA", deal_id="deal_legacy")

    resp = client.patch(
        "/api/v1/payouts/update-merchant",
        json={"old_mid": "0099", "new_mid": "00100", "new_merchant_name": "Renamed"},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["payouts_updated"] == 1
    assert data["events_updated"] == 1
    # Matched by old mid and by the deal label carried on the payout
    assert data["deals_updated"] == 2
    assert data["errors"] == []
    db_session.expire_all()
    assert {d.mid for d in db_session.query(Deal).all()} == {"00100"}
    assert db_session.query(ResidualEvent).one().merchant_name == "Renamed"


def test_update_merchant_needs_a_change(client):
    resp = client.patch("/api/v1/payouts/update-merchant", json={"old_mid": "0099"})
    assert resp.status_code == 400


def test_health_reports_database_and_breakers(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["checks"]["database"] == "healthy"
    assert "circuit_breakers" in body["checks"]
