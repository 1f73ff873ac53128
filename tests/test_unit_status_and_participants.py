import pytest

from residuals.config import FeatureFlags
from residuals.errors import InvalidStatus, ValidationError
from residuals.models.db.enums import AssignmentStatus, PaidStatus
from residuals.models.schemas.participants import RawParticipant
from residuals.services.participant_normalizer import normalize_participant, normalize_participants
from residuals.services.status_validator import (
    try_validate_assignment_status,
    try_validate_paid_status,
    validate_assignment_status,
    validate_paid_status,
)


@pytest.mark.parametrize("raw", ["confirmed", " Confirmed ", "CONFIRMED"])
def test_assignment_status_is_trimmed_and_lowercased(raw):
    assert validate_assignment_status(raw) is AssignmentStatus.CONFIRMED


def test_paid_status_accepts_enum_members():
    assert validate_paid_status(PaidStatus.PAID) is PaidStatus.PAID


def test_invalid_status_lists_allowed_values():
    with pytest.raises(InvalidStatus) as exc_info:
        validate_paid_status("settled")
    err = exc_info.value
    assert isinstance(err, ValidationError)
    assert err.context == {"field": "paid_status", "value": "settled"}
    assert "unpaid, pending, paid" in err.message


def test_pending_confirmation_is_not_an_assignment_status():
    with pytest.raises(InvalidStatus):
        validate_assignment_status("pending_confirmation")


def test_try_variants_return_none():
    assert try_validate_assignment_status(None) is None
    assert try_validate_paid_status(3) is None
    assert try_validate_paid_status("unpaid") is PaidStatus.UNPAID


def test_lumino_income_fund_becomes_fund_i():
    p = normalize_participant({"partner_name": "Lumino Income Fund LP", "partner_role": "Partner"})
    assert p.partner_role == "Fund I"


def test_plain_partner_without_role_defaults_to_partner():
    p = normalize_participant({"name": "Acme Corp"})
    assert p.partner_name == "Acme Corp"
    assert p.partner_role == "Partner"


@pytest.mark.parametrize("name", ["Lumino (Company)", "lumino", "  Lumino  "])
def test_lumino_company_variants_become_company(name):
    assert normalize_participant({"partner_name": name, "role": "Agent"}).partner_role == "Company"


def test_legacy_aliases_are_folded():
    p = normalize_participant({"partner_id": " recXYZ ", "name": "Jane", "role": "Agent", "split": "40"})
    assert p.partner_airtable_id == "recXYZ"
    assert p.partner_name == "Jane"
    assert p.partner_role == "Agent"
    assert p.split_pct == 40.0
    assert p.has_reference


def test_canonical_names_win_over_legacy_aliases():
    p = normalize_participant(
        {"partner_airtable_id": "recA", "partner_id": "recB", "partner_name": "A", "name": "B", "split_pct": 0, "split": 50}
    )
    assert p.partner_airtable_id == "recA"
    assert p.partner_name == "A"
    # An explicit zero is still a value
    assert p.split_pct == 0.0


@pytest.mark.parametrize("split", ["abc", None, float("nan"), float("inf")])
def test_unparseable_split_becomes_zero(split):
    assert normalize_participant({"partner_name": "X", "split_pct": split}).split_pct == 0.0


def test_missing_input_degrades_to_defaults():
    p = normalize_participant(None)
    assert p.partner_airtable_id == ""
    assert p.partner_role == "Partner"
    assert not p.has_reference


def test_pydantic_input_and_record_aliases():
    raw = RawParticipant(partner_airtable_id="recQ", partner_name="Q", split_pct=25)
    record = normalize_participants([raw])[0].to_record()
    assert record["name"] == record["partner_name"] == "Q"
    assert record["role"] == record["partner_role"] == "Partner"
    assert record["split_pct"] == 25.0


def test_feature_flags_from_env(monkeypatch):
    monkeypatch.setenv("FEATURE_DUAL_WRITE_PARTICIPANTS", "true")
    monkeypatch.setenv("FEATURE_READ_NORMALIZED", "yes")
    monkeypatch.delenv("FEATURE_WRITE_PARTNER_ID", raising=False)
    monkeypatch.setenv("FEATURE_VALIDATE_STATUS", "")
    flags = FeatureFlags.from_env()
    assert flags.dual_write_deal_participants is True
    assert flags.read_from_normalized_tables is False
    assert flags.write_partner_id_to_payouts is False
    assert flags.validate_status_fields is True

    monkeypatch.setenv("FEATURE_VALIDATE_STATUS", "FALSE")
    assert FeatureFlags.from_env().validate_status_fields is False
