import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'residuals' package resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from residuals.main import app  # type: ignore
from residuals.database import Base  # type: ignore
from residuals.api import deps  # type: ignore
from residuals.config import FeatureFlags  # type: ignore
"""Pytest fixtures and factories.

Important: SQLAlchemy relationship configuration requires all model modules to be imported
before Base.metadata.create_all(), otherwise back_populates targets might not exist yet.
"""
from residuals.models.db import (
    ActionHistory, Deal, DealParticipant, Partner, Payout, ResidualEvent,
)
from residuals.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

# File-based SQLite so the TestClient thread and the test thread share one database
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_residuals.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

import residuals.database as _residuals_database  # noqa: E402
_residuals_database.SessionLocal = TestingSessionLocal  # type: ignore

@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_residuals.db")
    except OSError:
        pass

@pytest.fixture(autouse=True)
def _isolate_test_state(create_test_db):  # type: ignore[unused-argument]
    """Per-test isolation: empty every table and reset the circuit breaker.

    Reconstruction and adjustment summaries read whole tables, so rows left by
    one test would leak into the next.
    """
    GLOBAL_CIRCUIT_BREAKER.reset()
    yield
    GLOBAL_CIRCUIT_BREAKER.reset()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def client():
    return TestClient(app)

@pytest.fixture()
def flags_override():
    """Swap the flags the API hands to components for the duration of a test."""
    def _set(**kwargs):
        flags = FeatureFlags(**kwargs)
        app.dependency_overrides[deps.get_feature_flags] = lambda: flags
        return flags
    yield _set
    app.dependency_overrides.pop(deps.get_feature_flags, None)

# ---------- Data factory helpers ----------

def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)

@pytest.fixture()
def deal_factory(db_session):
    def _create(mid: str = "M100", participants: list[dict] | None = None, payout_type: str = "residual", **kwargs):
        deal = Deal(
            mid=mid,
            payout_type=payout_type,
            participants_json=participants if participants is not None else [],
            **kwargs,
        )
        db_session.add(deal)
        db_session.commit()
        db_session.refresh(deal)
        return deal
    return _create

@pytest.fixture()
def event_factory(db_session):
    def _create(
        mid: str = "M100",
        *,
        volume: float = 1000.0,
        fees: float = 0.0,
        adjustments: float = 0.0,
        chargebacks: float = 0.0,
        payout_month: str = "2025-01",
        deal: Deal | None = None,
        assignment_status: str | None = "unassigned",
        payout_type: str | None = None,
    ):
        event = ResidualEvent(
            batch_id="batch_test",
            mid=mid,
            merchant_name=f"Merchant {mid}",
            volume=volume,
            fees=fees,
            adjustments=adjustments,
            chargebacks=chargebacks,
            date=_ts("2025-01-15T00:00:00"),
            payout_month=payout_month,
            row_hash=uuid.uuid4().hex,
            assignment_status=assignment_status,
            deal_id=deal.id if deal is not None else None,
        )
        if payout_type is not None:
            event.payout_type = payout_type
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event
    return _create

@pytest.fixture()
def payout_factory(db_session):
    def _create(
        mid: str = "M100",
        partner_airtable_id: str | None = "recA",
        *,
        partner_name: str = "Partner A",
        partner_role: str = "Partner",
        split: float = 100.0,
        amount: float = 100.0,
        deal_id: str | None = "deal_legacy",
        payout_type: str | None = "residual",
        paid_status: str = "unpaid",
        is_legacy_import: bool = False,
        payout_month: str = "2024-12",
    ):
        payout = Payout(
            mid=mid,
            merchant_name=f"Merchant {mid}",
            deal_id=deal_id,
            payout_month=payout_month,
            payout_date=_ts("2024-12-01T00:00:00"),
            payout_type=payout_type,
            partner_airtable_id=partner_airtable_id,
            partner_name=partner_name,
            partner_role=partner_role,
            partner_split_pct=split,
            partner_payout_amount=amount,
            paid_status=paid_status,
            is_legacy_import=is_legacy_import,
        )
        db_session.add(payout)
        db_session.commit()
        db_session.refresh(payout)
        return payout
    return _create

@pytest.fixture()
def partner_factory(db_session):
    def _create(external_id: str, name: str, role: str = "Partner"):
        partner = Partner(external_id=external_id, name=name, role=role)
        db_session.add(partner)
        db_session.commit()
        db_session.refresh(partner)
        return partner
    return _create

@pytest.fixture()
def audit_factory(db_session):
    def _create(
        subject: str,
        created_at: str,
        *,
        status: str | None = "pending",
        entity_type: str = "assignment",
        is_undone: bool = False,
        extra: dict | None = None,
    ):
        new_data = {"deal_id": subject, **(extra or {})}
        if status is not None:
            new_data["status"] = status
        row = ActionHistory(
            action_type="update",
            entity_type=entity_type,
            entity_id=subject,
            description="test adjustment",
            new_data=new_data,
            is_undone=is_undone,
            created_at=_ts(created_at),
        )
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row
    return _create
