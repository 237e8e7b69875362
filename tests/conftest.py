# tests/conftest.py
"""Shared fixtures: in-memory SQLite database, seeded staff/pricing, fake gateway and SMS notifier."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tanapark.config import settings
from tanapark.database import Base, create_tables
from tanapark.models.parked_vehicle import ParkedVehicle
from tanapark.models.pricing_settings import PricingSettings
from tanapark.models.user import User
from tanapark.services.gateway import GatewayTransaction
from tanapark.services.sms_service import SmsError

TEST_PUBLIC_KEY = "CHAPUBK_TEST-abcdef123456"
LIVE_PUBLIC_KEY = "CHAPUBK-abcdef123456"

PRICING_DOCUMENT = {
    "priceLevels": {
        "standard": {
            "automobile": {"hourly": 60, "weekly": 1000, "monthly": 3500, "yearly": 36000},
            "truck": {"hourly": 100, "weekly": 2000, "monthly": 7000},
            "tripod": {"hourly": 30},
        },
        "premium": {
            "automobile": {"hourly": 90, "weekly": 1500, "monthly": 5000, "yearly": 50000},
        },
    },
    "vatRate": 0.15,
}

NOW = datetime(2025, 3, 14, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def pricing(db):
    row = PricingSettings(settings=PRICING_DOCUMENT, updated_at=NOW)
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def valet(db):
    user = User(name="Abebe Kebede", phone_number="0911000001", type="valet",
                park_zone_code="Piassa Zone A", price_level="standard")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def manager(db):
    user = User(name="Sara Mengistu", phone_number="0911000002", type="manager")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def chapa_test_key(monkeypatch):
    monkeypatch.setattr(settings, "CHAPA_PUBLIC_KEY", TEST_PUBLIC_KEY)
    return TEST_PUBLIC_KEY


@pytest.fixture
def make_vehicle(db, valet):
    def _make(minutes_parked=75, plate="AA-3-B12345", phone="0912345678", **overrides):
        code, region, number = plate.split("-")
        vehicle = ParkedVehicle(
            license_plate=plate,
            plate_code=code,
            region=region,
            license_plate_number=number,
            vehicle_type="automobile",
            phone_number=phone,
            location=valet.park_zone_code,
            service_type="hourly",
            status="parked",
            parked_at=NOW - timedelta(minutes=minutes_parked),
            valet_id=valet.id,
        )
        for key, value in overrides.items():
            setattr(vehicle, key, value)
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle
    return _make


class FakeGateway:
    """Answers verify_transaction from a queue of statuses; the last one repeats."""

    def __init__(self, *statuses, amount=None):
        self.statuses = list(statuses) or ["successful"]
        self.amount = amount
        self.calls = []

    async def verify_transaction(self, tx_ref):
        self.calls.append(tx_ref)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        return GatewayTransaction(tx_ref=tx_ref, status=status, amount=self.amount, currency="ETB")


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    @property
    def enabled(self):
        return True

    async def send(self, phone_number, message):
        if self.fail:
            raise SmsError("gateway down")
        self.sent.append((phone_number, message))


@pytest.fixture
def gateway():
    return FakeGateway("successful")


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(engine, gateway, notifier):
    from fastapi.testclient import TestClient
    from tanapark.main import app
    from tanapark.database import get_db
    from tanapark.dependencies import get_gateway, get_notifier

    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    # Not entered as a context manager: startup would try to reach the real database
    yield TestClient(app)
    app.dependency_overrides.clear()
