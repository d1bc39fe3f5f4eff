"""Pytest fixtures for courier tests."""

import os

# Must be set before anything imports courier.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "development"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASS"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["PUBLIC_BASE_URL"] = "https://track.example.com"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from courier import payments
from courier.auth import create_token, hash_password
from courier.db import Base, SessionLocal, engine
from courier.main import app
from courier.models import User

SHIPMENT = {
    "recipient_name": "Jane Roe",
    "recipient_address": "12 King St W, Toronto",
    "contact_number": "4165551234",
    "origin_zip": "10001",
    "destination_zip": "90001",
    "weight": 5,
    "service_type": "standard",
}


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Insert a user directly and return (user, auth headers)."""

    def _make(username="alice", role="user", verified=True, password="pw123456"):
        u = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(password),
            email_verified=verified,
            phone="4165551234",
            state_province="ON",
            postal_code="M5V 2T6",
            role=role,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u, {"Authorization": f"Bearer {create_token(u.id, u.username, u.role)}"}

    return _make


@pytest.fixture
def user_headers(make_user):
    return make_user()[1]


@pytest.fixture
def admin_headers(make_user):
    return make_user("root", role="admin")[1]


class FakeStripe:
    """In-memory stand-in for the Stripe calls in courier.payments."""

    def __init__(self):
        self.intents = {}
        self.create_calls = []

    def create_payment_intent(self, amount_cents, currency, idempotency_key, metadata=None):
        self.create_calls.append(idempotency_key)
        intent = SimpleNamespace(
            id=f"pi_{len(self.intents) + 1}",
            client_secret=f"pi_{len(self.intents) + 1}_secret",
            amount=amount_cents,
            amount_received=0,
            currency=currency,
            status="requires_payment_method",
            metadata=metadata or {},
        )
        self.intents[intent.id] = intent
        return intent

    def retrieve_payment_intent(self, payment_intent_id):
        return self.intents[payment_intent_id]

    def succeed(self, payment_intent_id, amount_received=None):
        intent = self.intents[payment_intent_id]
        intent.status = "succeeded"
        intent.amount_received = intent.amount if amount_received is None else amount_received
        return intent

    def event(self, event_type, intent):
        return {"type": event_type, "data": {"object": intent}}


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(payments, "create_payment_intent", fake.create_payment_intent)
    monkeypatch.setattr(payments, "retrieve_payment_intent", fake.retrieve_payment_intent)
    return fake


@pytest.fixture
def shipment():
    return dict(SHIPMENT)
