"""Tests for Stripe checkout and fulfilment."""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courier import checkout as checkouts
from courier import payments
from courier.db import Base
from courier.errors import PaymentProviderError
from courier.models import Checkout, Shipment, User
from courier.shipping import cart
from courier.shipping.fulfillment import normalize_draft


@pytest.fixture
def cart_of_two(client, user_headers, shipment):
    client.post("/api/cart/add", json=shipment, headers=user_headers)
    client.post("/api/cart/add", json={**shipment, "customer": "APS", "service_type": "rush"}, headers=user_headers)


def start(client, headers, **body):
    return client.post("/api/create-payment-intent", json={"from_cart": True, **body}, headers=headers)


class TestCreatePaymentIntent:
    def test_amount_is_cart_total(self, client, user_headers, fake_stripe, cart_of_two, db):
        response = start(client, user_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["amount"] == 137.99
        assert data["clientSecret"] == "pi_1_secret"
        assert fake_stripe.intents["pi_1"].amount == 13799

        checkout = db.query(Checkout).one()
        assert checkout.payment_intent_id == "pi_1"
        assert checkout.status == "awaiting_payment"
        assert fake_stripe.create_calls == [checkout.idempotency_key]

    def test_empty_cart(self, client, user_headers, fake_stripe):
        response = start(client, user_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_CART"

    def test_single_shipment(self, client, user_headers, fake_stripe, shipment):
        response = start(client, user_headers, from_cart=False, shipment={**shipment, "price": 1})
        assert response.json()["amount"] == 108.49

    def test_idempotency_key_replays(self, client, user_headers, fake_stripe, cart_of_two):
        first = start(client, user_headers, idempotency_key="order-42").json()
        second = start(client, user_headers, idempotency_key="order-42").json()
        assert first["paymentIntentId"] == second["paymentIntentId"]
        assert len(fake_stripe.intents) == 1

    def test_stripe_failure_leaves_no_checkout(self, client, user_headers, cart_of_two, monkeypatch, db):
        def boom(*args, **kwargs):
            raise PaymentProviderError("Failed to create payment intent")

        monkeypatch.setattr(payments, "create_payment_intent", boom)
        response = start(client, user_headers)
        assert response.status_code == 502
        assert db.query(Checkout).count() == 0


class TestConfirm:
    def test_confirm_creates_paid_shipments_and_clears_cart(self, client, user_headers, fake_stripe, cart_of_two, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        fake_stripe.succeed(intent_id)

        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert len(data["shipments"]) == 2
        assert {s["payment_status"] for s in data["shipments"]} == {"paid"}
        assert data["checkout"]["status"] == "fulfilled"
        assert client.get("/api/cart", headers=user_headers).json()["items"] == []

    def test_confirm_twice_creates_once(self, client, user_headers, fake_stripe, cart_of_two, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        fake_stripe.succeed(intent_id)

        first = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers).json()
        second = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers).json()
        assert second["message"] == "Payment already processed"
        assert [s["id"] for s in first["shipments"]] == [s["id"] for s in second["shipments"]]
        assert db.query(Shipment).count() == 2

    def test_items_added_after_checkout_stay(self, client, user_headers, fake_stripe, cart_of_two, shipment):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        client.post("/api/cart/add", json=shipment, headers=user_headers)
        fake_stripe.succeed(intent_id)

        client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers)
        assert len(client.get("/api/cart", headers=user_headers).json()["items"]) == 1

    def test_unpaid_intent(self, client, user_headers, fake_stripe, cart_of_two, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers)
        assert response.status_code == 402
        assert response.json()["code"] == "PAYMENT_NOT_SUCCEEDED"
        assert db.query(Shipment).count() == 0

    def test_amount_mismatch(self, client, user_headers, fake_stripe, cart_of_two):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        fake_stripe.succeed(intent_id, amount_received=100)
        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers)
        assert response.status_code == 402
        assert response.json()["code"] == "AMOUNT_MISMATCH"

    def test_other_users_intent(self, client, make_user, fake_stripe, user_headers, cart_of_two):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        fake_stripe.succeed(intent_id)
        _, other = make_user("mallory")
        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=other)
        assert response.status_code == 404


class TestWebhook:
    @pytest.fixture
    def deliver(self, client, fake_stripe, monkeypatch):
        def _deliver(event):
            monkeypatch.setattr(payments, "construct_webhook_event", lambda payload, sig: event)
            return client.post("/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"})

        return _deliver

    def test_succeeded_event_fulfils(self, client, user_headers, fake_stripe, cart_of_two, deliver, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        intent = fake_stripe.succeed(intent_id)

        response = deliver(fake_stripe.event("payment_intent.succeeded", intent))
        assert response.status_code == 200
        assert response.json()["handled"] is True
        assert db.query(Shipment).count() == 2

    def test_webhook_then_confirm_creates_once(self, client, user_headers, fake_stripe, cart_of_two, deliver, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        intent = fake_stripe.succeed(intent_id)

        deliver(fake_stripe.event("payment_intent.succeeded", intent))
        deliver(fake_stripe.event("payment_intent.succeeded", intent))
        response = client.post("/api/payments/confirm", json={"payment_intent_id": intent_id}, headers=user_headers)
        assert response.json()["message"] == "Payment already processed"
        assert db.query(Shipment).count() == 2

    def test_amount_mismatch_is_acknowledged(self, client, user_headers, fake_stripe, cart_of_two, deliver, db):
        intent_id = start(client, user_headers).json()["paymentIntentId"]
        intent = fake_stripe.succeed(intent_id, amount_received=100)

        response = deliver(fake_stripe.event("payment_intent.succeeded", intent))
        assert response.status_code == 200
        assert response.json()["handled"] is False
        assert response.json()["error"] == "AMOUNT_MISMATCH"
        assert db.query(Shipment).count() == 0

    def test_other_events_acknowledged(self, fake_stripe, deliver):
        response = deliver({"type": "charge.refunded", "data": {"object": {}}})
        assert response.status_code == 200
        assert response.json()["handled"] is False

    def test_unknown_intent_acknowledged(self, fake_stripe, deliver):
        stray = fake_stripe.create_payment_intent(500, "cad", "stray")
        response = deliver(fake_stripe.event("payment_intent.succeeded", fake_stripe.succeed(stray.id)))
        assert response.status_code == 200
        assert response.json()["handled"] is False

    def test_bad_signature(self, client):
        response = client.post("/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "bogus"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SIGNATURE"


class GatedIntent:
    """A succeeded intent whose status read blocks until every caller has reached it."""

    def __init__(self, intent_id, amount_cents, barrier):
        self.id = intent_id
        self.amount = amount_cents
        self.amount_received = amount_cents
        self._barrier = barrier

    @property
    def status(self):
        self._barrier.wait()
        return "succeeded"


class TestConcurrentFulfilment:
    @pytest.fixture
    def file_sessions(self, tmp_path):
        # a file database so each thread gets its own connection
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
        engine.dispose()

    def test_racing_fulfilments_create_once(self, file_sessions, shipment):
        draft = normalize_draft(shipment)
        amount_cents = payments.to_cents(draft["price"])
        with file_sessions() as s:
            user = User(username="alice", email="alice@example.com", password_hash="x", email_verified=True)
            s.add(user)
            s.flush()
            s.add(
                Checkout(
                    user_id=user.id,
                    idempotency_key="race",
                    payment_intent_id="pi_race",
                    amount=draft["price"],
                    amount_cents=amount_cents,
                    items_json=cart.dump_snapshot([draft]),
                )
            )
            s.commit()

        barrier = threading.Barrier(2, timeout=10)
        created, errors = [], []

        def fulfil():
            session = file_sessions()
            try:
                _, shipments, was_created = checkouts.fulfill_checkout(
                    session, GatedIntent("pi_race", amount_cents, barrier)
                )
                created.append((was_created, [sh.id for sh in shipments]))
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=fulfil) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(flag for flag, _ in created) == [False, True]
        assert created[0][1] == created[1][1]
        with file_sessions() as s:
            assert s.query(Shipment).count() == 1
            assert s.query(Checkout).one().status == "fulfilled"
