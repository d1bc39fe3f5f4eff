# courier/checkout.py
"""
Stripe checkout: price the order server-side, open a PaymentIntent, and turn
a succeeded intent into shipments exactly once.

A ``Checkout`` row records what an intent pays for. Its unique
``payment_intent_id`` is the idempotency anchor shared by the client
confirmation call and the Stripe webhook, whichever arrives first.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from . import payments
from .errors import NotFoundError, PaymentError, ValidationError
from .models import Checkout, Shipment, User, utcnow
from .shipping import cart
from .shipping.fulfillment import create_shipments, normalize_draft

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


def _priced_items(db: Session, user: User, from_cart: bool, shipment: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if from_cart:
        rows = cart.list_items(db, user.id)
        if not rows:
            raise ValidationError("Cart is empty", code="EMPTY_CART")
        # re-price at checkout; cart rows may predate a tariff change
        return [{"item_id": r["item_id"], **normalize_draft(r)} for r in cart.snapshot(rows)]
    if not shipment:
        raise ValidationError("Shipment details are required when not paying for the cart")
    return [normalize_draft(shipment)]


def start_checkout(
    db: Session,
    user: User,
    from_cart: bool,
    shipment: Optional[Dict[str, Any]] = None,
    currency: str = "cad",
    idempotency_key: Optional[str] = None,
) -> Tuple[Checkout, Any]:
    """Create (or replay) a checkout and its PaymentIntent."""
    # client keys are scoped per user so two accounts can never collide
    key = f"user-{user.id}-{idempotency_key}" if idempotency_key else f"checkout-{uuid4().hex}"
    if idempotency_key:
        existing = (
            db.query(Checkout)
            .filter(Checkout.idempotency_key == key)
            .first()
        )
        if existing and existing.payment_intent_id:
            logger.info(f"Replaying checkout {existing.id} for key {idempotency_key}")
            return existing, payments.retrieve_payment_intent(existing.payment_intent_id)

    items = _priced_items(db, user, from_cart, shipment)
    amount = cart.cart_total(items)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")

    checkout = Checkout(
        user_id=user.id,
        idempotency_key=key,
        amount=amount,
        amount_cents=payments.to_cents(amount),
        currency=currency.lower(),
        from_cart=from_cart,
        items_json=cart.dump_snapshot(items),
    )
    db.add(checkout)
    db.flush()

    try:
        intent = payments.create_payment_intent(
            checkout.amount_cents,
            checkout.currency,
            idempotency_key=checkout.idempotency_key,
            metadata={"checkout_id": str(checkout.id), "user_id": str(user.id)},
        )
    except Exception:
        db.rollback()
        raise

    checkout.payment_intent_id = intent.id
    db.commit()
    db.refresh(checkout)
    return checkout, intent


def _existing_result(db: Session, payment_intent_id: str) -> Tuple[Checkout, List[Shipment], bool]:
    checkout = db.query(Checkout).filter(Checkout.payment_intent_id == payment_intent_id).first()
    if checkout is None:
        raise NotFoundError("Checkout", payment_intent_id)
    return checkout, list(checkout.shipments), False


def fulfill_checkout(db: Session, intent: Any) -> Tuple[Checkout, List[Shipment], bool]:
    """
    Create the shipments a succeeded PaymentIntent paid for.

    Returns ``(checkout, shipments, created)``; ``created`` is False when the
    checkout had already been fulfilled, in which case nothing is written.
    """
    checkout = (
        db.query(Checkout)
        .filter(Checkout.payment_intent_id == intent.id)
        .with_for_update()
        .first()
    )
    if checkout is None:
        raise NotFoundError("Checkout", intent.id)

    if checkout.status == "fulfilled":
        return checkout, list(checkout.shipments), False

    if intent.status != SUCCEEDED:
        raise PaymentError(
            f"Payment has not succeeded (status: {intent.status})",
            code="PAYMENT_NOT_SUCCEEDED",
            details={"payment_intent_id": intent.id, "status": intent.status},
        )
    received = getattr(intent, "amount_received", None) or intent.amount
    if received != checkout.amount_cents:
        raise PaymentError(
            "Payment amount does not match the order",
            code="AMOUNT_MISMATCH",
            details={"expected": checkout.amount_cents, "received": received},
        )

    # claim the row before writing anything; only one caller can flip it
    now = utcnow()
    claimed = (
        db.query(Checkout)
        .filter(Checkout.id == checkout.id, Checkout.status == "awaiting_payment")
        .update({Checkout.status: "fulfilled", Checkout.fulfilled_at: now}, synchronize_session=False)
    )
    if not claimed:
        db.rollback()
        logger.info(f"Checkout for {intent.id} was fulfilled concurrently")
        return _existing_result(db, intent.id)
    checkout.status = "fulfilled"
    checkout.fulfilled_at = now

    items = cart.load_snapshot(checkout.items_json)
    drafts = [{k: v for k, v in it.items() if k != "item_id"} for it in items]
    try:
        shipments = create_shipments(db, checkout.user_id, drafts, checkout_id=checkout.id, payment_status="paid")
        if checkout.from_cart:
            cart.remove_snapshot_items(db, checkout.user_id, items)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Checkout {checkout.id} fulfilled: {len(shipments)} shipments for intent {intent.id}")
    return checkout, shipments, True


def checkout_to_dict(checkout: Checkout) -> Dict[str, Any]:
    return {
        "id": checkout.id,
        "payment_intent_id": checkout.payment_intent_id,
        "amount": checkout.amount,
        "currency": checkout.currency,
        "from_cart": checkout.from_cart,
        "status": checkout.status,
        "items": cart.load_snapshot(checkout.items_json),
        "created_at": checkout.created_at.isoformat() if checkout.created_at else None,
        "fulfilled_at": checkout.fulfilled_at.isoformat() if checkout.fulfilled_at else None,
    }
