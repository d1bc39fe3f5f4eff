# courier/manual_payments.py
"""Interac e-Transfer / bank transfer payments confirmed by the back office."""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .errors import NotFoundError, ValidationError
from .models import ManualPayment, Shipment, utcnow
from .shipping import cart, numbers
from .shipping.fulfillment import create_shipments, normalize_draft

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("interac_etransfer", "bank_transfer")
EXPIRY = timedelta(hours=24)


def _is_overdue(payment: ManualPayment, now: datetime) -> bool:
    return payment.status == "pending" and payment.expires_at is not None and payment.expires_at <= now


def create_manual_payment(
    db: Session,
    user_id: int,
    payment_method: str,
    currency: str = "cad",
    from_cart: bool = False,
    shipment: Optional[Dict[str, Any]] = None,
    order_details: Optional[Dict[str, Any]] = None,
    amount: Optional[float] = None,
) -> ManualPayment:
    """
    Record a pending transfer with a 24h window.

    Cart and single-shipment orders are priced here and their items are
    snapshotted into ``order_details``; only free-form orders take the
    client's ``amount``.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            "Payment method must be one of: " + ", ".join(PAYMENT_METHODS),
            details={"payment_method": payment_method},
        )

    details = dict(order_details or {})
    single_json = None
    if from_cart:
        rows = cart.list_items(db, user_id)
        if not rows:
            raise ValidationError("Cart is empty", code="EMPTY_CART")
        items = [{"item_id": r["item_id"], **normalize_draft(r)} for r in cart.snapshot(rows)]
        details["items"] = items
        total = cart.cart_total(items)
    elif shipment:
        draft = normalize_draft(shipment)
        single_json = json.dumps(draft)
        total = draft["price"]
    else:
        try:
            total = round(float(amount), 2)
        except (TypeError, ValueError):
            raise ValidationError("Amount and payment method are required")
    if not math.isfinite(total) or total <= 0:
        raise ValidationError("Amount must be greater than zero")

    ref = numbers.unique(
        numbers.payment_reference,
        lambda v: db.query(ManualPayment.id).filter(ManualPayment.reference_number == v).first() is not None,
    )
    now = utcnow()
    payment = ManualPayment(
        reference_number=ref,
        user_id=user_id,
        amount=total,
        currency=currency.lower(),
        payment_method=payment_method,
        status="pending",
        order_details=json.dumps(details),
        from_cart=from_cart,
        single_shipment_data=single_json,
        created_at=now,
        expires_at=now + EXPIRY,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info(f"Manual payment {ref} created for user {user_id}: {total} {payment.currency}")
    return payment


def get_manual_payment(db: Session, reference_number: str, now: Optional[datetime] = None) -> ManualPayment:
    payment = db.query(ManualPayment).filter(ManualPayment.reference_number == reference_number).first()
    if not payment:
        raise NotFoundError("Payment", reference_number)
    if _is_overdue(payment, now or utcnow()):
        payment.status = "expired"
        db.commit()
    return payment


def verify_manual_payment(
    db: Session,
    reference_number: str,
    customer_email: str,
    customer_name: str,
    now: Optional[datetime] = None,
) -> Tuple[ManualPayment, List[Shipment]]:
    """Mark a transfer as received and create what it paid for, in one commit."""
    if not reference_number or not customer_email or not customer_name:
        raise ValidationError("Reference number, email, and name are required")

    now = now or utcnow()
    payment = (
        db.query(ManualPayment)
        .filter(ManualPayment.reference_number == reference_number)
        .with_for_update()
        .first()
    )
    if not payment:
        raise NotFoundError("Payment", reference_number)
    if _is_overdue(payment, now):
        payment.status = "expired"
        db.commit()
        raise ValidationError("Payment expired", code="PAYMENT_EXPIRED")
    if payment.status != "pending":
        raise ValidationError(
            "Payment already processed or expired",
            code="PAYMENT_NOT_PENDING",
            details={"status": payment.status},
        )

    payment.status = "verified"
    payment.customer_email = customer_email
    payment.customer_name = customer_name
    payment.verified_at = now

    shipments: List[Shipment] = []
    if payment.single_shipment_data:
        draft = json.loads(payment.single_shipment_data)
        shipments = create_shipments(db, payment.user_id, [draft], payment_status="paid")
    elif payment.from_cart:
        items = order_items(payment)
        drafts = [{k: v for k, v in it.items() if k != "item_id"} for it in items]
        shipments = create_shipments(db, payment.user_id, drafts, payment_status="paid")
        cart.remove_snapshot_items(db, payment.user_id, items)

    db.commit()
    logger.info(f"Manual payment {reference_number} verified; {len(shipments)} shipments created")
    return payment, shipments


def expire_overdue(db: Session, now: Optional[datetime] = None) -> int:
    count = (
        db.query(ManualPayment)
        .filter(ManualPayment.status == "pending", ManualPayment.expires_at <= (now or utcnow()))
        .update({ManualPayment.status: "expired"}, synchronize_session=False)
    )
    db.commit()
    if count:
        logger.info(f"Expired {count} overdue manual payments")
    return count


def order_items(payment: ManualPayment) -> List[Dict[str, Any]]:
    try:
        details = json.loads(payment.order_details or "{}")
    except json.JSONDecodeError:
        return []
    items = details.get("items") if isinstance(details, dict) else None
    return items if isinstance(items, list) else []


def manual_payment_to_dict(p: ManualPayment) -> Dict[str, Any]:
    try:
        details = json.loads(p.order_details or "{}")
    except json.JSONDecodeError:
        details = {}
    return {
        "reference_number": p.reference_number,
        "user_id": p.user_id,
        "amount": p.amount,
        "currency": p.currency,
        "payment_method": p.payment_method,
        "status": p.status,
        "order_details": details,
        "from_cart": p.from_cart,
        "customer_email": p.customer_email,
        "customer_name": p.customer_name,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "expires_at": p.expires_at.isoformat() if p.expires_at else None,
        "verified_at": p.verified_at.isoformat() if p.verified_at else None,
    }


def count_pending(db: Session) -> int:
    return db.query(ManualPayment).filter(ManualPayment.status == "pending").count()
