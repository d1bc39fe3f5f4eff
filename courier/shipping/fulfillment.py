# courier/shipping/fulfillment.py
"""
Shipment, package and tracking-history writes.

Nothing in here commits: callers own the transaction, so a bulk order, a
checkout fulfilment or a manual-payment verification either lands entirely
or not at all.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..emailer import send_invoice_email, send_status_update_email
from ..errors import ValidationError
from ..models import Invoice, Package, Shipment, TrackingHistoryEntry, User, utcnow
from . import numbers
from .invoice import render_invoice_html, render_status_update_html
from .pricing import CUSTOM_CUSTOMER, TARIFFS, TARIFF_TIERS, check_weight, is_known_service, quote_price, service_label
from .status import PackageStatus, describe_status, display_status, parse_status, validate_transition

logger = logging.getLogger(__name__)

REQUIRED_RECIPIENT_FIELDS = ("recipient_name", "recipient_address", "contact_number")


def _text(data: Dict[str, Any], *keys: str) -> str:
    for k in keys:
        v = data.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def normalize_draft(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate one shipment request and price it server-side.

    Accepts both the ``origin_zip``/``destination_zip`` names used by the
    single-shipment form and the ``*_postal`` names used by cart rows. Any
    client ``price`` is ignored.
    """
    customer = _text(data, "customer") or CUSTOM_CUSTOMER
    is_tariff = customer in TARIFFS
    service_type = _text(data, "service_type") or ("" if is_tariff else "standard")

    missing = [f for f in REQUIRED_RECIPIENT_FIELDS if not _text(data, f)]
    origin = _text(data, "origin_postal", "origin_zip")
    destination = _text(data, "destination_postal", "destination_zip")
    raw_weight = data.get("weight")
    if not is_tariff:
        if not origin:
            missing.append("origin_zip")
        if not destination:
            missing.append("destination_zip")
        if raw_weight in (None, ""):
            missing.append("weight")
    if not service_type:
        missing.append("service_type")
    if missing:
        raise ValidationError("All fields are required", details={"missing": missing})

    if is_tariff and service_type not in {t["key"] for t in TARIFF_TIERS}:
        raise ValidationError(f"Unknown service type '{service_type}' for customer {customer}")
    if not is_known_service(service_type):
        raise ValidationError(f"Unknown service type '{service_type}'")

    try:
        weight = check_weight(raw_weight) if raw_weight not in (None, "") else 1.0
        price = quote_price(customer, service_type, origin, destination, weight)
    except (TypeError, ValueError) as e:
        raise ValidationError(str(e)) from e

    return {
        "customer": customer,
        "service_type": service_type,
        "service_type_label": service_label(service_type),
        "recipient_name": _text(data, "recipient_name"),
        "recipient_address": _text(data, "recipient_address"),
        "contact_number": _text(data, "contact_number"),
        "origin_postal": origin,
        "destination_postal": destination,
        "weight": weight,
        "price": price,
    }


def normalize_drafts(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """All-or-nothing validation; reports every bad entry by index."""
    if not items:
        raise ValidationError("Shipments array is required")

    drafts: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for i, raw in enumerate(items):
        if not isinstance(raw, dict):
            errors.append({"index": i, "error": "Shipment must be an object"})
            continue
        try:
            drafts.append(normalize_draft(raw))
        except ValidationError as e:
            errors.append({"index": i, "error": e.message, **e.details})
    if errors:
        raise ValidationError(
            f"{len(errors)} of {len(items)} shipments are invalid; none were created",
            details={"errors": errors},
        )
    return drafts


def _taken(db: Session, column) -> Any:
    return lambda value: db.query(column).filter(column == value).first() is not None


def create_shipment(
    db: Session,
    user_id: int,
    draft: Dict[str, Any],
    checkout_id: Optional[int] = None,
    payment_status: str = "unpaid",
) -> Shipment:
    """Shipment + its package + the first history entry. Flushes, never commits."""
    tracking = numbers.unique(numbers.tracking_number, _taken(db, Package.tracking_number))
    shipment = Shipment(
        shipment_number=numbers.unique(numbers.shipment_number, _taken(db, Shipment.shipment_number)),
        tracking_number=tracking,
        user_id=user_id,
        checkout_id=checkout_id,
        status=PackageStatus.PENDING.value,
        payment_status=payment_status,
        **draft,
    )
    db.add(shipment)
    db.flush()

    package = Package(
        tracking_number=tracking,
        user_id=user_id,
        shipment=shipment,
        status=PackageStatus.PENDING.value,
        current_location="Package created",
        recipient_name=draft["recipient_name"],
        weight=draft["weight"],
    )
    db.add(package)
    db.flush()

    db.add(
        TrackingHistoryEntry(
            package_id=package.id,
            status=PackageStatus.PENDING.value,
            location="Package created",
            description="Package has been created and is awaiting pickup",
        )
    )
    db.flush()
    logger.info(f"Shipment {shipment.shipment_number} created with tracking number {tracking}")
    return shipment


def create_shipments(
    db: Session,
    user_id: int,
    drafts: List[Dict[str, Any]],
    checkout_id: Optional[int] = None,
    payment_status: str = "unpaid",
) -> List[Shipment]:
    return [create_shipment(db, user_id, d, checkout_id, payment_status) for d in drafts]


def issue_invoices(db: Session, user: User, shipments: List[Shipment]) -> bool:
    """One invoice row per shipment, one email per order. Returns email outcome."""
    bulk = len(shipments) > 1
    base = numbers.unique(
        lambda: numbers.invoice_number(bulk=bulk),
        lambda v: db.query(Invoice.id).filter(Invoice.invoice_number.like(f"{v}%")).first() is not None,
    )
    invoices = []
    for s in shipments:
        inv = Invoice(
            invoice_number=f"{base}-{s.shipment_number}" if bulk else base,
            shipment_id=s.id,
            user_id=user.id,
            amount=s.price,
            currency="USD",
            status="paid" if s.payment_status == "paid" else "issued",
        )
        db.add(inv)
        invoices.append(inv)
    db.flush()

    html = render_invoice_html(shipments, user, base)
    if bulk:
        subject, filename = f"Order Invoice - {len(shipments)} Shipments", f"bulk-invoice-{base}.html"
    else:
        subject, filename = f"Order Invoice - Shipment {shipments[0].shipment_number}", f"invoice-{shipments[0].shipment_number}.html"

    sent = send_invoice_email(user.email, subject, html, filename)
    for inv in invoices:
        inv.email_sent = sent
    if sent:
        logger.info(f"Invoice {base} emailed to {user.email}")
    else:
        logger.warning(f"Invoice {base} was not emailed")
    return sent


def get_package_by_tracking(db: Session, tracking_number: str) -> Optional[Package]:
    return db.query(Package).filter(Package.tracking_number == tracking_number).first()


def update_package_status(
    db: Session,
    package: Package,
    status: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> Tuple[Package, TrackingHistoryEntry]:
    """Apply a status/location change through the transition table and log it."""
    new_status = parse_status(status)
    validate_transition(package.status, new_status)

    location = (location or "").strip() or package.current_location or ""
    package.status = new_status.value
    package.current_location = location
    package.updated_at = utcnow()
    if package.shipment is not None:
        package.shipment.status = new_status.value

    entry = TrackingHistoryEntry(
        package_id=package.id,
        status=new_status.value,
        location=location,
        description=(description or "").strip() or describe_status(new_status.value, location or None),
    )
    db.add(entry)
    db.flush()
    db.expire(package, ["history"])
    logger.info(f"Package {package.tracking_number} status updated to {new_status.value}")
    return package, entry


def notify_status_change(package: Package, entry: TrackingHistoryEntry) -> bool:
    if package.user is None:
        return False
    html = render_status_update_html(package.user, package, entry.description)
    return send_status_update_email(package.user.email, package.tracking_number, html)


# -------------------
# Serialisation
# -------------------
def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def history_to_dict(entry: TrackingHistoryEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "package_id": entry.package_id,
        "status": entry.status,
        "status_display": display_status(entry.status),
        "location": entry.location,
        "description": entry.description,
        "timestamp": _iso(entry.timestamp),
    }


def shipment_to_dict(s: Shipment) -> Dict[str, Any]:
    return {
        "id": s.id,
        "shipment_number": s.shipment_number,
        "tracking_number": s.tracking_number,
        "user_id": s.user_id,
        "customer": s.customer,
        "service_type": s.service_type,
        "service_type_label": s.service_type_label,
        "recipient_name": s.recipient_name,
        "recipient_address": s.recipient_address,
        "contact_number": s.contact_number,
        "origin_postal": s.origin_postal,
        "destination_postal": s.destination_postal,
        "weight": s.weight,
        "price": s.price,
        "status": s.status,
        "payment_status": s.payment_status,
        "created_at": _iso(s.created_at),
    }


def package_to_dict(p: Package, with_history: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": p.id,
        "tracking_number": p.tracking_number,
        "user_id": p.user_id,
        "shipment_id": p.shipment_id,
        "status": p.status,
        "status_display": display_status(p.status),
        "current_location": p.current_location,
        "recipient_name": p.recipient_name,
        "weight": p.weight,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }
    if p.shipment is not None:
        data["shipment"] = shipment_to_dict(p.shipment)
    if with_history:
        data["tracking_history"] = [history_to_dict(h) for h in p.history]
    return data
