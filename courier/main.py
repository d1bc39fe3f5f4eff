# courier/main.py
from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, EmailStr
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import checkout as checkouts
from . import manual_payments, payments
from .auth import create_token, decode_token, hash_password, verify_password
from .config import settings
from .db import get_db, init_db
from .emailer import send_verification_email
from .errors import (
    AuthenticationError,
    CourierError,
    EmailNotVerifiedError,
    NotFoundError,
    PaymentError,
    PermissionDeniedError,
    ValidationError,
)
from .models import Checkout, Invoice, Package, Shipment, ShippingEstimate, User
from .shipping import cart, numbers, phone, pricing
from .shipping.fulfillment import (
    create_shipment,
    create_shipments,
    get_package_by_tracking,
    history_to_dict,
    issue_invoices,
    normalize_draft,
    normalize_drafts,
    notify_status_change,
    package_to_dict,
    shipment_to_dict,
    update_package_status,
)
from .shipping.labels import tracking_qr_png, tracking_url
from .shipping.status import PackageStatus, display_status, parse_status

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Noble Speedy Trac API")

init_db()


# -------------------
# Errors
# -------------------
@app.exception_handler(CourierError)
async def courier_error_handler(request: Request, exc: CourierError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request body",
            "code": "VALIDATION_ERROR",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Server error"})


# -------------------
# Schemas
# -------------------
class RegisterIn(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class VerifyEmailIn(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None


class LoginIn(BaseModel):
    username: str
    password: str


class EstimateIn(BaseModel):
    origin_zip: str
    destination_zip: str
    weight: float
    service_type: str = "standard"


class BulkShipmentsIn(BaseModel):
    # raw dicts so one malformed entry is reported by index
    shipments: List[Any] = []


class TrackIn(BaseModel):
    tracking_number: str
    zip_code: Optional[str] = None


class PaymentIntentIn(BaseModel):
    from_cart: bool = False
    shipment: Optional[Dict[str, Any]] = None
    currency: Optional[str] = None
    idempotency_key: Optional[str] = None


class ConfirmPaymentIn(BaseModel):
    payment_intent_id: str


class ManualPaymentIn(BaseModel):
    payment_method: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    from_cart: bool = False
    shipment: Optional[Dict[str, Any]] = None
    order_details: Optional[Dict[str, Any]] = None


class ManualVerifyIn(BaseModel):
    reference_number: str
    customer_email: EmailStr
    customer_name: str


class PhoneValidateIn(BaseModel):
    phone_number: str
    country_code: Optional[str] = None


class StatusUpdateIn(BaseModel):
    status: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


class AdminUserUpdateIn(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None


class DevVerifyIn(BaseModel):
    email: str


# -------------------
# Helpers
# -------------------
def require_user_id(authorization: str | None = Header(default=None)) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.split(" ", 1)[1].strip()
    claims = decode_token(token)
    if not claims:
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims["id"]


def current_user(user_id: int = Depends(require_user_id), db: Session = Depends(get_db)) -> User:
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise HTTPException(status_code=401, detail="Invalid token")
    return u


def require_admin(user: User = Depends(current_user)) -> User:
    # role comes from the row, not the token, so demotions apply at once
    if user.role != "admin":
        raise PermissionDeniedError("Admin access required")
    return user


def _ensure_owner(user: User, owner_id: int, entity: str, key: Any) -> None:
    if user.role != "admin" and owner_id != user.id:
        raise NotFoundError(entity, key)


def user_to_dict(u: User) -> Dict[str, Any]:
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "phone": u.phone,
        "state_province": u.state_province,
        "postal_code": u.postal_code,
        "role": u.role,
        "email_verified": u.email_verified,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def invoice_to_dict(inv: Invoice) -> Dict[str, Any]:
    return {
        "invoice_number": inv.invoice_number,
        "shipment_id": inv.shipment_id,
        "user_id": inv.user_id,
        "amount": inv.amount,
        "currency": inv.currency,
        "status": inv.status,
        "email_sent": inv.email_sent,
        "created_at": inv.created_at.isoformat() if inv.created_at else None,
        "shipment": shipment_to_dict(inv.shipment) if inv.shipment else None,
    }


def tracking_payload(package: Package) -> Dict[str, Any]:
    return {
        "package": package_to_dict(package),
        "shipment": shipment_to_dict(package.shipment) if package.shipment else None,
        "tracking_history": [history_to_dict(h) for h in package.history],
        "tracking_url": tracking_url(package.tracking_number),
    }


def _invoice_after_commit(db: Session, user: User, shipments: List[Shipment]) -> bool:
    # shipments are already committed; a failed invoice never undoes them
    if not shipments:
        return False
    sent = issue_invoices(db, user, shipments)
    db.commit()
    return sent


def _apply_status_update(db: Session, package: Package, payload: StatusUpdateIn) -> Dict[str, Any]:
    package, entry = update_package_status(
        db,
        package,
        payload.status or package.status,
        location=payload.location,
        description=payload.description,
    )
    db.commit()
    db.refresh(package)
    email_sent = notify_status_change(package, entry)
    return {
        "message": "Package status updated successfully",
        "package": package_to_dict(package),
        "history_entry": history_to_dict(entry),
        "email_sent": email_sent,
    }


# -------------------
# Health
# -------------------
@app.get("/api/health")
def health():
    return {"status": "OK", "service": "courier-api", "environment": settings.app_env}


# -------------------
# Auth
# -------------------
@app.post("/api/register", status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    required = ("username", "email", "password", "phone", "state_province", "postal_code")
    values = {k: (getattr(payload, k) or "").strip() for k in required}
    if not all(values.values()):
        raise ValidationError("All fields are required", details={"missing": [k for k, v in values.items() if not v]})

    phone_number = values["phone"]
    if payload.country:
        country = phone.find_country_by_code(payload.country)
        if not country:
            raise ValidationError(f"Unknown country '{payload.country}'")
        check = phone.validate_phone_number(phone_number, country)
        if not check["isValid"]:
            raise ValidationError(check["error"], code="INVALID_PHONE")
        phone_number = phone.full_phone_number(phone_number, country)

    exists = (
        db.query(User.id)
        .filter((User.username == values["username"]) | (User.email == values["email"]))
        .first()
    )
    if exists:
        raise ValidationError("Username or email already exists", code="DUPLICATE_USER")

    code = numbers.verification_code()
    u = User(
        username=values["username"],
        email=values["email"],
        password_hash=hash_password(values["password"]),
        email_verified=False,
        verification_code=code,
        phone=phone_number,
        state_province=values["state_province"],
        postal_code=values["postal_code"],
    )
    db.add(u)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Username or email already exists", code="DUPLICATE_USER")
    db.refresh(u)

    sent = send_verification_email(u.email, code)
    body: Dict[str, Any] = {
        "message": "User registered. Please verify your email.",
        "user": user_to_dict(u),
        "emailVerification": sent,
    }
    if not sent:
        # no mail transport: hand the code back so the account can be verified
        body["verificationCode"] = code
        body["note"] = "Email delivery is unavailable; use this code to verify your email"
    return body


@app.post("/api/verify-email")
def verify_email(payload: VerifyEmailIn, db: Session = Depends(get_db)):
    if not payload.email or not payload.code:
        raise ValidationError("Email and verification code are required")

    u = db.query(User).filter(User.email == payload.email.strip()).first()
    if not u:
        raise ValidationError("User not found")
    if u.email_verified:
        raise ValidationError("Email already verified")
    if not u.verification_code or not hmac.compare_digest(u.verification_code, payload.code.strip()):
        raise ValidationError("Invalid verification code", code="INVALID_CODE")

    u.email_verified = True
    u.verification_code = None
    db.commit()
    return {"message": "Email verified successfully"}


@app.post("/api/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    u = db.query(User).filter(User.username == payload.username).first()
    if not u:
        raise AuthenticationError("Invalid credentials")
    if not u.email_verified:
        raise EmailNotVerifiedError()
    if not verify_password(payload.password, u.password_hash):
        raise AuthenticationError("Invalid credentials")

    logger.info(f"User {u.username} logged in")
    return {"token": create_token(u.id, u.username, u.role), "user": user_to_dict(u)}


@app.get("/api/me")
def me(user: User = Depends(current_user)):
    return user_to_dict(user)


if settings.is_development:

    @app.post("/api/dev/auto-verify")
    def dev_auto_verify(payload: DevVerifyIn, db: Session = Depends(get_db)):
        u = db.query(User).filter(User.email == payload.email).first()
        if not u:
            raise NotFoundError("User", payload.email)
        u.email_verified = True
        u.verification_code = None
        db.commit()
        logger.warning(f"Auto-verified {u.email} (development only)")
        return {"message": "Email auto-verified for development"}


# -------------------
# Estimates / tariffs / phone
# -------------------
@app.post("/api/estimate")
def create_estimate(payload: EstimateIn, db: Session = Depends(get_db)):
    try:
        est = pricing.estimate(payload.origin_zip, payload.destination_zip, payload.weight, payload.service_type)
    except ValueError as e:
        raise ValidationError(str(e))

    db.add(ShippingEstimate(**est))
    db.commit()
    return est


@app.get("/api/estimates")
def recent_estimates(db: Session = Depends(get_db)):
    rows = db.query(ShippingEstimate).order_by(ShippingEstimate.created_at.desc(), ShippingEstimate.id.desc()).limit(10).all()
    return [
        {
            "id": r.id,
            "origin_zip": r.origin_zip,
            "destination_zip": r.destination_zip,
            "weight": r.weight,
            "service_type": r.service_type,
            "estimated_cost": r.estimated_cost,
            "estimated_days": r.estimated_days,
            "currency": r.currency,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


@app.get("/api/tariffs")
def tariffs():
    return {"tiers": pricing.TARIFF_TIERS, "customers": pricing.tariff_table()}


@app.get("/api/phone/countries")
def phone_countries():
    return [c.to_dict() for c in phone.COUNTRIES]


@app.post("/api/phone/validate")
def phone_validate(payload: PhoneValidateIn):
    country = None
    if payload.country_code:
        country = phone.find_country_by_code(payload.country_code)
        if not country:
            raise ValidationError(f"Unknown country '{payload.country_code}'")
    return phone.validate_and_format(payload.phone_number, country)


# -------------------
# Shipments
# -------------------
@app.post("/api/ship", status_code=201)
def ship(payload: Dict[str, Any], user: User = Depends(current_user), db: Session = Depends(get_db)):
    draft = normalize_draft(payload)
    shipment = create_shipment(db, user.id, draft)
    db.commit()
    db.refresh(shipment)

    email_sent = _invoice_after_commit(db, user, [shipment])
    return {
        "message": "Shipment created successfully",
        "shipment": shipment_to_dict(shipment),
        "tracking_number": shipment.tracking_number,
        "email_sent": email_sent,
    }


@app.post("/api/ship/bulk", status_code=201)
def ship_bulk(payload: BulkShipmentsIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    drafts = normalize_drafts(payload.shipments)
    shipments = create_shipments(db, user.id, drafts)
    db.commit()

    email_sent = _invoice_after_commit(db, user, shipments)
    logger.info(f"{len(shipments)} shipments created for user {user.id}")
    return {
        "message": f"{len(shipments)} shipments created successfully",
        "shipments": [shipment_to_dict(s) for s in shipments],
        "email_sent": email_sent,
    }


@app.get("/api/shipments")
def my_shipments(user: User = Depends(current_user), db: Session = Depends(get_db)):
    rows = db.query(Shipment).filter(Shipment.user_id == user.id).order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()
    return [shipment_to_dict(s) for s in rows]


# -------------------
# Cart
# -------------------
def _cart_view(db: Session, user_id: int) -> Dict[str, Any]:
    items = [cart.cart_item_to_dict(i) for i in cart.list_items(db, user_id)]
    summary, total = cart.build_summary(items)
    return {"items": items, "total": total, "summary": summary}


@app.post("/api/cart/add", status_code=201)
def cart_add(payload: Dict[str, Any], user: User = Depends(current_user), db: Session = Depends(get_db)):
    item = cart.add_item(db, user.id, payload)
    db.commit()
    db.refresh(item)
    return cart.cart_item_to_dict(item)


@app.get("/api/cart")
def cart_get(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return _cart_view(db, user.id)


@app.delete("/api/cart/{item_id}")
def cart_remove(item_id: str, user: User = Depends(current_user), db: Session = Depends(get_db)):
    cart.remove_item(db, user.id, item_id)
    db.commit()
    return {"message": "Item removed from cart"}


@app.delete("/api/cart")
def cart_clear(user: User = Depends(current_user), db: Session = Depends(get_db)):
    removed = cart.clear(db, user.id)
    db.commit()
    return {"message": "Cart cleared", "removed": removed}


# -------------------
# Stripe payments
# -------------------
@app.post("/api/create-payment-intent")
def create_payment_intent(payload: PaymentIntentIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    checkout, intent = checkouts.start_checkout(
        db,
        user,
        from_cart=payload.from_cart,
        shipment=payload.shipment,
        currency=payload.currency or settings.currency_default,
        idempotency_key=payload.idempotency_key,
    )
    return {
        "clientSecret": intent.client_secret,
        "paymentIntentId": intent.id,
        "amount": checkout.amount,
        "currency": checkout.currency,
        "checkoutId": checkout.id,
    }


@app.post("/api/payments/confirm")
def confirm_payment(payload: ConfirmPaymentIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    owned = db.query(Checkout.user_id).filter(Checkout.payment_intent_id == payload.payment_intent_id).first()
    if not owned or owned[0] != user.id:
        raise NotFoundError("Checkout", payload.payment_intent_id)

    intent = payments.retrieve_payment_intent(payload.payment_intent_id)
    checkout, shipments, created = checkouts.fulfill_checkout(db, intent)
    email_sent = _invoice_after_commit(db, user, shipments) if created else False
    return {
        "message": "Payment confirmed" if created else "Payment already processed",
        "checkout": checkouts.checkout_to_dict(checkout),
        "shipments": [shipment_to_dict(s) for s in shipments],
        "email_sent": email_sent,
    }


async def raw_body(request: Request) -> bytes:
    return await request.body()


@app.post("/api/stripe/webhook")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    event = payments.construct_webhook_event(payload, stripe_signature)

    event_type = event["type"]
    if event_type != "payment_intent.succeeded":
        logger.info(f"Ignoring Stripe event {event_type}")
        return {"received": True, "handled": False}

    intent = event["data"]["object"]
    try:
        checkout, shipments, created = checkouts.fulfill_checkout(db, intent)
    except NotFoundError:
        logger.warning(f"Webhook for unknown payment intent {intent.id}")
        return {"received": True, "handled": False}
    except PaymentError as e:
        # a retry from Stripe would fail the same way
        logger.error(f"Webhook for {intent.id} not fulfilled: {e.code} {e.details}")
        return {"received": True, "handled": False, "error": e.code}

    if created:
        owner = db.query(User).filter(User.id == checkout.user_id).first()
        if owner:
            _invoice_after_commit(db, owner, shipments)
    return {"received": True, "handled": True, "shipments": len(shipments)}


@app.get("/api/stripe-account-status")
def stripe_account_status():
    return payments.account_status()


@app.get("/api/payment-methods/available")
def available_payment_methods():
    return payments.available_payment_methods()


# -------------------
# Manual payments
# -------------------
@app.post("/api/manual-payment/create", status_code=201)
def manual_payment_create(payload: ManualPaymentIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    p = manual_payments.create_manual_payment(
        db,
        user.id,
        payment_method=payload.payment_method,
        currency=payload.currency or settings.currency_default,
        from_cart=payload.from_cart,
        shipment=payload.shipment,
        order_details=payload.order_details,
        amount=payload.amount,
    )
    return manual_payments.manual_payment_to_dict(p)


@app.post("/api/manual-payment/verify")
def manual_payment_verify(payload: ManualVerifyIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    p, shipments = manual_payments.verify_manual_payment(
        db, payload.reference_number, payload.customer_email, payload.customer_name
    )
    owner = db.query(User).filter(User.id == p.user_id).first()
    email_sent = _invoice_after_commit(db, owner, shipments) if owner else False
    return {
        "message": "Payment verified successfully",
        "payment": manual_payments.manual_payment_to_dict(p),
        "shipments": [shipment_to_dict(s) for s in shipments],
        "email_sent": email_sent,
    }


@app.get("/api/manual-payment/{reference_number}")
def manual_payment_get(reference_number: str, user: User = Depends(current_user), db: Session = Depends(get_db)):
    p = manual_payments.get_manual_payment(db, reference_number)
    _ensure_owner(user, p.user_id, "Payment", reference_number)
    return manual_payments.manual_payment_to_dict(p)


# -------------------
# Tracking
# -------------------
def _find_package(db: Session, tracking_number: str, zip_code: Optional[str] = None) -> Package:
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValidationError("Tracking number is required")
    package = get_package_by_tracking(db, tracking_number)
    if not package:
        raise NotFoundError("Package", tracking_number)
    if zip_code:
        dest = (package.shipment.destination_postal if package.shipment else "") or ""
        if dest.replace(" ", "").upper() != zip_code.replace(" ", "").upper():
            raise NotFoundError("Package", tracking_number)
    return package


@app.get("/api/track/{tracking_number}")
def track_get(tracking_number: str, db: Session = Depends(get_db)):
    return tracking_payload(_find_package(db, tracking_number))


@app.post("/api/track")
def track_post(payload: TrackIn, db: Session = Depends(get_db)):
    return tracking_payload(_find_package(db, payload.tracking_number, payload.zip_code))


@app.get("/api/track/{tracking_number}/qr")
def track_qr(tracking_number: str, db: Session = Depends(get_db)):
    package = _find_package(db, tracking_number)
    return Response(content=tracking_qr_png(package.tracking_number), media_type="image/png")


@app.get("/api/search/track/{partial}")
def search_tracking(partial: str, db: Session = Depends(get_db)):
    partial = partial.strip()
    if len(partial) < 3:
        raise ValidationError("Search term must be at least 3 characters")
    rows = (
        db.query(Package)
        .filter(Package.tracking_number.ilike(f"%{partial}%"))
        .order_by(Package.created_at.desc())
        .limit(20)
        .all()
    )
    return [
        {
            "tracking_number": p.tracking_number,
            "status": p.status,
            "status_display": display_status(p.status),
            "current_location": p.current_location,
            "updated_at": p.updated_at.isoformat() if p.updated_at else None,
        }
        for p in rows
    ]


@app.get("/api/packages")
def my_packages(user: User = Depends(current_user), db: Session = Depends(get_db)):
    rows = db.query(Package).filter(Package.user_id == user.id).order_by(Package.created_at.desc(), Package.id.desc()).all()
    return [package_to_dict(p) for p in rows]


@app.get("/api/packages/with-history")
def my_packages_with_history(user: User = Depends(current_user), db: Session = Depends(get_db)):
    rows = db.query(Package).filter(Package.user_id == user.id).order_by(Package.created_at.desc(), Package.id.desc()).all()
    return [package_to_dict(p, with_history=True) for p in rows]


@app.get("/api/packages/{package_id}/history")
def package_history(package_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    package = db.query(Package).filter(Package.id == package_id).first()
    if not package:
        raise NotFoundError("Package", package_id)
    _ensure_owner(user, package.user_id, "Package", package_id)
    return [history_to_dict(h) for h in package.history]


@app.post("/api/packages/{package_ref}/status")
def package_status_update(
    package_ref: str,
    payload: StatusUpdateIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not payload.status:
        raise ValidationError("Status is required")
    # numeric refs are package ids, anything else a tracking number
    if package_ref.isdigit():
        package = db.query(Package).filter(Package.id == int(package_ref)).first()
        if not package:
            raise NotFoundError("Package", package_ref)
    else:
        package = _find_package(db, package_ref)
    return _apply_status_update(db, package, payload)


# -------------------
# Invoices
# -------------------
@app.get("/api/invoices")
def my_invoices(user: User = Depends(current_user), db: Session = Depends(get_db)):
    rows = db.query(Invoice).filter(Invoice.user_id == user.id).order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return [invoice_to_dict(i) for i in rows]


@app.get("/api/invoices/{invoice_number}")
def invoice_by_number(invoice_number: str, user: User = Depends(current_user), db: Session = Depends(get_db)):
    inv = db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()
    if not inv:
        raise NotFoundError("Invoice", invoice_number)
    _ensure_owner(user, inv.user_id, "Invoice", invoice_number)
    return invoice_to_dict(inv)


# -------------------
# Admin
# -------------------
def _admin_package_rows(db: Session, status: Optional[PackageStatus] = None) -> List[Dict[str, Any]]:
    q = db.query(Package)
    if status is not None:
        q = q.filter(Package.status == status.value)
    rows = q.order_by(Package.created_at.desc(), Package.id.desc()).all()
    out = []
    for p in rows:
        data = package_to_dict(p, with_history=True)
        data["user"] = {"id": p.user.id, "username": p.user.username, "email": p.user.email} if p.user else None
        out.append(data)
    return out


@app.get("/api/admin/packages")
def admin_packages(status: Optional[str] = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _admin_package_rows(db, parse_status(status) if status else None)


@app.get("/api/admin/packages/status/{status}")
def admin_packages_by_status(status: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _admin_package_rows(db, parse_status(status))


@app.put("/api/admin/packages/{package_id}")
def admin_update_package(
    package_id: int,
    payload: StatusUpdateIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    package = db.query(Package).filter(Package.id == package_id).first()
    if not package:
        raise NotFoundError("Package", package_id)
    if not payload.status and not payload.location:
        raise ValidationError("Status or location is required")
    return _apply_status_update(db, package, payload)


@app.get("/api/admin/orders")
def admin_orders(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    rows = db.query(Shipment).order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()
    out = []
    for s in rows:
        data = shipment_to_dict(s)
        data["package"] = package_to_dict(s.package) if s.package else None
        data["user"] = {"id": s.user.id, "username": s.user.username, "email": s.user.email, "phone": s.user.phone} if s.user else None
        out.append(data)
    return out


@app.get("/api/admin/statistics")
def admin_statistics(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    by_status = dict(db.query(Package.status, func.count(Package.id)).group_by(Package.status).all())
    revenue = db.query(func.coalesce(func.sum(Shipment.price), 0.0)).filter(Shipment.payment_status == "paid").scalar()
    return {
        "total_packages": sum(by_status.values()),
        "by_status": {s.value: by_status.get(s.value, 0) for s in PackageStatus},
        "total_shipments": db.query(func.count(Shipment.id)).scalar(),
        "total_users": db.query(func.count(User.id)).scalar(),
        "paid_revenue": round(float(revenue or 0.0), 2),
        "pending_manual_payments": manual_payments.count_pending(db),
    }


@app.get("/api/admin/users")
def admin_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return [user_to_dict(u) for u in db.query(User).order_by(User.id).all()]


@app.put("/api/admin/users/{user_id}")
def admin_update_user(
    user_id: int,
    payload: AdminUserUpdateIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise NotFoundError("User", user_id)

    if payload.role is not None:
        if payload.role not in ("user", "admin"):
            raise ValidationError("Role must be 'user' or 'admin'")
        u.role = payload.role
    if payload.username:
        u.username = payload.username.strip()
    if payload.email:
        u.email = str(payload.email)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Username or email already exists", code="DUPLICATE_USER")
    db.refresh(u)
    logger.info(f"Admin {admin.username} updated user {u.id}")
    return user_to_dict(u)


@app.post("/api/admin/manual-payments/expire")
def admin_expire_manual_payments(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {"expired": manual_payments.expire_overdue(db)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("courier.main:app", host="0.0.0.0", port=settings.port)
