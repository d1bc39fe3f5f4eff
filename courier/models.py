# courier/models.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    # naive UTC; sqlite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    verification_code = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    state_province = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    role = Column(String, default="user", nullable=False)  # user | admin
    created_at = Column(DateTime, default=utcnow)


class Shipment(Base):
    __tablename__ = "shipments"
    id = Column(Integer, primary_key=True)
    shipment_number = Column(String, unique=True, index=True, nullable=False)
    tracking_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    checkout_id = Column(Integer, ForeignKey("checkouts.id"), nullable=True, index=True)
    customer = Column(String, nullable=False)
    service_type = Column(String, nullable=False)
    service_type_label = Column(String, default="")
    recipient_name = Column(String, nullable=False)
    recipient_address = Column(String, nullable=False)
    contact_number = Column(String, nullable=False)
    origin_postal = Column(String, default="")
    destination_postal = Column(String, default="")
    weight = Column(Float, default=1.0)
    price = Column(Float, nullable=False)
    status = Column(String, default="pending")
    payment_status = Column(String, default="unpaid")  # unpaid | paid
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User")
    package = relationship("Package", back_populates="shipment", uselist=False)


class Package(Base):
    __tablename__ = "packages"
    id = Column(Integer, primary_key=True)
    tracking_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), unique=True, nullable=False)
    status = Column(String, default="pending", index=True)
    current_location = Column(String, default="")
    recipient_name = Column(String, default="")
    weight = Column(Float, default=1.0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    user = relationship("User")
    shipment = relationship("Shipment", back_populates="package")
    history = relationship(
        "TrackingHistoryEntry",
        back_populates="package",
        order_by=lambda: [TrackingHistoryEntry.timestamp.desc(), TrackingHistoryEntry.id.desc()],
    )


class TrackingHistoryEntry(Base):
    __tablename__ = "package_tracking_history"
    id = Column(Integer, primary_key=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    location = Column(String, default="")
    description = Column(Text, default="")
    timestamp = Column(DateTime, default=utcnow)

    package = relationship("Package", back_populates="history")


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True)
    item_id = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer = Column(String, nullable=False)
    service_type = Column(String, nullable=False)
    service_type_label = Column(String, default="")
    recipient_name = Column(String, nullable=False)
    recipient_address = Column(String, nullable=False)
    contact_number = Column(String, nullable=False)
    origin_postal = Column(String, default="")
    destination_postal = Column(String, default="")
    weight = Column(Float, default=1.0)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class ShippingEstimate(Base):
    __tablename__ = "shipping_estimates"
    id = Column(Integer, primary_key=True)
    origin_zip = Column(String, nullable=False)
    destination_zip = Column(String, nullable=False)
    weight = Column(Float, nullable=False)
    service_type = Column(String, nullable=False)
    estimated_cost = Column(Float, nullable=False)
    estimated_days = Column(Integer, nullable=False)
    currency = Column(String, default="USD")
    created_at = Column(DateTime, default=utcnow)


class ManualPayment(Base):
    __tablename__ = "manual_payments"
    id = Column(Integer, primary_key=True)
    reference_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, default="cad")
    payment_method = Column(String, nullable=False)  # interac_etransfer | bank_transfer
    status = Column(String, default="pending", index=True)  # pending | verified | expired
    order_details = Column(Text, default="{}")
    from_cart = Column(Boolean, default=False)
    single_shipment_data = Column(Text, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    verified_at = Column(DateTime, nullable=True)


class Checkout(Base):
    __tablename__ = "checkouts"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    idempotency_key = Column(String, unique=True, nullable=False)
    payment_intent_id = Column(String, unique=True, index=True, nullable=True)
    amount = Column(Float, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String, default="cad")
    from_cart = Column(Boolean, default=False)
    items_json = Column(Text, default="[]")  # snapshot of what the intent pays for
    status = Column(String, default="awaiting_payment")  # awaiting_payment | fulfilled
    created_at = Column(DateTime, default=utcnow)
    fulfilled_at = Column(DateTime, nullable=True)

    shipments = relationship("Shipment", order_by="Shipment.id")


class Invoice(Base):
    __tablename__ = "invoices"
    id = Column(Integer, primary_key=True)
    invoice_number = Column(String, unique=True, index=True, nullable=False)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, default="USD")
    status = Column(String, default="paid")
    email_sent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    shipment = relationship("Shipment")
