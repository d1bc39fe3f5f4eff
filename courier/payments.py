# courier/payments.py
"""Thin wrapper over the Stripe SDK.

Everything that talks to Stripe goes through these functions so tests can
swap them out with monkeypatch.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe

from .config import settings
from .errors import PaymentError, PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)

# card covers Apple Pay / Google Pay; link is Stripe Link
PAYMENT_METHOD_TYPES = ["card", "link"]


def _client_ready() -> None:
    if not settings.stripe_secret_key:
        raise PaymentProviderError("Stripe is not configured", code="STRIPE_NOT_CONFIGURED")
    stripe.api_key = settings.stripe_secret_key


def to_cents(amount: float) -> int:
    return int(round(float(amount) * 100))


def create_payment_intent(
    amount_cents: int,
    currency: str,
    idempotency_key: str,
    metadata: Optional[Dict[str, str]] = None,
) -> Any:
    _client_ready()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency,
            payment_method_types=PAYMENT_METHOD_TYPES,
            metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
    except stripe.StripeError as e:
        logger.error("Stripe PaymentIntent error: %s", e)
        raise PaymentProviderError("Failed to create payment intent") from e

    logger.info("Payment intent %s created for %s %s", intent.id, amount_cents, currency)
    return intent


def retrieve_payment_intent(payment_intent_id: str) -> Any:
    _client_ready()
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError as e:
        raise PaymentError("Unknown payment intent", code="UNKNOWN_PAYMENT_INTENT") from e
    except stripe.StripeError as e:
        logger.error("Stripe retrieve error for %s: %s", payment_intent_id, e)
        raise PaymentProviderError("Failed to retrieve payment intent") from e


def construct_webhook_event(payload: bytes, signature: Optional[str]) -> Any:
    if not settings.stripe_webhook_secret:
        raise PaymentProviderError("Stripe webhook secret is not configured", code="STRIPE_NOT_CONFIGURED")
    try:
        return stripe.Webhook.construct_event(payload, signature or "", settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise ValidationError("Invalid webhook signature", code="INVALID_SIGNATURE") from e


def _retrieve_account() -> Any:
    _client_ready()
    try:
        return stripe.Account.retrieve()
    except stripe.StripeError as e:
        logger.error("Stripe account status check error: %s", e)
        raise PaymentProviderError("Failed to check account status", details={"reason": str(e)}) from e


# capability id -> payment method the checkout page can offer
CAPABILITY_METHODS = {
    "card_payments": "card",
    "link_payments": "link",
    "klarna_payments": "klarna",
    "us_bank_account_ach_payments": "ach_debit",
    "acss_debit_payments": "acss_debit",
}


def available_payment_methods() -> Dict[str, Any]:
    account = _retrieve_account()
    try:
        capabilities = stripe.Account.list_capabilities(account.id)
    except stripe.StripeError as e:
        logger.error("Stripe capabilities error: %s", e)
        raise PaymentProviderError("Failed to check payment methods", details={"reason": str(e)}) from e

    status = {cap.id: cap.status for cap in capabilities.data}
    methods = {method: status.get(cap) == "active" for cap, method in CAPABILITY_METHODS.items()}
    # wallets ride on card payments
    methods["apple_pay"] = methods["google_pay"] = methods["card"]
    return {
        "accountId": account.id,
        "capabilities": status,
        "availablePaymentMethods": methods,
        "linkEnabled": methods["link"],
    }


def account_status() -> Dict[str, Any]:
    account = _retrieve_account()

    charges = bool(account.charges_enabled)
    payouts = bool(account.payouts_enabled)
    return {
        "accountId": account.id,
        "country": account.country,
        "businessType": account.business_type,
        "chargesEnabled": charges,
        "payoutsEnabled": payouts,
        "detailsSubmitted": bool(account.details_submitted),
        "accountStatus": "FULLY_ACTIVATED" if charges and payouts else "PARTIALLY_ACTIVATED",
    }
