# courier/errors.py
"""Custom exceptions for the courier API.

Every error carries an HTTP status, a machine-readable ``code`` clients can
branch on, and optional ``details``. ``courier.main`` renders them as
``{"error": message, "code": code, "details": details}``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class CourierError(Exception):
    """Base exception for all courier errors."""

    status_code = 500
    default_code = "SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CourierError):
    """Raised when request data fails a business rule."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(CourierError):
    """Raised on bad credentials."""

    status_code = 401
    default_code = "INVALID_CREDENTIALS"


class EmailNotVerifiedError(CourierError):
    """Raised when an unverified account tries to log in."""

    status_code = 403
    default_code = "EMAIL_NOT_VERIFIED"

    def __init__(self):
        super().__init__("Please verify your email before logging in.")


class PermissionDeniedError(CourierError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(CourierError):
    """Raised when a looked-up record doesn't exist."""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any = None):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found", details={"key": key} if key is not None else None)


class ConflictError(CourierError):
    status_code = 409
    default_code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """Raised when a package status change is not in the transition table."""

    default_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, attempted_status: str, entity_type: str = "package"):
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            f"Invalid transition for {entity_type}: cannot move from {current_status} to {attempted_status}",
            details={
                "current_status": current_status,
                "attempted_status": attempted_status,
                "entity_type": entity_type,
            },
        )


class PaymentError(CourierError):
    """Raised when a payment cannot be used to fulfil an order."""

    status_code = 402
    default_code = "PAYMENT_ERROR"


class PaymentProviderError(CourierError):
    """Raised when Stripe rejects or fails a request."""

    status_code = 502
    default_code = "PAYMENT_PROVIDER_ERROR"
