# courier/shipping/status.py
"""
Package status model.

Status flow:
    pending -> in_transit -> out_for_delivery -> delivered
    out_for_delivery -> in_transit (failed delivery attempt)
    in_transit -> delivered (counter pickup)
    Any non-final status can move to cancelled.
"""
from __future__ import annotations

import enum
from typing import Dict, List, Optional

from ..errors import InvalidTransitionError, ValidationError


class PackageStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[PackageStatus, List[PackageStatus]] = {
    PackageStatus.PENDING: [PackageStatus.IN_TRANSIT, PackageStatus.CANCELLED],
    PackageStatus.IN_TRANSIT: [PackageStatus.OUT_FOR_DELIVERY, PackageStatus.DELIVERED, PackageStatus.CANCELLED],
    PackageStatus.OUT_FOR_DELIVERY: [PackageStatus.DELIVERED, PackageStatus.IN_TRANSIT, PackageStatus.CANCELLED],
    PackageStatus.DELIVERED: [],  # Final state
    PackageStatus.CANCELLED: [],  # Final state
}

FINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def parse_status(raw: Optional[str]) -> PackageStatus:
    """Accepts 'in_transit', 'In Transit', 'IN-TRANSIT' and friends."""
    key = (raw or "").strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return PackageStatus(key)
    except ValueError:
        allowed = ", ".join(s.value for s in PackageStatus)
        raise ValidationError(f"Unknown status '{raw}'. Allowed: {allowed}", details={"status": raw})


def validate_transition(current: str, new: PackageStatus) -> None:
    """
    Raises InvalidTransitionError unless ``current -> new`` is in the table.

    Same-status updates are allowed so a location can change without a
    status change.
    """
    cur = parse_status(current)
    if cur == new:
        return
    if new not in ALLOWED_TRANSITIONS[cur]:
        raise InvalidTransitionError(cur.value, new.value)


def can_transition(current: str, new: PackageStatus) -> bool:
    try:
        validate_transition(current, new)
        return True
    except (InvalidTransitionError, ValidationError):
        return False


def display_status(status: str) -> str:
    return (status or "").replace("_", " ").upper()


def describe_status(status: str, location: Optional[str] = None) -> str:
    location_text = f" at {location}" if location else ""
    if status == PackageStatus.PENDING:
        return f"Package is pending and awaiting pickup{location_text}"
    if status == PackageStatus.IN_TRANSIT:
        return f"Package is in transit{location_text}"
    if status == PackageStatus.OUT_FOR_DELIVERY:
        return f"Package is out for delivery{location_text}"
    if status == PackageStatus.DELIVERED:
        return f"Package has been delivered{location_text}"
    if status == PackageStatus.CANCELLED:
        return f"Package delivery has been cancelled{location_text}"
    return f"Package status updated to {status}{location_text}"
