# courier/shipping/pricing.py
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

BASE_COST = 15.99
WEIGHT_RATE = 2.5
DISTANCE_DIVISOR = 1000
MAX_WEIGHT = 10000.0

# Generic parcel services used by the estimator
SERVICE_MULTIPLIERS: Dict[str, float] = {"standard": 1.0, "express": 2.5, "overnight": 4.0}
SERVICE_DAYS: Dict[str, int] = {"standard": 5, "express": 2, "overnight": 1}
SERVICE_LABELS: Dict[str, str] = {"standard": "Standard", "express": "Express", "overnight": "Overnight"}

# Contract courier tiers, priced per customer
TARIFF_TIERS: List[Dict[str, Any]] = [
    {"key": "exclusive", "label": "Exclusive (Any time)", "days": 1},
    {"key": "direct", "label": "Direct (Before 3pm)", "days": 1},
    {"key": "rush", "label": "Rush 3-4 Hours (Before 1pm)", "days": 0.5},
    {"key": "sameday", "label": "Same day (Before 12 Noon)", "days": 0.5},
]

TARIFFS: Dict[str, Dict[str, float]] = {
    "APS": {"exclusive": 43.5, "direct": 39.5, "rush": 29.5, "sameday": 20.5},
    "AMD": {"exclusive": 43.5, "direct": 39.5, "rush": 29.5, "sameday": 20.5},
    "CTI": {"exclusive": 43.5, "direct": 39.5, "rush": 29.5, "sameday": 20.5},
    "StenTech": {"exclusive": 43.5, "direct": 39.5, "rush": 29.5, "sameday": 20.5},
    "FedEx depot / UPS": {"exclusive": 43.5, "direct": 39.5, "rush": 29.5, "sameday": 20.5},
    "ECT": {"exclusive": 87.5, "direct": 75.5, "rush": 53.5, "sameday": 27.5},
    "ATF": {"exclusive": 87.5, "direct": 75.5, "rush": 53.5, "sameday": 27.5},
    "Tenstorrent": {"exclusive": 52.5, "direct": 44.5, "rush": 29.5, "sameday": 21.5},
    "MACKIE": {"exclusive": 160.5, "direct": 131.5, "rush": 109.5, "sameday": 89.5},
    "Bldg. A to B": {"exclusive": 160.5, "direct": 131.5, "rush": 109.5, "sameday": 89.5},
}

CUSTOM_CUSTOMER = "Custom Shipment"


def _parse_zip(raw: Any) -> Optional[int]:
    text = str(raw).strip()
    if len(text) > 10:
        return None
    try:
        return int(text)
    except (TypeError, ValueError):
        return None


def check_weight(weight: Any) -> float:
    w = float(weight)
    if not math.isfinite(w):
        raise ValueError("Weight must be a finite number")
    if w <= 0:
        raise ValueError("Weight must be greater than zero")
    if w > MAX_WEIGHT:
        raise ValueError(f"Weight must not exceed {MAX_WEIGHT:g}")
    return w


def estimate_cost(origin_zip: Any, destination_zip: Any, weight: float, service_type: str = "standard") -> float:
    """(base + weight*2.5 + |dest-origin|/1000) * service multiplier, in dollars."""
    oz = _parse_zip(origin_zip)
    dz = _parse_zip(destination_zip)
    if oz is None or dz is None:
        raise ValueError(
            "Origin and destination zip must be numeric; "
            "Canadian postal codes are only priced for tariff customers"
        )
    w = check_weight(weight)

    multiplier = SERVICE_MULTIPLIERS.get(service_type, 1.0)
    cost = (BASE_COST + w * WEIGHT_RATE + abs(dz - oz) / DISTANCE_DIVISOR) * multiplier
    if not math.isfinite(cost):
        raise ValueError("Estimated cost is out of range")
    return round(cost, 2)


def estimate(origin_zip: Any, destination_zip: Any, weight: float, service_type: str = "standard") -> Dict[str, Any]:
    service = service_type if service_type in SERVICE_MULTIPLIERS else "standard"
    return {
        "origin_zip": str(origin_zip),
        "destination_zip": str(destination_zip),
        "weight": float(weight),
        "service_type": service,
        "estimated_cost": estimate_cost(origin_zip, destination_zip, weight, service),
        "estimated_days": SERVICE_DAYS[service],
        "currency": "USD",
    }


def tariff_price(customer: str, service_type: str) -> Optional[float]:
    tariff = TARIFFS.get(customer)
    if not tariff:
        return None
    return tariff.get(service_type)


def service_label(service_type: str) -> str:
    for tier in TARIFF_TIERS:
        if tier["key"] == service_type:
            return tier["label"]
    return SERVICE_LABELS.get(service_type, "Standard")


def is_known_service(service_type: str) -> bool:
    return service_type in SERVICE_MULTIPLIERS or any(t["key"] == service_type for t in TARIFF_TIERS)


def quote_price(
    customer: str,
    service_type: str,
    origin_postal: Any = "",
    destination_postal: Any = "",
    weight: float = 1.0,
) -> float:
    """Server-side price for one shipment.

    Contract customers pay their tariff for the tier; everything else goes
    through the distance/weight estimator.
    """
    price = tariff_price(customer, service_type)
    if price is not None:
        return round(float(price), 2)
    if customer in TARIFFS:
        raise ValueError(f"Unknown service type '{service_type}' for customer {customer}")
    return estimate_cost(origin_postal, destination_postal, weight, service_type)


def tariff_table() -> List[Dict[str, Any]]:
    return [{"customer": name, **prices} for name, prices in TARIFFS.items()]
