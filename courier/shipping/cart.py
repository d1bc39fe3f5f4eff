# courier/shipping/cart.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError
from ..models import CartItem
from . import numbers
from .fulfillment import normalize_draft

# Columns copied from a cart row into a shipment / checkout snapshot
SHIPMENT_FIELDS = (
    "customer",
    "service_type",
    "service_type_label",
    "recipient_name",
    "recipient_address",
    "contact_number",
    "origin_postal",
    "destination_postal",
    "weight",
    "price",
)


def cart_item_to_dict(item: CartItem) -> Dict[str, Any]:
    data = {f: getattr(item, f) for f in SHIPMENT_FIELDS}
    data.update(
        {
            "id": item.id,
            "item_id": item.item_id,
            "user_id": item.user_id,
            "created_at": item.created_at.isoformat() if item.created_at else None,
        }
    )
    return data


def snapshot(items: List[CartItem]) -> List[Dict[str, Any]]:
    return [{"item_id": it.item_id, **{f: getattr(it, f) for f in SHIPMENT_FIELDS}} for it in items]


def load_snapshot(items_json: str | None) -> List[Dict[str, Any]]:
    try:
        v = json.loads(items_json or "[]")
        return v if isinstance(v, list) else []
    except json.JSONDecodeError:
        return []


def dump_snapshot(items: List[Dict[str, Any]]) -> str:
    return json.dumps(items, ensure_ascii=False)


def cart_total(cart: List[Dict[str, Any]]) -> float:
    total = 0.0
    for x in cart:
        total += float(x.get("price", 0.0) or 0.0)
    return round(total, 2)


def build_summary(cart: List[Dict[str, Any]], currency_symbol: str = "$") -> Tuple[str, float]:
    if not cart:
        return ("Your cart is empty.", 0.0)

    lines: List[str] = []
    for i, line in enumerate(cart, start=1):
        label = str(line.get("service_type_label") or line.get("service_type") or "Shipment")
        who = str(line.get("recipient_name", ""))
        price = float(line.get("price", 0.0) or 0.0)
        lines.append(f"{i}. {line.get('customer', '')} / {label} to {who} = {currency_symbol}{price:.2f}")

    total = cart_total(cart)
    return ("Cart summary:\n" + "\n".join(lines) + f"\n\nTotal: {currency_symbol}{total:.2f}", total)


# -------------------
# Rows
# -------------------
def list_items(db: Session, user_id: int) -> List[CartItem]:
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        .all()
    )


def add_item(db: Session, user_id: int, data: Dict[str, Any]) -> CartItem:
    draft = normalize_draft(data)

    def taken(v: str) -> bool:
        return db.query(CartItem.id).filter(CartItem.item_id == v).first() is not None

    item_id = str(data.get("item_id") or "").strip()
    if item_id and taken(item_id):
        raise ConflictError("Cart item already exists", details={"item_id": item_id})
    if not item_id:
        item_id = numbers.unique(numbers.cart_item_id, taken)
    item = CartItem(item_id=item_id, user_id=user_id, **draft)
    db.add(item)
    db.flush()
    return item


def remove_item(db: Session, user_id: int, item_id: str) -> None:
    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.item_id == item_id).first()
    if not item:
        raise NotFoundError("Cart item", item_id)
    db.delete(item)


def clear(db: Session, user_id: int) -> int:
    return db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)


def remove_snapshot_items(db: Session, user_id: int, items: List[Dict[str, Any]]) -> int:
    """Drop exactly the rows that were paid for; items added since stay in the cart."""
    ids = [it["item_id"] for it in items if it.get("item_id")]
    if not ids:
        return 0
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id, CartItem.item_id.in_(ids))
        .delete(synchronize_session=False)
    )
