# courier/shipping/invoice.py
from __future__ import annotations

from datetime import date
from html import escape
from typing import List, Optional

from ..config import settings
from ..models import Package, Shipment, User
from .status import display_status

_STYLE = """
body { font-family: Arial, sans-serif; margin: 0; padding: 15px; background-color: #f5f5f5; }
.box { max-width: 800px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
.header { text-align: center; border-bottom: 2px solid #333; padding-bottom: 15px; margin-bottom: 20px; }
.row { display: flex; justify-content: space-between; margin-bottom: 6px; }
.label { font-weight: bold; color: #555; }
.item { border: 1px solid #ddd; padding: 15px; margin-bottom: 15px; border-radius: 5px; }
.total { border-top: 2px solid #333; padding-top: 15px; font-size: 18px; font-weight: bold; }
.footer { text-align: center; margin-top: 20px; color: #666; font-size: 12px; }
"""


def _row(label: str, value: object) -> str:
    return f'<div class="row"><span class="label">{escape(label)}:</span><span>{escape(str(value))}</span></div>'


def _page(title: str, inner: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{escape(title)}</title><style>{_STYLE}</style></head><body>"
        f'<div class="box"><div class="header"><h2>{escape(settings.company_name)}</h2>'
        f"<div>{escape(title)}</div></div>{inner}"
        f'<div class="footer"><p>Thank you for choosing {escape(settings.company_name)}!</p>'
        f"<p>Track your packages at: {escape(settings.public_base_url)}</p></div>"
        "</div></body></html>"
    )


def _shipment_block(shipment: Shipment, index: Optional[int] = None) -> str:
    status = shipment.package.status if shipment.package else shipment.status
    heading = f"<h4>Item {index}</h4>" if index is not None else "<h3>Shipment Details</h3>"
    return (
        f'<div class="item">{heading}'
        + _row("Shipment Number", shipment.shipment_number)
        + _row("Tracking Number", shipment.tracking_number)
        + _row("Service Type", shipment.service_type_label or shipment.service_type)
        + _row("Recipient Name", shipment.recipient_name)
        + _row("Recipient Address", shipment.recipient_address)
        + _row("Contact Number", shipment.contact_number)
        + _row("Status", display_status(status))
        + _row("Price", f"${shipment.price:.2f}")
        + "</div>"
    )


def render_invoice_html(shipments: List[Shipment], user: User, invoice_number: str) -> str:
    bulk = len(shipments) > 1
    total = round(sum(s.price for s in shipments), 2)
    details = (
        "<h3>Invoice Details</h3>"
        + _row("Invoice Number", invoice_number)
        + _row("Date", date.today().isoformat())
        + (_row("Total Items", len(shipments)) if bulk else _row("Shipment Number", shipments[0].shipment_number))
        + "<h3>Customer Information</h3>"
        + _row("Name", user.username)
        + _row("Email", user.email)
        + _row("Phone", user.phone or "N/A")
    )
    items = "".join(_shipment_block(s, i if bulk else None) for i, s in enumerate(shipments, start=1))
    total_html = f'<div class="total">Total Amount: ${total:.2f}</div>'
    return _page("Bulk Order Invoice" if bulk else "Order Invoice", details + items + total_html)


def render_status_update_html(user: User, package: Package, description: str) -> str:
    inner = (
        f"<p>Dear {escape(user.username)},</p><p>Your package status has been updated:</p>"
        + _row("New Status", display_status(package.status))
        + (_row("Location", package.current_location) if package.current_location else "")
        + _row("Description", description)
        + _row("Tracking Number", package.tracking_number)
    )
    return _page("Package Status Update", inner)
