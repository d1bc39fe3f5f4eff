# courier/shipping/labels.py
from __future__ import annotations

import io
from urllib.parse import quote

import qrcode

from ..config import settings


def tracking_url(tracking_number: str) -> str:
    return f"{settings.public_base_url}/track/{quote(tracking_number, safe='')}"


def tracking_qr_png(tracking_number: str) -> bytes:
    """PNG QR code pointing at the public tracking page, for parcel labels."""
    img = qrcode.make(tracking_url(tracking_number))
    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue()
