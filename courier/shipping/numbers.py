# courier/shipping/numbers.py
from __future__ import annotations

import secrets
import string
import time
from typing import Callable, Optional

_BASE36 = string.digits + string.ascii_uppercase


def _millis() -> int:
    return int(time.time() * 1000)


def _random_base36(n: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(n))


def _stamped(prefix: str) -> str:
    return f"{prefix}{str(_millis())[-8:]}{_random_base36(4)}"


def tracking_number() -> str:
    return _stamped("TRK")


def shipment_number() -> str:
    return _stamped("SHP")


def invoice_number(bulk: bool = False) -> str:
    return f"{'BULK-INV' if bulk else 'INV'}-{_millis()}"


def payment_reference() -> str:
    return f"ORDER-{_millis()}-{_random_base36(9)}"


def cart_item_id() -> str:
    return f"item_{_millis()}_{_random_base36(9).lower()}"


def verification_code() -> str:
    return f"{100000 + secrets.randbelow(900000)}"


def unique(generate: Callable[[], str], taken: Callable[[str], bool], attempts: int = 5) -> str:
    """Draw from ``generate`` until ``taken`` says the value is free.

    The unique constraint on the column still has the final word; this only
    keeps collisions from surfacing as IntegrityErrors in the common case.
    """
    last: Optional[str] = None
    for _ in range(attempts):
        last = generate()
        if not taken(last):
            return last
    raise RuntimeError(f"could not generate a unique identifier (last tried {last})")
