from __future__ import annotations

import sys
from pathlib import Path

# Run from anywhere: python tools/make_tracking_qr.py [TRK... ...]
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from courier.db import SessionLocal, init_db  # noqa: E402
from courier.models import Package  # noqa: E402
from courier.shipping.labels import tracking_qr_png, tracking_url  # noqa: E402

OUT_DIR = Path(__file__).resolve().parents[1] / "qrcodes"


def tracking_numbers_from_db(status: str | None = None) -> list[str]:
    init_db()
    db = SessionLocal()
    try:
        q = db.query(Package.tracking_number)
        if status:
            q = q.filter(Package.status == status)
        return [tn for (tn,) in q.order_by(Package.id).all()]
    finally:
        db.close()


def main(argv: list[str]) -> None:
    numbers = [a.strip().upper() for a in argv if a.strip()]
    if not numbers:
        # no arguments: label every package still waiting for pickup
        numbers = tracking_numbers_from_db(status="pending")
    if not numbers:
        raise SystemExit("No tracking numbers given and no pending packages in the database")

    OUT_DIR.mkdir(parents=True, exist_ok=True)
    made = 0
    for tn in numbers:
        out_path = OUT_DIR / f"{tn}.png"
        out_path.write_bytes(tracking_qr_png(tn))
        print(f"OK  {tn}  ->  {out_path}  ({tracking_url(tn)})")
        made += 1

    print(f"\nDone. Generated {made} QR codes in: {OUT_DIR}")


if __name__ == "__main__":
    main(sys.argv[1:])
