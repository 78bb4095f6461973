import argparse
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy import select

from app.config import get_settings
from app.core.logging import setup_logging
from app.database.engine import Database
from app.models.medicine import Medicine


def parse_args():
    parser = argparse.ArgumentParser(description="Seed sample medicines.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL.",
    )
    return parser.parse_args()


def _sample_medicines():
    today = date.today()
    rows = [
        ("AMX-500", "Amoxicillin 500mg", "Sandoz", "4.20", 120, 540),
        ("PCM-500", "Paracetamol 500mg", "GSK", "1.10", 300, 720),
        ("IBU-200", "Ibuprofen 200mg", "Pfizer", "2.35", 80, 400),
        ("MET-850", "Metformin 850mg", "Merck", "3.60", 60, 365),
        ("SAL-100", "Salbutamol Inhaler 100mcg", None, "7.90", 15, 180),
    ]
    for sku, name, manufacturer, price, quantity, shelf_days in rows:
        yield Medicine(
            sku=sku,
            name=name,
            manufacturer=manufacturer,
            unit_price=Decimal(price),
            quantity_on_hand=quantity,
            initial_quantity=quantity,
            expiry_date=today + timedelta(days=shelf_days),
        )


def main():
    setup_logging()
    args = parse_args()
    settings = get_settings()

    database = Database(args.database_url or settings.DATABASE_URL)
    database.create_schema()

    db = database.session()
    try:
        has_medicine = db.execute(select(Medicine.id).limit(1)).first()
        if has_medicine:
            print("Seed skipped: medicines already exist.")
            return

        db.add_all(list(_sample_medicines()))
        db.commit()
        print("Seed data created.")
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    main()
