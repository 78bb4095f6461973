import argparse
import logging
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running this script directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.config import get_settings
from app.core.logging import setup_logging
from app.database.engine import Database
from app.services.ledger_service import reconcile_all

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Check that stock history reproduces every medicine's quantity on hand."
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print balanced medicines too.",
    )
    return parser.parse_args()


def run(database: Database, verbose: bool = False) -> int:
    db = database.session()
    mismatches = 0
    checked = 0
    try:
        for report in reconcile_all(db):
            checked += 1
            if report.balanced:
                if verbose:
                    print("OK medicine {}: {} on hand".format(report.medicine_id, report.quantity_on_hand))
                continue
            mismatches += 1
            logger.error(
                "Ledger mismatch on medicine %s: initial %s + history %s != on hand %s",
                report.medicine_id,
                report.initial_quantity,
                report.history_total,
                report.quantity_on_hand,
                extra={"medicine_id": report.medicine_id},
            )
    finally:
        db.close()
    print("Checked {} medicines, {} mismatched.".format(checked, mismatches))
    return mismatches


def main():
    setup_logging()
    args = parse_args()
    database = Database(args.database_url or get_settings().DATABASE_URL)
    try:
        mismatches = run(database, verbose=args.verbose)
    finally:
        database.dispose()
    sys.exit(1 if mismatches else 0)


if __name__ == "__main__":
    main()
