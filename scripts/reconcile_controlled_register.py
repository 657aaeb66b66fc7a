"""
Report controlled medicines whose register balance disagrees with stock quantity.
Run: python scripts/reconcile_controlled_register.py [--url DATABASE_URL] [--branch BRANCH_ID]
Exits 1 when drift is found so it can gate a cron job or CI check.
"""
import argparse
import logging
import sys
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from dawacare.config import settings
from dawacare.database import make_engine
from dawacare.services.controlled_substance_service import ControlledSubstanceService

logger = logging.getLogger("reconcile_controlled_register")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Reconcile the controlled substance register with stock")
    parser.add_argument("--url", "-u", help="Database URL (default: DATABASE_URL / DB_* settings)")
    parser.add_argument("--branch", "-b", type=UUID, help="Only check this branch")
    args = parser.parse_args()

    engine = make_engine(args.url or settings.database_connection_string)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db = Session()
    try:
        drift = ControlledSubstanceService.find_register_drift(db, branch_id=args.branch)
    finally:
        db.close()

    if not drift:
        logger.info("OK: controlled substance register matches stock")
        return 0
    logger.warning("DRIFT: %d controlled medicine(s) where register != stock", len(drift))
    for row in drift:
        logger.warning(
            "  %s (%s) branch=%s register=%s stock=%s diff=%+d",
            row["medicine_name"], row["medicine_id"], row["branch_id"],
            row["register_balance"], row["inventory_quantity"], row["discrepancy"],
        )
    return 1


if __name__ == "__main__":
    sys.exit(main())
