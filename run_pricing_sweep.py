"""
Cron entrypoint: run one pricing sweep per store.

    python run_pricing_sweep.py                # every store
    python run_pricing_sweep.py --store-id 3   # one store
"""
import sys
import argparse
import logging

from smart_pricing.config import settings
from smart_pricing.database import SessionLocal, engine, Base
import smart_pricing.models  # noqa: F401  registers tables
from smart_pricing.models.core import Store
from smart_pricing.services.errors import ConcurrentSweepRejected, StoreNotFound
from smart_pricing.services.pricing_runner import PricingRunOrchestrator

logger = logging.getLogger("run_pricing_sweep")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run smart pricing sweeps.")
    parser.add_argument("--store-id", type=int, help="Only sweep this store")
    parser.add_argument("--wait", action="store_true", help="Wait for a running sweep instead of skipping the store")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    failures = 0
    try:
        if args.store_id is not None:
            store_ids = [args.store_id]
        else:
            store_ids = [row[0] for row in db.query(Store.id).order_by(Store.id).all()]

        for store_id in store_ids:
            try:
                summary = PricingRunOrchestrator(db).run_sweep(store_id, wait_for_lock=args.wait)
            except StoreNotFound:
                logger.error(f"[SWEEP] Store {store_id} not found")
                failures += 1
                continue
            except ConcurrentSweepRejected as e:
                logger.warning(f"[SWEEP] {e}")
                continue

            print(
                f"Store {store_id}: {summary.status.value} "
                f"(processed={summary.processed}, increased={summary.increased}, "
                f"reverted={summary.reverted}, waiting={summary.waiting}, "
                f"skipped={summary.skipped}, errors={len(summary.errors)})"
            )
            if not summary.success:
                failures += 1
    finally:
        db.close()

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
