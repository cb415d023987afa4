"""
Pricing sweep orchestration.

One sweep walks every smart-pricing-enabled item of a store, asks the state
machine what to do and applies non-hold decisions. Items are processed
sequentially so storefront traffic stays within the store's rate limit, and
a failure on one item is recorded and never stops the others.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.models.core import PricingRun, Store
from smart_pricing.models.enums import DecisionAction, RunStatus
from smart_pricing.services.catalog import build_item_pricing, load_store_pairs
from smart_pricing.services.credentials import CredentialsError
from smart_pricing.services.errors import ConfigurationMissing, StoreNotFound
from smart_pricing.services.price_applier import ItemPriceApplier
from smart_pricing.services.pricing_state_machine import PricingStateMachine
from smart_pricing.services.revenue_comparator import PriceRevenueComparator, SalesRecordFeed
from smart_pricing.services.storefront import build_storefront_client
from smart_pricing.services.sweep_lock import SweepLockManager
from smart_pricing.utils.time import utcnow

logger = logging.getLogger(__name__)

KILL_SWITCH_NOTE = "Global smart pricing is disabled"
NO_ITEMS_NOTE = "No items with smart pricing enabled"
LOCK_LOST_NOTE = "Sweep lock was taken over, sweep stopped early"


@dataclass
class SweepSummary:
    store_id: int
    status: RunStatus = RunStatus.COMPLETED
    processed: int = 0
    increased: int = 0
    reverted: int = 0
    waiting: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    duration_ms: int = 0
    run_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return not self.errors and self.status != RunStatus.FAILED


class PricingRunOrchestrator:
    def __init__(
        self,
        db: Session,
        storefront=None,
        storefront_factory: Callable = build_storefront_client,
        comparator: Optional[PriceRevenueComparator] = None,
        state_machine: Optional[PricingStateMachine] = None,
        lock_manager: Optional[SweepLockManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.storefront = storefront
        self.storefront_factory = storefront_factory
        self.comparator = comparator or PriceRevenueComparator(SalesRecordFeed(db))
        self.state_machine = state_machine or PricingStateMachine()
        self.lock_manager = lock_manager or SweepLockManager(db, clock=clock)
        self.clock = clock

    def read_kill_switch(self, store_id: int) -> bool:
        store = self.db.query(Store).filter(Store.id == store_id).first()
        if not store:
            raise StoreNotFound(f"Store {store_id} not found")
        return bool(store.smart_pricing_enabled)

    def run_sweep(
        self,
        store_id: int,
        smart_pricing_enabled: Optional[bool] = None,
        wait_for_lock: bool = False,
    ) -> SweepSummary:
        """
        Run one pricing sweep for a store.

        smart_pricing_enabled is the store kill switch; when omitted it is
        read from the store row, and read again once the store lock is held
        so a switch flipped while waiting for the lock is honoured.

        Raises:
            StoreNotFound: unknown store
            ConcurrentSweepRejected: another sweep holds the store lock
        """
        started = time.monotonic()
        summary = SweepSummary(store_id=store_id)
        read_from_store = smart_pricing_enabled is None

        # 1. Kill switch
        if read_from_store:
            smart_pricing_enabled = self.read_kill_switch(store_id)
        if not smart_pricing_enabled:
            return self._kill_switch_off(summary)

        wait_seconds = settings.SWEEP_LOCK_WAIT_SECONDS if wait_for_lock else 0.0
        holder = self.lock_manager.acquire(store_id, wait_seconds=wait_seconds)
        started_at = self.clock()
        storefront = self.storefront
        built_storefront = False
        try:
            if read_from_store and not self.read_kill_switch(store_id):
                return self._kill_switch_off(summary)

            # 2. Eligible items
            entries = load_store_pairs(self.db, store_id, enabled=True)
            if not entries:
                logger.info(f"[SWEEP] Store {store_id}: {NO_ITEMS_NOTE}")
                summary.status = RunStatus.SKIPPED
                summary.notes.append(NO_ITEMS_NOTE)
                return summary

            logger.info(f"[SWEEP] Store {store_id}: processing {len(entries)} items")

            if storefront is None:
                try:
                    storefront = self.storefront_factory(self.db, store_id)
                    built_storefront = True
                except (CredentialsError, StoreNotFound) as e:
                    logger.error(f"[SWEEP] Store {store_id}: cannot reach storefront: {e}")
                    summary.status = RunStatus.FAILED
                    summary.errors.append(f"Storefront unavailable: {e}")
                    return self._finish(summary, started, started_at)

            applier = ItemPriceApplier(self.db, storefront)

            # 3. Per item
            for label, item, config, setup_error in entries:
                summary.processed += 1
                if setup_error is not None:
                    logger.warning(f"[SWEEP] Skipping {label}: {setup_error}")
                    summary.skipped += 1
                else:
                    self._process_item(label, item, config, applier, summary)
                if not self.lock_manager.renew(store_id, holder):
                    summary.errors.append(LOCK_LOST_NOTE)
                    break

            summary.status = RunStatus.COMPLETED_WITH_ERRORS if summary.errors else RunStatus.COMPLETED

            # 4. Summary row
            return self._finish(summary, started, started_at)
        finally:
            if built_storefront:
                storefront.close()
            self.lock_manager.release(store_id, holder)

    def _kill_switch_off(self, summary: SweepSummary) -> SweepSummary:
        logger.info(f"[SWEEP] Store {summary.store_id}: {KILL_SWITCH_NOTE}, nothing to do")
        summary.status = RunStatus.SKIPPED
        summary.notes.append(KILL_SWITCH_NOTE)
        return summary

    def _process_item(self, label, item, config, applier: ItemPriceApplier, summary: SweepSummary) -> None:
        try:
            snapshot = build_item_pricing(self.db, item, config)
        except ConfigurationMissing as e:
            logger.warning(f"[SWEEP] Skipping {label}: {e}")
            summary.skipped += 1
            return

        now = self.clock()
        try:
            decision = self.state_machine.decide(
                snapshot,
                now,
                lambda: self.comparator.compare(snapshot.item_id, snapshot.period_hours, now),
            )
            if decision.is_hold:
                logger.debug(f"[SWEEP] Holding {label}: {decision.reason}")
                summary.waiting += 1
                return

            applier.apply(snapshot, decision, now)
            if decision.action == DecisionAction.INCREASE:
                summary.increased += 1
            else:
                summary.reverted += 1
        except Exception as e:
            self.db.rollback()
            logger.error(f"[SWEEP] Failed on {label}: {e}")
            summary.errors.append(f"{label}: {e}")

    def _finish(self, summary: SweepSummary, started: float, started_at: datetime) -> SweepSummary:
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        run = PricingRun(
            store_id=summary.store_id,
            status=summary.status,
            items_processed=summary.processed,
            items_increased=summary.increased,
            items_reverted=summary.reverted,
            items_waiting=summary.waiting,
            items_skipped=summary.skipped,
            errors=summary.errors or None,
            notes=summary.notes or None,
            started_at=started_at,
            finished_at=self.clock(),
            duration_ms=summary.duration_ms,
        )
        self.db.add(run)
        self.db.commit()
        summary.run_id = run.id

        logger.info(
            f"[SWEEP] Store {summary.store_id} done in {summary.duration_ms}ms: "
            f"processed={summary.processed} increased={summary.increased} reverted={summary.reverted} "
            f"waiting={summary.waiting} skipped={summary.skipped} errors={len(summary.errors)}"
        )
        return summary
