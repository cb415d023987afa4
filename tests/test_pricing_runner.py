import unittest
from datetime import timedelta
from unittest import mock

from fakes import T0, FakeClock, FakeStorefront, make_session, add_store, add_item, add_sales
from smart_pricing.models.core import PricedItem, PricingConfig, PriceChangeRecord, PricingRun, SweepLock, Product, Store
from smart_pricing.models.enums import PriceChangeAction, PricingState, RunStatus
from smart_pricing.services.errors import ConcurrentSweepRejected
from smart_pricing.services.pricing_runner import KILL_SWITCH_NOTE, LOCK_LOST_NOTE, NO_ITEMS_NOTE, PricingRunOrchestrator
from smart_pricing.services.revenue_comparator import PriceRevenueComparator, SalesRecordFeed
from smart_pricing.services.sweep_lock import SweepLockManager
from smart_pricing.services.toggle_coordinator import ToggleCoordinator
from smart_pricing.services.undo_ledger import UndoLedger


class TestPricingRunOrchestrator(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_session()
        self.store = add_store(self.db)
        self.clock = FakeClock()
        self.storefront = FakeStorefront()

    def tearDown(self):
        self.db.close()

    def _orchestrator(self, storefront=None):
        return PricingRunOrchestrator(
            self.db,
            storefront=storefront or self.storefront,
            comparator=PriceRevenueComparator(SalesRecordFeed(self.db), min_units_per_window=2),
            clock=self.clock,
        )

    def _price(self, item_id):
        return self.db.query(PricedItem.current_price).filter(PricedItem.id == item_id).scalar()

    def test_one_failure_does_not_stop_the_sweep(self):
        items = [add_item(self.db, self.store, f"v{i}", 10.0) for i in range(20)]
        storefront = FakeStorefront(fail_ids={"v7"})

        with self.assertLogs("smart_pricing.services.pricing_runner", level="ERROR") as logs:
            summary = self._orchestrator(storefront).run_sweep(self.store.id)

        self.assertEqual(len(logs.output), 1)
        self.assertIn("[SWEEP] Failed on Item v7", logs.output[0])
        self.assertEqual(summary.processed, 20)
        self.assertEqual(summary.increased, 19)
        self.assertEqual(len(summary.errors), 1)
        self.assertIn("Item v7", summary.errors[0])
        self.assertEqual(summary.status, RunStatus.COMPLETED_WITH_ERRORS)
        self.assertFalse(summary.success)

        self.assertEqual(self._price(items[7].id), 10.0)
        for item in items[:7] + items[8:]:
            self.assertEqual(self._price(item.id), 10.5)

        run = self.db.query(PricingRun).one()
        self.assertEqual(run.id, summary.run_id)
        self.assertEqual(run.items_increased, 19)
        self.assertEqual(len(run.errors), 1)

    def test_kill_switch_returns_note(self):
        add_item(self.db, self.store, "v1", 10.0)
        summary = self._orchestrator().run_sweep(self.store.id, smart_pricing_enabled=False)

        self.assertEqual(summary.status, RunStatus.SKIPPED)
        self.assertEqual(summary.notes, [KILL_SWITCH_NOTE])
        self.assertEqual(summary.processed, 0)
        self.assertTrue(summary.success)
        self.assertEqual(self.storefront.calls, [])
        self.assertEqual(self.db.query(PricingRun).count(), 0)

    def test_kill_switch_read_from_store(self):
        add_item(self.db, self.store, "v1", 10.0)
        self.store.smart_pricing_enabled = False
        self.db.commit()
        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.notes, [KILL_SWITCH_NOTE])

    def test_no_enabled_items(self):
        add_item(self.db, self.store, "v1", 10.0, auto_pricing_enabled=False)
        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.status, RunStatus.SKIPPED)
        self.assertEqual(summary.notes, [NO_ITEMS_NOTE])

    def test_concurrent_sweep_rejected(self):
        item = add_item(self.db, self.store, "v1", 10.0)
        holder = SweepLockManager(self.db, clock=self.clock).try_acquire(self.store.id)
        self.assertIsNotNone(holder)

        with self.assertRaises(ConcurrentSweepRejected):
            self._orchestrator().run_sweep(self.store.id)

        self.assertEqual(self._price(item.id), 10.0)
        self.assertEqual(self.storefront.calls, [])
        self.assertEqual(self.db.query(PriceChangeRecord).count(), 0)
        self.assertEqual(self.db.query(PricingRun).count(), 0)

    def test_stale_lock_is_taken_over(self):
        add_item(self.db, self.store, "v1", 10.0)
        SweepLockManager(self.db, clock=self.clock).try_acquire(self.store.id)
        self.clock.advance(hours=1)

        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.increased, 1)

    def test_lock_released_after_sweep(self):
        add_item(self.db, self.store, "v1", 10.0)
        self._orchestrator().run_sweep(self.store.id)

        lock = self.db.query(SweepLock).filter(SweepLock.store_id == self.store.id).one()
        self.assertIsNone(lock.holder)
        # Next sweep can take it again
        self.clock.advance(hours=1)
        self._orchestrator().run_sweep(self.store.id)

    def test_at_max_cap_never_moves(self):
        item = add_item(
            self.db, self.store, "v1", 20.0, starting_price=10.0,
            current_state=PricingState.AT_MAX_CAP, is_first_increase=False,
        )
        for _ in range(3):
            summary = self._orchestrator().run_sweep(self.store.id)
            self.assertEqual(summary.waiting, 1)
            self.clock.advance(days=2)

        self.assertEqual(self._price(item.id), 20.0)
        config = self.db.query(PricingConfig).filter(PricingConfig.item_id == item.id).one()
        self.assertEqual(config.current_state, PricingState.AT_MAX_CAP)
        self.assertEqual(self.storefront.calls, [])

    def test_missing_starting_price_is_skipped(self):
        item = add_item(self.db, self.store, "v1", 10.0)
        item.starting_price = None
        self.db.commit()
        add_item(self.db, self.store, "v2", 10.0)

        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.skipped, 1)
        self.assertEqual(summary.increased, 1)
        self.assertEqual(summary.errors, [])

    def test_product_level_config_prices_default_item(self):
        product = Product(store_id=self.store.id, external_id="p1", title="Parent")
        self.db.add(product)
        self.db.flush()
        first = PricedItem(store_id=self.store.id, product_id=product.id, external_id="v1",
                           external_product_id="p1", starting_price=10.0, current_price=10.0)
        second = PricedItem(store_id=self.store.id, product_id=product.id, external_id="v2",
                            external_product_id="p1", starting_price=30.0, current_price=30.0)
        self.db.add_all([first, second])
        self.db.flush()
        self.db.add(PricingConfig(product_id=product.id, auto_pricing_enabled=True))
        self.db.commit()

        summary = self._orchestrator().run_sweep(self.store.id)

        self.assertEqual(summary.increased, 1)
        self.assertEqual(self.storefront.calls, [("v1", 10.5)])
        self.assertEqual(self._price(second.id), 30.0)

    def test_missing_credentials_fail_the_sweep(self):
        add_item(self.db, self.store, "v1", 10.0)
        self.store.access_token = None
        self.db.commit()

        orchestrator = PricingRunOrchestrator(self.db, clock=self.clock)
        summary = orchestrator.run_sweep(self.store.id)

        self.assertEqual(summary.status, RunStatus.FAILED)
        self.assertFalse(summary.success)
        self.assertEqual(self.db.query(PricingRun).one().status, RunStatus.FAILED)

    def test_increase_revert_wait_cycle(self):
        item = add_item(self.db, self.store, "v1", 10.0)

        # First pass: unconditional increase
        self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(self._price(item.id), 10.5)

        # Revenue halves over the next period
        add_sales(self.db, item, T0 - timedelta(hours=10), 3, 100.0)
        add_sales(self.db, item, T0 + timedelta(hours=10), 3, 50.0)
        self.clock.advance(hours=24)
        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.reverted, 1)
        self.assertEqual(self._price(item.id), 10.0)

        revert = self.db.query(PriceChangeRecord).filter(
            PriceChangeRecord.action == PriceChangeAction.REVERT
        ).one()
        self.assertEqual(revert.old_price, 10.5)
        self.assertEqual(revert.revenue_change_percent, -50.0)

        # Held until the wait elapses
        self.clock.advance(hours=23, minutes=59)
        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.waiting, 1)
        self.assertEqual(self._price(item.id), 10.0)

        # Eligible again exactly at revert_wait_until
        self.clock.advance(minutes=1)
        summary = self._orchestrator().run_sweep(self.store.id)
        self.assertEqual(summary.increased, 1)
        self.assertEqual(self._price(item.id), 10.5)

    def test_kill_switch_flipped_while_waiting_for_lock(self):
        add_item(self.db, self.store, "v1", 10.0)
        db, store_id = self.db, self.store.id

        class SwitchedOffWhileWaiting(SweepLockManager):
            def acquire(self, store_id, wait_seconds=0.0, poll_interval=1.0):
                holder = super().acquire(store_id, wait_seconds, poll_interval)
                db.query(Store).filter(Store.id == store_id).update({Store.smart_pricing_enabled: False})
                db.commit()
                return holder

        orchestrator = PricingRunOrchestrator(
            self.db, storefront=self.storefront,
            lock_manager=SwitchedOffWhileWaiting(self.db, clock=self.clock), clock=self.clock,
        )
        summary = orchestrator.run_sweep(store_id)

        self.assertEqual(summary.notes, [KILL_SWITCH_NOTE])
        self.assertEqual(summary.processed, 0)
        self.assertEqual(self.storefront.calls, [])
        lock = self.db.query(SweepLock).filter(SweepLock.store_id == store_id).one()
        self.assertIsNone(lock.holder)

    def test_lease_renewed_during_sweep(self):
        items = [add_item(self.db, self.store, f"v{i}", 10.0) for i in range(3)]
        renewed = []

        class RecordingLock(SweepLockManager):
            def renew(self, store_id, holder):
                renewed.append(holder)
                return super().renew(store_id, holder)

        orchestrator = PricingRunOrchestrator(
            self.db, storefront=self.storefront,
            lock_manager=RecordingLock(self.db, clock=self.clock), clock=self.clock,
        )
        summary = orchestrator.run_sweep(self.store.id)

        self.assertEqual(summary.increased, len(items))
        self.assertEqual(len(renewed), len(items))

    def test_lost_lease_stops_the_sweep(self):
        for i in range(3):
            add_item(self.db, self.store, f"v{i}", 10.0)

        class LostLock(SweepLockManager):
            def renew(self, store_id, holder):
                return False

        orchestrator = PricingRunOrchestrator(
            self.db, storefront=self.storefront,
            lock_manager=LostLock(self.db, clock=self.clock), clock=self.clock,
        )
        summary = orchestrator.run_sweep(self.store.id)

        self.assertEqual(summary.processed, 1)
        self.assertEqual(summary.errors, [LOCK_LOST_NOTE])
        self.assertEqual(summary.status, RunStatus.COMPLETED_WITH_ERRORS)
        self.assertEqual(len(self.storefront.calls), 1)

    def test_factory_storefront_is_closed(self):
        add_item(self.db, self.store, "v1", 10.0)
        client = mock.Mock()
        orchestrator = PricingRunOrchestrator(
            self.db, storefront_factory=lambda db, store_id: client, clock=self.clock
        )

        summary = orchestrator.run_sweep(self.store.id)

        self.assertEqual(summary.increased, 1)
        client.set_price.assert_called_once_with("v1", 10.5, None)
        client.close.assert_called_once()

    def test_revert_after_undo_uses_engine_increase(self):
        item = add_item(
            self.db, self.store, "v1", 70.0, starting_price=50.0,
            pre_automation_price=50.0, is_first_increase=False,
        )
        self.db.add(PriceChangeRecord(
            item_id=item.id, store_id=self.store.id, old_price=66.67, new_price=70.0,
            action=PriceChangeAction.INCREASE, reason="Revenue up", created_at=T0 - timedelta(hours=1),
        ))
        self.db.commit()

        ledger = UndoLedger(self.db, clock=self.clock)
        ToggleCoordinator(self.db, storefront=self.storefront, ledger=ledger, clock=self.clock).disable_store(self.store.id)
        self.clock.advance(minutes=1)
        self.assertTrue(ledger.execute_undo(self.store.id, storefront=self.storefront).success)
        self.assertEqual(self._price(item.id), 70.0)

        # Revenue down ~90% period over period
        add_sales(self.db, item, T0 - timedelta(hours=30), 5, 1000.0)
        add_sales(self.db, item, T0 - timedelta(hours=2), 5, 100.0)
        self.clock.advance(minutes=1)
        summary = self._orchestrator().run_sweep(self.store.id)

        self.assertEqual(summary.reverted, 1)
        self.assertEqual(self._price(item.id), 66.67)


class TestSweepLockManager(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_session()
        self.store = add_store(self.db)
        self.clock = FakeClock()
        self.locks = SweepLockManager(self.db, ttl_minutes=30, clock=self.clock)

    def tearDown(self):
        self.db.close()

    def test_renew_extends_lease(self):
        holder = self.locks.try_acquire(self.store.id)
        self.clock.advance(minutes=20)
        self.assertTrue(self.locks.renew(self.store.id, holder))

        # 40 minutes after acquiring, 20 after renewing
        self.clock.advance(minutes=20)
        self.assertIsNone(self.locks.try_acquire(self.store.id))

        self.clock.advance(minutes=11)
        self.assertIsNotNone(self.locks.try_acquire(self.store.id))

    def test_renew_by_previous_holder_fails(self):
        stale = self.locks.try_acquire(self.store.id)
        self.clock.advance(minutes=31)
        current = self.locks.try_acquire(self.store.id)

        self.assertFalse(self.locks.renew(self.store.id, stale))
        lock = self.db.query(SweepLock).filter(SweepLock.store_id == self.store.id).one()
        self.assertEqual(lock.holder, current)


if __name__ == '__main__':
    unittest.main()
