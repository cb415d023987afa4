import unittest
from datetime import datetime, timedelta

from smart_pricing.models.enums import DecisionAction, PricingState
from smart_pricing.services.catalog import ItemPricing
from smart_pricing.services.pricing_state_machine import PricingStateMachine, price_ceiling
from smart_pricing.services.revenue_comparator import RevenueComparison

NOW = datetime(2026, 3, 1, 12, 0, 0)


def make_item(**overrides):
    fields = dict(
        item_id=1, store_id=1, config_id=1,
        external_id="v1", external_product_id=None, title="Widget",
        starting_price=10.0, current_price=10.0,
        auto_pricing_enabled=True, current_state=PricingState.INCREASING,
        increment_percentage=5.0, period_hours=24, revenue_drop_threshold=1.0,
        wait_hours_after_revert=24, max_increase_percentage=100.0,
        last_price_change_at=None, next_eligible_change_at=None, revert_wait_until=None,
        pre_automation_price=10.0, last_automation_price=None, is_first_increase=False,
        last_increase_old_price=None,
    )
    fields.update(overrides)
    return ItemPricing(**fields)


def revenue(change_percent, sufficient=True):
    previous = 100.0
    return RevenueComparison(
        current_period_revenue=previous * (1 + change_percent / 100),
        previous_period_revenue=previous,
        current_period_units=5,
        previous_period_units=5,
        change_percent=change_percent,
        has_sufficient_data=sufficient,
    )


class TestPricingStateMachine(unittest.TestCase):
    def setUp(self):
        self.machine = PricingStateMachine()

    def test_first_increase_ignores_revenue(self):
        """A terrible revenue drop must not block the first automated increase"""
        item = make_item(is_first_increase=True)
        calls = []

        def fetch():
            calls.append(1)
            return revenue(-90)

        decision = self.machine.decide(item, NOW, fetch)

        self.assertEqual(decision.action, DecisionAction.INCREASE)
        self.assertEqual(decision.reason, "First increase")
        self.assertEqual(decision.new_price, 10.5)
        self.assertFalse(decision.config_updates["is_first_increase"])
        self.assertEqual(calls, [])

    def test_at_max_cap_holds_unconditionally(self):
        item = make_item(current_state=PricingState.AT_MAX_CAP, current_price=20.0, is_first_increase=True)
        decision = self.machine.decide(item, NOW + timedelta(days=30), lambda: revenue(50))
        self.assertTrue(decision.is_hold)
        self.assertEqual(decision.reason, "At max cap")

    def test_hold_until_next_eligible(self):
        item = make_item(next_eligible_change_at=NOW + timedelta(hours=1))
        decision = self.machine.decide(item, NOW, lambda: revenue(10))
        self.assertTrue(decision.is_hold)
        self.assertTrue(decision.reason.startswith("Next change not before"))

    def test_insufficient_data_increases(self):
        item = make_item(current_price=12.0)
        decision = self.machine.decide(item, NOW, lambda: revenue(-50, sufficient=False))
        self.assertEqual(decision.action, DecisionAction.INCREASE)
        self.assertEqual(decision.reason, "Insufficient sales data")
        self.assertEqual(decision.new_price, 12.6)

    def test_stable_and_rising_revenue_increase(self):
        item = make_item()
        up = self.machine.decide(item, NOW, lambda: revenue(12.5))
        self.assertEqual(up.action, DecisionAction.INCREASE)
        self.assertEqual(up.reason, "Revenue up 12.5%")

        # Drop within the threshold still counts as stable
        stable = self.machine.decide(item, NOW, lambda: revenue(-0.5))
        self.assertEqual(stable.action, DecisionAction.INCREASE)
        self.assertEqual(stable.reason, "Revenue stable (-0.5%)")

    def test_increase_sets_timers(self):
        decision = self.machine.decide(make_item(), NOW, lambda: revenue(0))
        updates = decision.config_updates
        self.assertEqual(updates["current_state"], PricingState.INCREASING)
        self.assertEqual(updates["last_price_change_at"], NOW)
        self.assertEqual(updates["next_eligible_change_at"], NOW + timedelta(hours=24))
        self.assertIsNone(updates["revert_wait_until"])
        self.assertEqual(updates["last_automation_price"], decision.new_price)

    def test_increase_clamps_at_ceiling(self):
        """19.5 * 1.05 = 20.475 exceeds the 100% ceiling of 20.00"""
        item = make_item(current_price=19.5)
        decision = self.machine.decide(item, NOW, lambda: revenue(5))

        self.assertEqual(decision.new_price, 20.0)
        self.assertEqual(decision.new_state, PricingState.AT_MAX_CAP)
        self.assertEqual(decision.reason, "Hit max cap")
        self.assertLessEqual(decision.new_price, price_ceiling(item))

    def test_reaching_ceiling_exactly_caps(self):
        item = make_item(starting_price=100.0, current_price=100.0, increment_percentage=10.0, max_increase_percentage=10.0)
        decision = self.machine.decide(item, NOW, lambda: revenue(5))
        self.assertEqual(decision.new_price, 110.0)
        self.assertEqual(decision.new_state, PricingState.AT_MAX_CAP)

    def test_ceiling_never_exceeded_over_many_increases(self):
        item = make_item(starting_price=9.99, current_price=9.99, increment_percentage=7.0, max_increase_percentage=33.0)
        ceiling = price_ceiling(item)
        for _ in range(20):
            decision = self.machine.decide(item, NOW, lambda: revenue(1))
            self.assertLessEqual(decision.new_price, ceiling)
            item = make_item(
                starting_price=9.99, current_price=decision.new_price,
                increment_percentage=7.0, max_increase_percentage=33.0,
                current_state=decision.new_state,
            )
            if decision.new_state == PricingState.AT_MAX_CAP:
                break
        self.assertEqual(item.current_state, PricingState.AT_MAX_CAP)

    def test_revert_to_last_increase_old_price(self):
        item = make_item(current_price=11.03, last_increase_old_price=10.5)
        decision = self.machine.decide(item, NOW, lambda: revenue(-20))

        self.assertEqual(decision.action, DecisionAction.REVERT)
        self.assertEqual(decision.new_price, 10.5)
        self.assertEqual(decision.reason, "Revenue dropped 20.0%")
        self.assertEqual(decision.new_state, PricingState.WAITING_AFTER_REVERT)
        wait_until = NOW + timedelta(hours=24)
        self.assertEqual(decision.config_updates["revert_wait_until"], wait_until)
        self.assertEqual(decision.config_updates["next_eligible_change_at"], wait_until)

    def test_revert_falls_back_to_starting_price(self):
        item = make_item(current_price=11.0, last_increase_old_price=None)
        decision = self.machine.decide(item, NOW, lambda: revenue(-5))
        self.assertEqual(decision.new_price, 10.0)

    def test_waiting_after_revert_boundary(self):
        wait_until = NOW + timedelta(hours=24)
        item = make_item(
            current_state=PricingState.WAITING_AFTER_REVERT,
            revert_wait_until=wait_until,
            next_eligible_change_at=wait_until,
        )
        before = self.machine.decide(item, wait_until - timedelta(seconds=1), lambda: revenue(5))
        self.assertTrue(before.is_hold)
        self.assertTrue(before.reason.startswith("Waiting after revert"))

        at = self.machine.decide(item, wait_until, lambda: revenue(5))
        self.assertEqual(at.action, DecisionAction.INCREASE)
        self.assertEqual(at.new_state, PricingState.INCREASING)

    def test_missing_revenue_source_raises(self):
        with self.assertRaises(ValueError):
            self.machine.decide(make_item(), NOW)


if __name__ == '__main__':
    unittest.main()
