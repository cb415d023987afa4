import unittest
from datetime import timedelta

from fakes import T0, make_session, add_store, add_item, add_sales
from smart_pricing.services.revenue_comparator import PriceRevenueComparator, SalesRecordFeed


class TestRevenueComparator(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_session()
        self.store = add_store(self.db)
        self.item = add_item(self.db, self.store, "v1", 20.0)
        self.comparator = PriceRevenueComparator(SalesRecordFeed(self.db), min_units_per_window=2)

    def tearDown(self):
        self.db.close()

    def test_windows_are_half_open(self):
        # Previous window: [T0-48h, T0-24h), current window: [T0-24h, T0)
        add_sales(self.db, self.item, T0 - timedelta(hours=48), 2, 40.0)
        add_sales(self.db, self.item, T0 - timedelta(hours=24), 3, 66.0)  # boundary belongs to current
        add_sales(self.db, self.item, T0, 10, 999.0)  # "now" is excluded
        add_sales(self.db, self.item, T0 - timedelta(hours=49), 10, 999.0)  # too old

        result = self.comparator.compare(self.item.id, 24, now=T0)

        self.assertEqual(result.previous_period_revenue, 40.0)
        self.assertEqual(result.current_period_revenue, 66.0)
        self.assertEqual(result.previous_period_units, 2)
        self.assertEqual(result.current_period_units, 3)
        self.assertAlmostEqual(result.change_percent, 65.0)
        self.assertTrue(result.has_sufficient_data)

    def test_no_previous_revenue(self):
        add_sales(self.db, self.item, T0 - timedelta(hours=2), 4, 80.0)
        result = self.comparator.compare(self.item.id, 24, now=T0)
        self.assertEqual(result.change_percent, 0.0)
        self.assertFalse(result.has_sufficient_data)

    def test_single_outlier_sale_is_not_enough(self):
        add_sales(self.db, self.item, T0 - timedelta(hours=30), 5, 100.0)
        add_sales(self.db, self.item, T0 - timedelta(hours=3), 1, 500.0)
        result = self.comparator.compare(self.item.id, 24, now=T0)
        self.assertAlmostEqual(result.change_percent, 400.0)
        self.assertFalse(result.has_sufficient_data)

    def test_other_items_are_ignored(self):
        other = add_item(self.db, self.store, "v2", 5.0)
        add_sales(self.db, other, T0 - timedelta(hours=1), 5, 25.0)
        result = self.comparator.compare(self.item.id, 24, now=T0)
        self.assertEqual(result.current_period_revenue, 0.0)
        self.assertEqual(result.current_period_units, 0)

    def test_repeatable(self):
        add_sales(self.db, self.item, T0 - timedelta(hours=30), 2, 50.0)
        add_sales(self.db, self.item, T0 - timedelta(hours=5), 2, 45.0)
        first = self.comparator.compare(self.item.id, 24, now=T0)
        second = self.comparator.compare(self.item.id, 24, now=T0)
        self.assertEqual(first, second)
        self.assertAlmostEqual(first.change_percent, -10.0)


if __name__ == '__main__':
    unittest.main()
