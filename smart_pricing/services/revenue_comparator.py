from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.models.core import SalesRecord
from smart_pricing.utils.time import utcnow


@dataclass(frozen=True)
class RevenueComparison:
    current_period_revenue: float
    previous_period_revenue: float
    current_period_units: int
    previous_period_units: int
    change_percent: float
    has_sufficient_data: bool


class SalesRecordFeed:
    """Sales feed backed by the sales_records table."""

    def __init__(self, db: Session):
        self.db = db

    def totals(self, item_id: int, start: datetime, end: datetime) -> Tuple[float, int]:
        """Revenue and units sold for an item over [start, end)."""
        revenue, units = self.db.query(
            func.coalesce(func.sum(SalesRecord.revenue), 0.0),
            func.coalesce(func.sum(SalesRecord.units), 0)
        ).filter(
            SalesRecord.item_id == item_id,
            SalesRecord.sold_at >= start,
            SalesRecord.sold_at < end
        ).one()
        return float(revenue or 0.0), int(units or 0)


class PriceRevenueComparator:
    def __init__(self, feed, min_units_per_window: Optional[int] = None):
        self.feed = feed
        self.min_units_per_window = (
            min_units_per_window if min_units_per_window is not None else settings.MIN_UNITS_PER_WINDOW
        )

    def compare(self, item_id: int, period_hours: float, now: Optional[datetime] = None) -> RevenueComparison:
        """
        Compare revenue of the last period against the period before it.

        Data is sufficient only when both windows have revenue and at least
        min_units_per_window units, so a single outlier sale does not drive a
        revert.
        """
        now = now or utcnow()
        current_start = now - timedelta(hours=period_hours)
        previous_start = current_start - timedelta(hours=period_hours)

        current_revenue, current_units = self.feed.totals(item_id, current_start, now)
        previous_revenue, previous_units = self.feed.totals(item_id, previous_start, current_start)

        has_sufficient_data = (
            current_revenue > 0 and previous_revenue > 0
            and current_units >= self.min_units_per_window
            and previous_units >= self.min_units_per_window
        )
        if previous_revenue > 0:
            change_percent = (current_revenue - previous_revenue) / previous_revenue * 100
        else:
            change_percent = 0.0

        return RevenueComparison(
            current_period_revenue=round(current_revenue, 2),
            previous_period_revenue=round(previous_revenue, 2),
            current_period_units=current_units,
            previous_period_units=previous_units,
            change_percent=change_percent,
            has_sufficient_data=has_sufficient_data,
        )
