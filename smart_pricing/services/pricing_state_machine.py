"""
Hill-climbing price decision logic.

Pure: takes an ItemPricing snapshot, the current time and a callable that
yields a RevenueComparison, and returns a PricingDecision. Nothing here
writes to storage or calls the storefront.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from smart_pricing.models.enums import DecisionAction, PriceChangeAction, PricingState
from smart_pricing.services.catalog import ItemPricing
from smart_pricing.services.revenue_comparator import RevenueComparison
from smart_pricing.utils.time import floor_price, round_price


@dataclass(frozen=True)
class PricingDecision:
    action: DecisionAction
    reason: str
    new_price: Optional[float] = None
    new_state: Optional[PricingState] = None
    # PricingConfig column -> new value
    config_updates: Dict[str, Any] = field(default_factory=dict)
    revenue: Optional[RevenueComparison] = None

    @property
    def is_hold(self) -> bool:
        return self.action == DecisionAction.HOLD

    @property
    def log_action(self) -> Optional[PriceChangeAction]:
        if self.action == DecisionAction.INCREASE:
            return PriceChangeAction.INCREASE
        if self.action == DecisionAction.REVERT:
            return PriceChangeAction.REVERT
        return None


def hold(reason: str) -> PricingDecision:
    return PricingDecision(action=DecisionAction.HOLD, reason=reason)


def price_ceiling(item: ItemPricing) -> float:
    return item.starting_price * (1 + item.max_increase_percentage / 100)


class PricingStateMachine:
    def decide(
        self,
        item: ItemPricing,
        now: datetime,
        fetch_revenue: Optional[Callable[[], RevenueComparison]] = None,
    ) -> PricingDecision:
        # 1. Waiting out a revert
        if item.current_state == PricingState.WAITING_AFTER_REVERT:
            if item.revert_wait_until is not None and now < item.revert_wait_until:
                return hold(f"Waiting after revert until {item.revert_wait_until.isoformat()}")

        # 2. Parked at the ceiling until a human resumes the item
        if item.current_state == PricingState.AT_MAX_CAP:
            return hold("At max cap")

        # 3. Period not yet elapsed
        if item.next_eligible_change_at is not None and now < item.next_eligible_change_at:
            return hold(f"Next change not before {item.next_eligible_change_at.isoformat()}")

        # 4. First automated move never looks at revenue
        if item.is_first_increase:
            return self.increase(item, now, "First increase")

        if fetch_revenue is None:
            raise ValueError("fetch_revenue is required once an item is past its first increase")
        revenue = fetch_revenue()

        # 5. No evidence of harm
        if not revenue.has_sufficient_data:
            return self.increase(item, now, "Insufficient sales data", revenue)

        # 6. Revenue fell further than the threshold
        if revenue.change_percent < -item.revenue_drop_threshold:
            return self.revert(item, now, revenue)

        # 7. Stable or up
        if revenue.change_percent > 0:
            reason = f"Revenue up {revenue.change_percent:.1f}%"
        else:
            reason = f"Revenue stable ({revenue.change_percent:.1f}%)"
        return self.increase(item, now, reason, revenue)

    def increase(
        self,
        item: ItemPricing,
        now: datetime,
        reason: str,
        revenue: Optional[RevenueComparison] = None,
    ) -> PricingDecision:
        new_price = round_price(item.current_price * (1 + item.increment_percentage / 100))
        ceiling = price_ceiling(item)
        new_state = PricingState.INCREASING

        if new_price >= round_price(ceiling):
            new_price = floor_price(ceiling)
            new_state = PricingState.AT_MAX_CAP
            reason = "Hit max cap"

        return PricingDecision(
            action=DecisionAction.INCREASE,
            reason=reason,
            new_price=new_price,
            new_state=new_state,
            config_updates={
                "current_state": new_state,
                "last_price_change_at": now,
                "next_eligible_change_at": now + timedelta(hours=item.period_hours),
                "revert_wait_until": None,
                "is_first_increase": False,
                "last_automation_price": new_price,
            },
            revenue=revenue,
        )

    def revert(self, item: ItemPricing, now: datetime, revenue: RevenueComparison) -> PricingDecision:
        if item.last_increase_old_price is not None:
            target = item.last_increase_old_price
        else:
            target = item.starting_price
        wait_until = now + timedelta(hours=item.wait_hours_after_revert)

        return PricingDecision(
            action=DecisionAction.REVERT,
            reason=f"Revenue dropped {abs(revenue.change_percent):.1f}%",
            new_price=round_price(target),
            new_state=PricingState.WAITING_AFTER_REVERT,
            config_updates={
                "current_state": PricingState.WAITING_AFTER_REVERT,
                "last_price_change_at": now,
                "revert_wait_until": wait_until,
                "next_eligible_change_at": wait_until,
                "last_automation_price": round_price(target),
            },
            revenue=revenue,
        )
