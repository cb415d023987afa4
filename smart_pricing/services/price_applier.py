import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smart_pricing.models.core import PricedItem, PricingConfig, PriceChangeRecord
from smart_pricing.services.catalog import ItemPricing
from smart_pricing.services.errors import CatalogWriteError
from smart_pricing.services.pricing_state_machine import PricingDecision

logger = logging.getLogger(__name__)


class ItemPriceApplier:
    def __init__(self, db: Session, storefront):
        self.db = db
        self.storefront = storefront

    def apply(self, item: ItemPricing, decision: PricingDecision, now: datetime) -> PriceChangeRecord:
        """
        Mirror a decided price to the storefront, then commit the catalog side.

        The storefront push happens first and any failure there propagates
        before the catalog is touched. The price update, log entry and config
        update are committed as one transaction.

        Raises:
            ExternalApiFailure: storefront rejected or timed out
            CatalogWriteError: local commit failed after the storefront accepted
        """
        if decision.is_hold:
            raise ValueError("Hold decisions have nothing to apply")

        # 1. Storefront
        self.storefront.set_price(item.external_id, decision.new_price, item.external_product_id)

        # 2-4. Catalog
        try:
            self.db.query(PricedItem).filter(PricedItem.id == item.item_id).update(
                {PricedItem.current_price: decision.new_price}, synchronize_session="fetch"
            )

            record = PriceChangeRecord(
                item_id=item.item_id,
                store_id=item.store_id,
                old_price=item.current_price,
                new_price=decision.new_price,
                action=decision.log_action,
                reason=decision.reason,
                revenue_previous_period=decision.revenue.previous_period_revenue if decision.revenue else None,
                revenue_current_period=decision.revenue.current_period_revenue if decision.revenue else None,
                revenue_change_percent=round(decision.revenue.change_percent, 2) if decision.revenue else None,
                created_at=now,
            )
            self.db.add(record)

            config = self.db.query(PricingConfig).filter(PricingConfig.id == item.config_id).one()
            for column, value in decision.config_updates.items():
                setattr(config, column, value)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"[APPLY] Storefront accepted {decision.new_price:.2f} for item {item.item_id} "
                f"but catalog commit failed: {e}"
            )
            raise CatalogWriteError(f"Catalog update failed for item {item.item_id}: {e}")

        logger.info(
            f"[APPLY] Item {item.item_id} {decision.action.value}: "
            f"{item.current_price:.2f} -> {decision.new_price:.2f} ({decision.reason})"
        )
        return record
