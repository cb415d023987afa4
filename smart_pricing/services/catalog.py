"""
Catalog data access for the pricing engine.

A pricing config can be attached to a priced item directly (item_id) or to
its parent product (product_id), in which case it prices the product's
default (first) item. Everything here normalises both shapes into one
ItemPricing record so business logic never sees the difference.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from smart_pricing.models.core import PricedItem, PricingConfig, PriceChangeRecord, Product
from smart_pricing.models.enums import PriceChangeAction, PricingState
from smart_pricing.services.errors import ConfigurationMissing, ItemNotFound

logger = logging.getLogger(__name__)

UNDO_REASON_PREFIX = "Undo: "


@dataclass(frozen=True)
class ItemPricing:
    """Immutable view of one item and its pricing configuration."""
    item_id: int
    store_id: int
    config_id: int
    external_id: str
    external_product_id: Optional[str]
    title: Optional[str]
    starting_price: float
    current_price: float

    auto_pricing_enabled: bool
    current_state: PricingState
    increment_percentage: float
    period_hours: float
    revenue_drop_threshold: float
    wait_hours_after_revert: float
    max_increase_percentage: float

    last_price_change_at: Optional[datetime]
    next_eligible_change_at: Optional[datetime]
    revert_wait_until: Optional[datetime]
    pre_automation_price: Optional[float]
    last_automation_price: Optional[float]
    is_first_increase: bool

    # old_price of the most recent "increase" log entry, if any
    last_increase_old_price: Optional[float] = None

    @property
    def label(self) -> str:
        return self.title or f"item {self.item_id}"


def default_item(product: Product) -> Optional[PricedItem]:
    return product.items[0] if product.items else None


def item_for_config(config: PricingConfig) -> PricedItem:
    """
    Raises:
        ConfigurationMissing: a product-level config whose product has no items
    """
    if config.item_id is not None:
        return config.item
    item = default_item(config.product)
    if item is None:
        raise ConfigurationMissing(f"Pricing config {config.id} is attached to product {config.product_id} which has no priced items")
    return item


def resolve_config(item: PricedItem) -> Optional[PricingConfig]:
    """Item-level config first, then the parent product's if this is its default item."""
    if item.pricing_config is not None:
        return item.pricing_config
    product = item.product
    if product is not None and product.pricing_config is not None and default_item(product) is item:
        return product.pricing_config
    return None


def get_item(db: Session, item_id: int) -> PricedItem:
    item = db.query(PricedItem).filter(PricedItem.id == item_id).first()
    if not item:
        raise ItemNotFound(f"Item {item_id} not found")
    return item


def last_increase_old_price(db: Session, item_id: int) -> Optional[float]:
    """Old price of the latest engine or toggle increase. Undo restores are not increases."""
    row = db.query(PriceChangeRecord.old_price).filter(
        PriceChangeRecord.item_id == item_id,
        PriceChangeRecord.action == PriceChangeAction.INCREASE,
        or_(
            PriceChangeRecord.reason.is_(None),
            ~PriceChangeRecord.reason.startswith(UNDO_REASON_PREFIX)
        )
    ).order_by(desc(PriceChangeRecord.created_at), desc(PriceChangeRecord.id)).first()
    return row[0] if row else None


def build_item_pricing(db: Session, item: PricedItem, config: PricingConfig) -> ItemPricing:
    """
    Raises:
        ConfigurationMissing: the item has no usable baseline price
    """
    if item.starting_price is None or item.starting_price <= 0:
        raise ConfigurationMissing(f"Item {item.id} has no starting price")

    return ItemPricing(
        item_id=item.id,
        store_id=item.store_id,
        config_id=config.id,
        external_id=item.external_id,
        external_product_id=item.external_product_id,
        title=item.title,
        starting_price=item.starting_price,
        current_price=item.current_price,
        auto_pricing_enabled=config.auto_pricing_enabled,
        current_state=config.current_state or PricingState.INCREASING,
        increment_percentage=config.increment_percentage,
        period_hours=config.period_hours,
        revenue_drop_threshold=config.revenue_drop_threshold,
        wait_hours_after_revert=config.wait_hours_after_revert,
        max_increase_percentage=config.max_increase_percentage,
        last_price_change_at=config.last_price_change_at,
        next_eligible_change_at=config.next_eligible_change_at,
        revert_wait_until=config.revert_wait_until,
        pre_automation_price=config.pre_automation_price,
        last_automation_price=config.last_automation_price,
        is_first_increase=bool(config.is_first_increase),
        last_increase_old_price=last_increase_old_price(db, item.id),
    )


def configs_for_store(db: Session, store_id: int, enabled: Optional[bool] = None) -> List[PricingConfig]:
    """All configs belonging to a store through either attachment shape."""
    query = db.query(PricingConfig).outerjoin(
        PricedItem, PricingConfig.item_id == PricedItem.id
    ).outerjoin(
        Product, PricingConfig.product_id == Product.id
    ).filter(
        or_(PricedItem.store_id == store_id, Product.store_id == store_id)
    )
    if enabled is not None:
        query = query.filter(PricingConfig.auto_pricing_enabled == enabled)
    return query.order_by(PricingConfig.id).all()


def load_store_pairs(
    db: Session, store_id: int, enabled: Optional[bool] = None
) -> List[Tuple[str, Optional[PricedItem], Optional[PricingConfig], Optional[ConfigurationMissing]]]:
    """
    Normalise every config of a store into (label, item, config, error) entries.
    error is set when the config cannot be mapped to exactly one item.
    """
    entries = []
    seen_items = set()
    for config in configs_for_store(db, store_id, enabled=enabled):
        label = f"config {config.id}"
        try:
            item = item_for_config(config)
        except ConfigurationMissing as e:
            entries.append((label, None, config, e))
            continue

        label = item.title or f"item {item.id}"
        if config.item_id is None and item.pricing_config is not None:
            entries.append((label, item, config, ConfigurationMissing(
                f"Product-level config {config.id} is shadowed by item-level config {item.pricing_config.id}"
            )))
            continue
        if item.id in seen_items:
            continue
        seen_items.add(item.id)
        entries.append((label, item, config, None))
    return entries
