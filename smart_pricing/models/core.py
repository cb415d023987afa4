from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Enum, JSON, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from smart_pricing.database import Base
from smart_pricing.models.enums import PricingState, PriceChangeAction, UndoAction, RunStatus

DEFAULT_INCREMENT_PERCENTAGE = 5.0
DEFAULT_PERIOD_HOURS = 24
DEFAULT_REVENUE_DROP_THRESHOLD = 1.0
DEFAULT_WAIT_HOURS_AFTER_REVERT = 24
DEFAULT_MAX_INCREASE_PERCENTAGE = 100.0

class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    shop_domain = Column(String, unique=True, nullable=False)
    # Plaintext token or "encrypted:<fernet blob>"
    access_token = Column(String, nullable=True)
    # Store-scoped global kill switch for the sweep
    smart_pricing_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    products = relationship("Product", back_populates="store", cascade="all, delete-orphan")
    items = relationship("PricedItem", back_populates="store", cascade="all, delete-orphan")

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    external_id = Column(String, nullable=False)
    title = Column(String, nullable=True)

    store = relationship("Store", back_populates="products")
    items = relationship("PricedItem", back_populates="product", order_by="PricedItem.id")
    pricing_config = relationship("PricingConfig", back_populates="product", uselist=False)

    __table_args__ = (UniqueConstraint('store_id', 'external_id', name='uq_product_store_external'),)

class PricedItem(Base):
    __tablename__ = "priced_items"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    external_id = Column(String, nullable=False)
    external_product_id = Column(String, nullable=True)
    title = Column(String, nullable=True)
    starting_price = Column(Float, nullable=True)
    current_price = Column(Float, nullable=False)

    store = relationship("Store", back_populates="items")
    product = relationship("Product", back_populates="items")
    pricing_config = relationship("PricingConfig", back_populates="item", uselist=False)

    __table_args__ = (UniqueConstraint('store_id', 'external_id', name='uq_item_store_external'),)

class PricingConfig(Base):
    __tablename__ = "pricing_configs"

    id = Column(Integer, primary_key=True, index=True)
    # Attached to a single item, or to the parent product grouping
    item_id = Column(Integer, ForeignKey("priced_items.id"), nullable=True, unique=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True, unique=True)

    auto_pricing_enabled = Column(Boolean, default=False, nullable=False)
    current_state = Column(Enum(PricingState), default=PricingState.INCREASING, nullable=False)

    increment_percentage = Column(Float, default=DEFAULT_INCREMENT_PERCENTAGE, nullable=False)
    period_hours = Column(Float, default=DEFAULT_PERIOD_HOURS, nullable=False)
    revenue_drop_threshold = Column(Float, default=DEFAULT_REVENUE_DROP_THRESHOLD, nullable=False)
    wait_hours_after_revert = Column(Float, default=DEFAULT_WAIT_HOURS_AFTER_REVERT, nullable=False)
    max_increase_percentage = Column(Float, default=DEFAULT_MAX_INCREASE_PERCENTAGE, nullable=False)

    last_price_change_at = Column(DateTime, nullable=True)
    next_eligible_change_at = Column(DateTime, nullable=True)
    revert_wait_until = Column(DateTime, nullable=True)

    pre_automation_price = Column(Float, nullable=True)
    last_automation_price = Column(Float, nullable=True)
    is_first_increase = Column(Boolean, default=True, nullable=False)

    item = relationship("PricedItem", back_populates="pricing_config")
    product = relationship("Product", back_populates="pricing_config")

    __table_args__ = (
        CheckConstraint('item_id IS NOT NULL OR product_id IS NOT NULL', name='ck_pricing_config_attachment'),
    )

class PriceChangeRecord(Base):
    """Append-only price log. Rows are never updated or deleted."""
    __tablename__ = "price_change_records"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("priced_items.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    old_price = Column(Float, nullable=False)
    new_price = Column(Float, nullable=False)
    action = Column(Enum(PriceChangeAction), nullable=False)
    reason = Column(String, nullable=True)

    revenue_previous_period = Column(Float, nullable=True)
    revenue_current_period = Column(Float, nullable=True)
    revenue_change_percent = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_price_change_records_lookup', 'item_id', 'action', 'created_at'),
    )

class SalesRecord(Base):
    __tablename__ = "sales_records"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("priced_items.id"), nullable=False)
    sold_at = Column(DateTime, nullable=False)
    units = Column(Integer, default=1, nullable=False)
    revenue = Column(Float, nullable=False)

    __table_args__ = (
        Index('ix_sales_records_item_sold_at', 'item_id', 'sold_at'),
    )

class PricingRun(Base):
    """One summary row per sweep, written once when the sweep finishes."""
    __tablename__ = "pricing_runs"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    status = Column(Enum(RunStatus), nullable=False)
    items_processed = Column(Integer, default=0, nullable=False)
    items_increased = Column(Integer, default=0, nullable=False)
    items_reverted = Column(Integer, default=0, nullable=False)
    items_waiting = Column(Integer, default=0, nullable=False)
    items_skipped = Column(Integer, default=0, nullable=False)
    errors = Column(JSON, nullable=True)
    notes = Column(JSON, nullable=True)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=False)
    duration_ms = Column(Integer, nullable=False)

class UndoRecord(Base):
    __tablename__ = "undo_records"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    user_key = Column(String, nullable=False, default="default")
    action = Column(Enum(UndoAction), nullable=False)
    description = Column(String, nullable=True)
    snapshots = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (UniqueConstraint('store_id', 'user_key', name='uq_undo_store_user'),)

class SweepLock(Base):
    __tablename__ = "sweep_locks"

    store_id = Column(Integer, ForeignKey("stores.id"), primary_key=True)
    holder = Column(String, nullable=True)
    acquired_at = Column(DateTime, nullable=True)
