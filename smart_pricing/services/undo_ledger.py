"""
Server-held undo for smart pricing toggles.

Each (store, user) pair keeps at most one UndoState, valid for a short window
after the toggle that produced it. Executing it restores every captured
snapshot and mirrors restored prices to the storefront.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.models.core import PricedItem, PricingConfig, PriceChangeRecord, UndoRecord
from smart_pricing.models.enums import PriceChangeAction
from smart_pricing.schemas.pricing import UndoState
from smart_pricing.services.catalog import UNDO_REASON_PREFIX, resolve_config
from smart_pricing.services.credentials import CredentialsError
from smart_pricing.services.errors import ExternalApiFailure, StoreNotFound, UndoExpired
from smart_pricing.services.storefront import build_storefront_client
from smart_pricing.utils.time import round_price, utcnow

logger = logging.getLogger(__name__)

DEFAULT_USER_KEY = "default"


@dataclass
class UndoResult:
    success: bool
    count: int = 0
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class UndoLedger:
    def __init__(
        self,
        db: Session,
        window_minutes: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        storefront_factory: Callable = build_storefront_client,
    ):
        self.db = db
        self.window = timedelta(
            minutes=window_minutes if window_minutes is not None else settings.UNDO_WINDOW_MINUTES
        )
        self.clock = clock
        self.storefront_factory = storefront_factory

    def _find(self, store_id: int, user_key: str) -> Optional[UndoRecord]:
        return self.db.query(UndoRecord).filter(
            UndoRecord.store_id == store_id,
            UndoRecord.user_key == user_key
        ).first()

    def _is_live(self, record: UndoRecord) -> bool:
        return self.clock() - record.created_at < self.window

    def record(self, store_id: int, state: UndoState, user_key: str = DEFAULT_USER_KEY) -> UndoRecord:
        """Replace the active undo state for (store, user)."""
        existing = self._find(store_id, user_key)
        if existing:
            self.db.delete(existing)
            self.db.flush()

        record = UndoRecord(
            store_id=store_id,
            user_key=user_key,
            action=state.action,
            description=state.description,
            snapshots=[s.model_dump(mode="json") for s in state.snapshots],
            created_at=state.created_at,
        )
        self.db.add(record)
        self.db.commit()
        logger.info(f"[UNDO] Recorded '{state.description}' for store {store_id} ({len(state.snapshots)} items)")
        return record

    def clear(self, store_id: int, user_key: str = DEFAULT_USER_KEY) -> None:
        existing = self._find(store_id, user_key)
        if existing:
            self.db.delete(existing)
            self.db.commit()

    def load(self, store_id: int, user_key: str = DEFAULT_USER_KEY) -> UndoState:
        """
        Raises:
            UndoExpired: nothing to undo, or the window has passed (the record is discarded)
        """
        record = self._find(store_id, user_key)
        if record is None:
            raise UndoExpired("Nothing to undo")
        if not self._is_live(record):
            self.db.delete(record)
            self.db.commit()
            logger.info(f"[UNDO] Discarded expired undo for store {store_id}")
            raise UndoExpired("Undo window has expired")
        return UndoState(
            action=record.action,
            created_at=record.created_at,
            snapshots=record.snapshots or [],
            description=record.description,
        )

    def get_active(self, store_id: int, user_key: str = DEFAULT_USER_KEY) -> Optional[UndoState]:
        try:
            return self.load(store_id, user_key)
        except UndoExpired:
            return None

    def can_undo(self, store_id: int, user_key: str = DEFAULT_USER_KEY) -> bool:
        record = self._find(store_id, user_key)
        return record is not None and self._is_live(record)

    def seconds_remaining(self, store_id: int, user_key: str = DEFAULT_USER_KEY) -> int:
        record = self._find(store_id, user_key)
        if record is None:
            return 0
        remaining = (record.created_at + self.window - self.clock()).total_seconds()
        return max(0, int(remaining))

    def execute_undo(self, store_id: int, user_key: str = DEFAULT_USER_KEY, storefront=None) -> UndoResult:
        try:
            state = self.load(store_id, user_key)
        except UndoExpired as e:
            return UndoResult(success=False, count=0, error=str(e))

        warnings = []
        built_storefront = False
        if storefront is None:
            try:
                storefront = self.storefront_factory(self.db, store_id)
                built_storefront = True
            except (CredentialsError, StoreNotFound) as e:
                warnings.append(f"prices not mirrored to storefront: {e}")

        try:
            now = self.clock()
            reason = f"{UNDO_REASON_PREFIX}{state.description}"
            count = 0
            for snapshot in state.snapshots:
                item = self.db.query(PricedItem).filter(PricedItem.id == snapshot.item_id).first()
                if item is None:
                    warnings.append(f"item {snapshot.item_id} no longer exists")
                    continue

                label = item.title or f"item {item.id}"
                old_price = item.current_price
                restored = round_price(snapshot.price)
                if round_price(old_price) != restored:
                    if storefront is not None:
                        try:
                            storefront.set_price(item.external_id, restored, item.external_product_id)
                        except ExternalApiFailure as e:
                            logger.warning(f"[UNDO] Storefront push failed for {label}: {e}")
                            warnings.append(f"{label}: price restored locally but not mirrored to storefront: {e}")
                    item.current_price = restored
                    self.db.add(PriceChangeRecord(
                        item_id=item.id,
                        store_id=item.store_id,
                        old_price=old_price,
                        new_price=restored,
                        action=PriceChangeAction.INCREASE if restored > old_price else PriceChangeAction.REVERT,
                        reason=reason,
                        created_at=now,
                    ))

                config = resolve_config(item)
                if config is None:
                    config = PricingConfig(item_id=item.id)
                    self.db.add(config)
                config.auto_pricing_enabled = snapshot.auto_pricing_enabled
                config.current_state = snapshot.current_state
                config.next_eligible_change_at = snapshot.next_eligible_change_at
                config.revert_wait_until = snapshot.revert_wait_until
                config.pre_automation_price = snapshot.pre_automation_price
                config.last_automation_price = snapshot.last_automation_price
                config.last_price_change_at = snapshot.last_price_change_at
                config.is_first_increase = snapshot.is_first_increase

                self.db.commit()
                count += 1
        finally:
            if built_storefront:
                storefront.close()

        self.clear(store_id, user_key)
        logger.info(f"[UNDO] Store {store_id}: undid '{state.description}' on {count} items")
        return UndoResult(success=True, count=count, warnings=warnings)
