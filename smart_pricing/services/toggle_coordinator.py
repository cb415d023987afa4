"""
Enabling and disabling smart pricing for single items or a whole store.

Disabling puts an item back on its pre-automation price. Re-enabling an item
that was automated before either resumes from that base price or from the
last price automation set; when the two differ the caller must choose.
Every toggle captures snapshots first so it can be undone.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from smart_pricing.models.core import PricedItem, PricingConfig, PriceChangeRecord
from smart_pricing.models.enums import PriceChangeAction, PricingState, ResumeStrategy, UndoAction
from smart_pricing.schemas.pricing import ToggleSnapshot, UndoState
from smart_pricing.services.catalog import get_item, load_store_pairs, resolve_config
from smart_pricing.services.credentials import CredentialsError
from smart_pricing.services.errors import ExternalApiFailure, StoreNotFound
from smart_pricing.services.storefront import build_storefront_client
from smart_pricing.services.undo_ledger import DEFAULT_USER_KEY, UndoLedger
from smart_pricing.utils.time import round_price, utcnow

logger = logging.getLogger(__name__)

DISABLE_REASON = "Smart pricing disabled"
NOT_MIRRORED = "automation toggled but price not mirrored to storefront"


@dataclass
class ResumeChoice:
    item_id: int
    title: Optional[str]
    base_price: float
    last_price: float


@dataclass
class ToggleOutcome:
    requires_choice: bool = False
    choices: List[ResumeChoice] = field(default_factory=list)
    undo_state: Optional[UndoState] = None
    count: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def snapshots(self) -> List[ToggleSnapshot]:
        return self.undo_state.snapshots if self.undo_state else []


def _label(item: PricedItem) -> str:
    return item.title or f"item {item.id}"


def resume_choice(item: PricedItem, config: Optional[PricingConfig]) -> Optional[ResumeChoice]:
    """The two candidate prices when re-enabling is ambiguous, None otherwise."""
    if config is None or config.pre_automation_price is None or config.last_automation_price is None:
        return None
    if round_price(config.pre_automation_price) == round_price(config.last_automation_price):
        return None
    return ResumeChoice(
        item_id=item.id,
        title=item.title,
        base_price=round_price(config.pre_automation_price),
        last_price=round_price(config.last_automation_price),
    )


class ToggleCoordinator:
    def __init__(
        self,
        db: Session,
        storefront=None,
        storefront_factory: Callable = build_storefront_client,
        ledger: Optional[UndoLedger] = None,
        clock: Callable[[], datetime] = utcnow,
        user_key: str = DEFAULT_USER_KEY,
    ):
        self.db = db
        self.storefront = storefront
        self.storefront_factory = storefront_factory
        self.ledger = ledger
        self.clock = clock
        self.user_key = user_key
        self._storefronts: Dict[int, object] = {}

    # ------------------------------------------------------------
    # Storefront
    # ------------------------------------------------------------

    def _storefront_for(self, store_id: int):
        if self.storefront is not None:
            return self.storefront
        if store_id not in self._storefronts:
            self._storefronts[store_id] = self.storefront_factory(self.db, store_id)
        return self._storefronts[store_id]

    def close(self) -> None:
        """Close storefront clients this coordinator built."""
        for client in self._storefronts.values():
            client.close()
        self._storefronts.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _push_price(self, item: PricedItem, price: float) -> Optional[str]:
        """Mirror a price to the storefront. Returns a warning instead of raising."""
        try:
            self._storefront_for(item.store_id).set_price(item.external_id, price, item.external_product_id)
        except (ExternalApiFailure, CredentialsError, StoreNotFound) as e:
            logger.warning(f"[TOGGLE] Storefront push failed for {_label(item)}: {e}")
            return f"{_label(item)}: {NOT_MIRRORED}: {e}"
        return None

    # ------------------------------------------------------------
    # Per-item operations
    # ------------------------------------------------------------

    def _snapshot(self, item: PricedItem, config: Optional[PricingConfig], new_price: float) -> ToggleSnapshot:
        if config is None:
            return ToggleSnapshot(
                item_id=item.id,
                external_id=item.external_id,
                price=item.current_price,
                new_price=new_price,
                auto_pricing_enabled=False,
            )
        return ToggleSnapshot(
            item_id=item.id,
            external_id=item.external_id,
            price=item.current_price,
            new_price=new_price,
            auto_pricing_enabled=bool(config.auto_pricing_enabled),
            current_state=config.current_state or PricingState.INCREASING,
            next_eligible_change_at=config.next_eligible_change_at,
            revert_wait_until=config.revert_wait_until,
            pre_automation_price=config.pre_automation_price,
            last_automation_price=config.last_automation_price,
            last_price_change_at=config.last_price_change_at,
            is_first_increase=bool(config.is_first_increase),
        )

    def _log(self, item: PricedItem, old_price: float, new_price: float, action: PriceChangeAction, reason: str, now: datetime) -> None:
        self.db.add(PriceChangeRecord(
            item_id=item.id,
            store_id=item.store_id,
            old_price=old_price,
            new_price=new_price,
            action=action,
            reason=reason,
            created_at=now,
        ))

    def _disable_one(self, item: PricedItem, config: PricingConfig, now: datetime) -> Tuple[ToggleSnapshot, Optional[str]]:
        price_to_revert = config.pre_automation_price
        if price_to_revert is None:
            price_to_revert = item.starting_price if item.starting_price is not None else item.current_price
        price_to_revert = round_price(price_to_revert)

        snapshot = self._snapshot(item, config, price_to_revert)
        warning = self._push_price(item, price_to_revert)

        old_price = item.current_price
        item.current_price = price_to_revert
        self._log(item, old_price, price_to_revert, PriceChangeAction.REVERT, DISABLE_REASON, now)

        config.auto_pricing_enabled = False
        config.current_state = PricingState.INCREASING
        config.next_eligible_change_at = None
        config.revert_wait_until = None
        config.last_automation_price = old_price
        self.db.commit()

        logger.info(f"[TOGGLE] Disabled {_label(item)}: {old_price:.2f} -> {price_to_revert:.2f}")
        return snapshot, warning

    def _enable_one(
        self, item: PricedItem, config: Optional[PricingConfig], strategy: Optional[ResumeStrategy], now: datetime
    ) -> Tuple[ToggleSnapshot, Optional[str]]:
        never_automated = config is None or config.pre_automation_price is None

        if never_automated:
            snapshot = self._snapshot(item, config, item.current_price)
            if config is None:
                config = PricingConfig(item_id=item.id)
                self.db.add(config)
            config.pre_automation_price = item.current_price
            warning = None
            logger.info(f"[TOGGLE] Enabled {_label(item)} at {item.current_price:.2f}")
        else:
            strategy = strategy or ResumeStrategy.BASE
            if strategy == ResumeStrategy.LAST and config.last_automation_price is not None:
                target = config.last_automation_price
            else:
                target = config.pre_automation_price
            target = round_price(target)

            snapshot = self._snapshot(item, config, target)
            warning = self._push_price(item, target)

            old_price = item.current_price
            item.current_price = target
            source = "base" if strategy == ResumeStrategy.BASE else "last smart"
            self._log(item, old_price, target, PriceChangeAction.INCREASE,
                      f"Smart pricing resumed from {source} price", now)
            config.last_automation_price = target
            logger.info(f"[TOGGLE] Resumed {_label(item)} from {source} price: {old_price:.2f} -> {target:.2f}")

        config.auto_pricing_enabled = True
        config.current_state = PricingState.INCREASING
        config.is_first_increase = True
        config.next_eligible_change_at = now
        config.revert_wait_until = None
        self.db.commit()
        return snapshot, warning

    def _finish(self, store_id: int, action: UndoAction, description: str, results, now: datetime) -> ToggleOutcome:
        snapshots = [snapshot for snapshot, _ in results]
        warnings = [warning for _, warning in results if warning]
        outcome = ToggleOutcome(count=len(snapshots), warnings=warnings)
        if snapshots:
            outcome.undo_state = UndoState(
                action=action, created_at=now, snapshots=snapshots, description=description
            )
            if self.ledger is not None:
                self.ledger.record(store_id, outcome.undo_state, self.user_key)
        return outcome

    # ------------------------------------------------------------
    # Individual toggles
    # ------------------------------------------------------------

    def disable_item(self, item_id: int) -> ToggleOutcome:
        """
        Raises:
            ItemNotFound: unknown item
        """
        item = get_item(self.db, item_id)
        config = resolve_config(item)
        if config is None or not config.auto_pricing_enabled:
            return ToggleOutcome()

        now = self.clock()
        result = self._disable_one(item, config, now)
        return self._finish(item.store_id, UndoAction.INDIVIDUAL_OFF,
                            f"Disabled smart pricing for {_label(item)}", [result], now)

    def enable_item(self, item_id: int, resume_strategy: Optional[ResumeStrategy] = None) -> ToggleOutcome:
        """
        Raises:
            ItemNotFound: unknown item
        """
        item = get_item(self.db, item_id)
        config = resolve_config(item)
        if config is not None and config.auto_pricing_enabled:
            return ToggleOutcome()

        choice = resume_choice(item, config)
        if choice is not None and resume_strategy is None:
            return ToggleOutcome(requires_choice=True, choices=[choice])

        now = self.clock()
        result = self._enable_one(item, config, resume_strategy, now)
        return self._finish(item.store_id, UndoAction.INDIVIDUAL_ON,
                            f"Enabled smart pricing for {_label(item)}", [result], now)

    # ------------------------------------------------------------
    # Store-wide toggles
    # ------------------------------------------------------------

    def disable_store(self, store_id: int) -> ToggleOutcome:
        now = self.clock()
        results = []
        for label, item, config, setup_error in load_store_pairs(self.db, store_id, enabled=True):
            if setup_error is not None:
                # No single item to revert; just stop automating it
                logger.warning(f"[TOGGLE] Disabling {label} without price revert: {setup_error}")
                config.auto_pricing_enabled = False
                self.db.commit()
                continue
            results.append(self._disable_one(item, config, now))

        logger.info(f"[TOGGLE] Store {store_id}: disabled smart pricing on {len(results)} items")
        return self._finish(store_id, UndoAction.GLOBAL_OFF,
                            f"Disabled smart pricing for {len(results)} items", results, now)

    def _enable_targets(self, store_id: int, item_ids: Optional[Iterable[int]]) -> List[Tuple[PricedItem, Optional[PricingConfig]]]:
        if item_ids is None:
            return [
                (item, config)
                for _, item, config, setup_error in load_store_pairs(self.db, store_id, enabled=False)
                if setup_error is None
            ]

        targets = []
        for item_id in item_ids:
            item = self.db.query(PricedItem).filter(
                PricedItem.id == item_id, PricedItem.store_id == store_id
            ).first()
            if item is None:
                logger.warning(f"[TOGGLE] Item {item_id} not found in store {store_id}, skipping")
                continue
            config = resolve_config(item)
            if config is not None and config.auto_pricing_enabled:
                continue
            targets.append((item, config))
        return targets

    def enable_store(
        self,
        store_id: int,
        resume_strategy: Optional[ResumeStrategy] = None,
        item_ids: Optional[Iterable[int]] = None,
    ) -> ToggleOutcome:
        targets = self._enable_targets(store_id, item_ids)

        if resume_strategy is None:
            choices = [c for c in (resume_choice(item, config) for item, config in targets) if c is not None]
            if choices:
                return ToggleOutcome(requires_choice=True, choices=choices)

        now = self.clock()
        results = [self._enable_one(item, config, resume_strategy, now) for item, config in targets]

        logger.info(f"[TOGGLE] Store {store_id}: enabled smart pricing on {len(results)} items")
        return self._finish(store_id, UndoAction.GLOBAL_ON,
                            f"Enabled smart pricing for {len(results)} items", results, now)
