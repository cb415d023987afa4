"""
Smart Pricing API - sweeps, toggles, undo and per-item configuration.

Security:
- Triggering a sweep requires the X-Admin-Key header matching ADMIN_KEY
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.database import get_db
from smart_pricing.models.core import PriceChangeRecord, PricingRun, Store
from smart_pricing.schemas.pricing import (
    PricingConfigResponse, PricingConfigUpdate,
    PriceChangeRecordResponse, PriceHistoryResponse,
    RunSummaryResponse, PricingRunResponse,
    ToggleItemRequest, ToggleStoreRequest, ToggleResponse, ResumeChoiceResponse,
    UndoRequest, UndoResponse, UndoStatusResponse,
)
from smart_pricing.services.catalog import get_item, resolve_config
from smart_pricing.services.errors import ConcurrentSweepRejected, ItemNotFound, StoreNotFound
from smart_pricing.services.pricing_runner import PricingRunOrchestrator
from smart_pricing.services.toggle_coordinator import ToggleCoordinator, ToggleOutcome
from smart_pricing.services.undo_ledger import UndoLedger


router = APIRouter(prefix="/pricing", tags=["pricing"])


# ============================================================
# Admin Authentication Guard
# ============================================================

def verify_admin_key(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")):
    """
    Dependency that verifies the X-Admin-Key header.
    Returns 401 if the header is missing or doesn't match ADMIN_KEY.
    """
    if not settings.ADMIN_KEY:
        raise HTTPException(
            status_code=500,
            detail="ADMIN_KEY environment variable not configured"
        )

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="X-Admin-Key header required"
        )

    if x_admin_key != settings.ADMIN_KEY:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin key"
        )

    return True


def _get_store_or_404(db: Session, store_id: int) -> Store:
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


def _toggle_response(outcome: ToggleOutcome, message: str) -> ToggleResponse:
    if outcome.requires_choice:
        return ToggleResponse(
            success=False,
            requires_choice=True,
            choices=[ResumeChoiceResponse(**vars(c)) for c in outcome.choices],
            message="Choose whether to resume from the base price or the last smart price",
        )
    return ToggleResponse(
        success=True,
        count=outcome.count,
        snapshots=outcome.snapshots,
        undo=outcome.undo_state,
        warnings=outcome.warnings,
        message=message if outcome.count else "Nothing to change",
    )


# ============================================================
# Sweeps
# ============================================================

@router.post("/stores/{store_id}/run", response_model=RunSummaryResponse)
def run_pricing_sweep(
    store_id: int,
    wait: bool = False,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_admin_key),
):
    """Run one pricing sweep now. Returns 409 if a sweep is already running."""
    try:
        summary = PricingRunOrchestrator(db).run_sweep(store_id, wait_for_lock=wait)
    except StoreNotFound:
        raise HTTPException(status_code=404, detail="Store not found")
    except ConcurrentSweepRejected as e:
        raise HTTPException(status_code=409, detail=str(e))

    return RunSummaryResponse(
        run_id=summary.run_id,
        store_id=summary.store_id,
        success=summary.success,
        status=summary.status,
        processed=summary.processed,
        increased=summary.increased,
        reverted=summary.reverted,
        waiting=summary.waiting,
        skipped=summary.skipped,
        errors=summary.errors,
        notes=summary.notes,
        duration_ms=summary.duration_ms,
    )


@router.get("/stores/{store_id}/runs", response_model=List[PricingRunResponse])
def list_pricing_runs(store_id: int, limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    _get_store_or_404(db, store_id)
    return db.query(PricingRun).filter(
        PricingRun.store_id == store_id
    ).order_by(desc(PricingRun.started_at), desc(PricingRun.id)).limit(limit).all()


# ============================================================
# Toggles
# ============================================================

@router.post("/items/{item_id}/toggle", response_model=ToggleResponse)
def toggle_item(item_id: int, data: ToggleItemRequest, db: Session = Depends(get_db)):
    try:
        with ToggleCoordinator(db, ledger=UndoLedger(db), user_key=data.user_key) as coordinator:
            if data.enabled:
                outcome = coordinator.enable_item(item_id, data.resume_strategy)
            else:
                outcome = coordinator.disable_item(item_id)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="Item not found")

    state = "enabled" if data.enabled else "disabled"
    return _toggle_response(outcome, f"Smart pricing {state}")


@router.post("/stores/{store_id}/toggle", response_model=ToggleResponse)
def toggle_store(store_id: int, data: ToggleStoreRequest, db: Session = Depends(get_db)):
    _get_store_or_404(db, store_id)
    with ToggleCoordinator(db, ledger=UndoLedger(db), user_key=data.user_key) as coordinator:
        if data.enabled:
            outcome = coordinator.enable_store(store_id, data.resume_strategy, data.item_ids)
        else:
            outcome = coordinator.disable_store(store_id)

    state = "enabled" if data.enabled else "disabled"
    return _toggle_response(outcome, f"Smart pricing {state} for {outcome.count} items")


# ============================================================
# Undo
# ============================================================

@router.get("/stores/{store_id}/undo", response_model=UndoStatusResponse)
def get_undo_status(store_id: int, user_key: str = "default", db: Session = Depends(get_db)):
    ledger = UndoLedger(db)
    state = ledger.get_active(store_id, user_key)
    if state is None:
        return UndoStatusResponse(can_undo=False)
    return UndoStatusResponse(
        can_undo=True,
        seconds_remaining=ledger.seconds_remaining(store_id, user_key),
        undo=state,
    )


@router.post("/stores/{store_id}/undo", response_model=UndoResponse)
def undo_last_toggle(store_id: int, data: UndoRequest, db: Session = Depends(get_db)):
    _get_store_or_404(db, store_id)
    result = UndoLedger(db).execute_undo(store_id, data.user_key)
    return UndoResponse(
        success=result.success,
        count=result.count,
        error=result.error,
        warnings=result.warnings,
    )


# ============================================================
# Per-item configuration and history
# ============================================================

def _get_config_or_404(db: Session, item_id: int):
    try:
        item = get_item(db, item_id)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="Item not found")
    config = resolve_config(item)
    if config is None:
        raise HTTPException(status_code=404, detail="Item has no pricing configuration")
    return config


@router.get("/items/{item_id}/config", response_model=PricingConfigResponse)
def get_item_config(item_id: int, db: Session = Depends(get_db)):
    return _get_config_or_404(db, item_id)


@router.patch("/items/{item_id}/config", response_model=PricingConfigResponse)
def update_item_config(item_id: int, data: PricingConfigUpdate, db: Session = Depends(get_db)):
    config = _get_config_or_404(db, item_id)
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    for key, value in updates.items():
        setattr(config, key, value)
    db.commit()
    db.refresh(config)
    return config


@router.get("/items/{item_id}/history", response_model=PriceHistoryResponse)
def get_item_history(item_id: int, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    try:
        get_item(db, item_id)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="Item not found")

    records = db.query(PriceChangeRecord).filter(
        PriceChangeRecord.item_id == item_id
    ).order_by(desc(PriceChangeRecord.created_at), desc(PriceChangeRecord.id)).limit(limit).all()
    return PriceHistoryResponse(
        item_id=item_id,
        count=len(records),
        history=[PriceChangeRecordResponse.model_validate(r) for r in records],
    )
