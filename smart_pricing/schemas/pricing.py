from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from smart_pricing.models.enums import PricingState, PriceChangeAction, ResumeStrategy, UndoAction, RunStatus

# ------------------------------------------------------------
# Toggle snapshots / undo (also the persisted undo record format)
# ------------------------------------------------------------

class ToggleSnapshot(BaseModel):
    """State of one item captured before a toggle mutated it."""
    item_id: int
    external_id: Optional[str] = None
    price: float  # price before the action (restored by undo)
    new_price: float  # price the UI should show now
    auto_pricing_enabled: bool
    current_state: PricingState = PricingState.INCREASING
    next_eligible_change_at: Optional[datetime] = None
    revert_wait_until: Optional[datetime] = None
    pre_automation_price: Optional[float] = None
    last_automation_price: Optional[float] = None
    last_price_change_at: Optional[datetime] = None
    is_first_increase: bool = True

class UndoState(BaseModel):
    action: UndoAction
    created_at: datetime
    snapshots: List[ToggleSnapshot]
    description: str

class ResumeChoiceResponse(BaseModel):
    item_id: int
    title: Optional[str] = None
    base_price: float
    last_price: float

# ------------------------------------------------------------
# Pricing config
# ------------------------------------------------------------

class PricingConfigResponse(BaseModel):
    id: int
    item_id: Optional[int] = None
    product_id: Optional[int] = None
    auto_pricing_enabled: bool
    current_state: PricingState
    increment_percentage: float
    period_hours: float
    revenue_drop_threshold: float
    wait_hours_after_revert: float
    max_increase_percentage: float
    last_price_change_at: Optional[datetime] = None
    next_eligible_change_at: Optional[datetime] = None
    revert_wait_until: Optional[datetime] = None
    pre_automation_price: Optional[float] = None
    last_automation_price: Optional[float] = None
    is_first_increase: bool

    class Config:
        from_attributes = True

class PricingConfigUpdate(BaseModel):
    """Tunables only. Enabling/disabling goes through the toggle endpoints."""
    increment_percentage: Optional[float] = Field(default=None, gt=0, le=100)
    period_hours: Optional[float] = Field(default=None, gt=0)
    revenue_drop_threshold: Optional[float] = Field(default=None, ge=0)
    wait_hours_after_revert: Optional[float] = Field(default=None, ge=0)
    max_increase_percentage: Optional[float] = Field(default=None, gt=0)

# ------------------------------------------------------------
# Price history / runs
# ------------------------------------------------------------

class PriceChangeRecordResponse(BaseModel):
    id: int
    item_id: int
    old_price: float
    new_price: float
    action: PriceChangeAction
    reason: Optional[str] = None
    revenue_previous_period: Optional[float] = None
    revenue_current_period: Optional[float] = None
    revenue_change_percent: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PriceHistoryResponse(BaseModel):
    item_id: int
    count: int
    history: List[PriceChangeRecordResponse]

class RunSummaryResponse(BaseModel):
    run_id: Optional[int] = None
    store_id: int
    success: bool
    status: RunStatus
    processed: int
    increased: int
    reverted: int
    waiting: int
    skipped: int
    errors: List[str] = []
    notes: List[str] = []
    duration_ms: int

class PricingRunResponse(BaseModel):
    id: int
    store_id: int
    status: RunStatus
    items_processed: int
    items_increased: int
    items_reverted: int
    items_waiting: int
    items_skipped: int
    errors: Optional[List[str]] = None
    notes: Optional[List[str]] = None
    started_at: datetime
    finished_at: datetime
    duration_ms: int

    class Config:
        from_attributes = True

# ------------------------------------------------------------
# Toggle / undo requests and responses
# ------------------------------------------------------------

class ToggleItemRequest(BaseModel):
    enabled: bool
    resume_strategy: Optional[ResumeStrategy] = None
    user_key: str = "default"

class ToggleStoreRequest(BaseModel):
    enabled: bool
    resume_strategy: Optional[ResumeStrategy] = None
    # Items the merchant had enabled in this session; all disabled items when omitted
    item_ids: Optional[List[int]] = None
    user_key: str = "default"

class ToggleResponse(BaseModel):
    success: bool
    requires_choice: bool = False
    choices: List[ResumeChoiceResponse] = []
    count: int = 0
    snapshots: List[ToggleSnapshot] = []
    undo: Optional[UndoState] = None
    warnings: List[str] = []
    message: str = ""

class UndoRequest(BaseModel):
    user_key: str = "default"

class UndoResponse(BaseModel):
    success: bool
    count: int = 0
    error: Optional[str] = None
    warnings: List[str] = []

class UndoStatusResponse(BaseModel):
    can_undo: bool
    seconds_remaining: int = 0
    undo: Optional[UndoState] = None

# ------------------------------------------------------------
# Store settings
# ------------------------------------------------------------

class SmartPricingSettingResponse(BaseModel):
    store_id: int
    enabled: bool

class SmartPricingSettingUpdate(BaseModel):
    enabled: bool
