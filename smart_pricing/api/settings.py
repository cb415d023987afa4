from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from smart_pricing.api.pricing import verify_admin_key
from smart_pricing.database import get_db
from smart_pricing.models.core import Store
from smart_pricing.schemas.pricing import SmartPricingSettingResponse, SmartPricingSettingUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


# ------------------------------------------------------------------
# Store-wide smart pricing switch
# ------------------------------------------------------------------

@router.get("/stores/{store_id}/smart-pricing", response_model=SmartPricingSettingResponse)
def get_smart_pricing_setting(store_id: int, db: Session = Depends(get_db)):
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return SmartPricingSettingResponse(store_id=store.id, enabled=bool(store.smart_pricing_enabled))


@router.put("/stores/{store_id}/smart-pricing", response_model=SmartPricingSettingResponse)
def update_smart_pricing_setting(
    store_id: int,
    data: SmartPricingSettingUpdate,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_admin_key),
):
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    store.smart_pricing_enabled = data.enabled
    db.commit()
    logger.info(f"[SETTINGS] Store {store_id} smart pricing {'enabled' if data.enabled else 'disabled'}")
    return SmartPricingSettingResponse(store_id=store.id, enabled=bool(store.smart_pricing_enabled))
