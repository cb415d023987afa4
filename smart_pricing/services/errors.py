"""
Error kinds raised by the pricing engine.

Per-item errors (ExternalApiFailure, ConfigurationMissing, CatalogWriteError)
are caught by the sweep and recorded against the item; sweep-level errors
(ConcurrentSweepRejected) abort the sweep and reach the caller.
"""
from typing import Optional


class PricingEngineError(Exception):
    """Base exception for pricing engine errors."""
    pass


class ExternalApiFailure(PricingEngineError):
    """Storefront unreachable, timed out or rejected the request. Retryable."""
    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationMissing(PricingEngineError):
    """An enabled item cannot be priced because its setup is incomplete."""
    pass


class CatalogWriteError(PricingEngineError):
    """Local catalog write failed after the storefront already accepted the price."""
    pass


class ConcurrentSweepRejected(PricingEngineError):
    """Another sweep holds the lock for this store."""
    def __init__(self, store_id: int, holder: Optional[str] = None):
        super().__init__(f"A pricing sweep is already running for store {store_id}")
        self.store_id = store_id
        self.holder = holder


class UndoExpired(PricingEngineError):
    """The undo window for the recorded toggle has elapsed."""
    pass


class ItemNotFound(PricingEngineError):
    pass


class StoreNotFound(PricingEngineError):
    pass
