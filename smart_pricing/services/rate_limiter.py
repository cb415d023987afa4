"""
Token-bucket rate limiter for Storefront API calls.

One bucket per store, shared by every caller that talks to that store's
storefront (sweep, toggles, undo). Buckets live in a process-wide registry.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    requests_per_second: float
    burst: int = 1

    def __post_init__(self):
        if self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if self.burst < 1:
            raise ValueError("burst must be at least 1")


class TokenBucket:
    def __init__(
        self,
        config: RateLimitConfig,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(config.burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.config.burst), self._tokens + elapsed * self.config.requests_per_second)
        self._updated = now

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def acquire(self) -> float:
        """Block until a token is available. Returns the total time waited."""
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return waited
                wait_time = (1.0 - self._tokens) / self.config.requests_per_second
            logger.info(f"[RATE-LIMIT] Bucket '{self.name}' empty, waiting {wait_time:.2f}s")
            self._sleep(wait_time)
            waited += wait_time


_buckets: Dict[int, TokenBucket] = {}
_registry_lock = threading.Lock()


def get_store_rate_limiter(store_id: int, config: Optional[RateLimitConfig] = None) -> TokenBucket:
    """Return the shared bucket for a store, creating it on first use."""
    with _registry_lock:
        bucket = _buckets.get(store_id)
        if bucket is None:
            if config is None:
                from smart_pricing.config import settings
                config = RateLimitConfig(
                    requests_per_second=settings.STOREFRONT_REQUESTS_PER_SECOND,
                    burst=settings.STOREFRONT_BURST,
                )
            bucket = TokenBucket(config, name=f"store-{store_id}")
            _buckets[store_id] = bucket
            logger.info(f"[RATE-LIMIT] Created bucket for store {store_id} ({config.requests_per_second}/s, burst {config.burst})")
        return bucket


def reset_rate_limiters() -> None:
    with _registry_lock:
        _buckets.clear()
