"""
Per-store sweep mutex stored in the sweep_locks table.

Acquisition is a single conditional UPDATE committed immediately, so the
lock is visible to every process and survives restarts. A lease older than
the TTL is considered abandoned and can be taken over; a running sweep
renews its lease after every item so only a stalled sweep ever expires.
"""
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.models.core import SweepLock
from smart_pricing.services.errors import ConcurrentSweepRejected
from smart_pricing.utils.time import utcnow

logger = logging.getLogger(__name__)


class SweepLockManager:
    def __init__(
        self,
        db: Session,
        ttl_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.SWEEP_LOCK_TTL_MINUTES)
        self.clock = clock

    def _ensure_row(self, store_id: int) -> None:
        if self.db.query(SweepLock).filter(SweepLock.store_id == store_id).first():
            return
        try:
            self.db.add(SweepLock(store_id=store_id))
            self.db.commit()
        except IntegrityError:
            # Another process created it first
            self.db.rollback()

    def try_acquire(self, store_id: int) -> Optional[str]:
        """Returns a holder token when the lock was taken, None otherwise."""
        self._ensure_row(store_id)
        now = self.clock()
        holder = uuid.uuid4().hex
        updated = self.db.query(SweepLock).filter(
            SweepLock.store_id == store_id,
            or_(
                SweepLock.holder.is_(None),
                SweepLock.acquired_at.is_(None),
                SweepLock.acquired_at < now - self.ttl
            )
        ).update(
            {SweepLock.holder: holder, SweepLock.acquired_at: now},
            synchronize_session=False
        )
        self.db.commit()
        if updated == 1:
            return holder
        return None

    def acquire(self, store_id: int, wait_seconds: float = 0.0, poll_interval: float = 1.0) -> str:
        """
        Raises:
            ConcurrentSweepRejected: lock still held after wait_seconds
        """
        deadline = time.monotonic() + wait_seconds
        while True:
            holder = self.try_acquire(store_id)
            if holder:
                logger.info(f"[SWEEP-LOCK] Acquired lock for store {store_id}")
                return holder
            if time.monotonic() >= deadline:
                current = self.db.query(SweepLock.holder).filter(SweepLock.store_id == store_id).scalar()
                logger.warning(f"[SWEEP-LOCK] Store {store_id} is locked by {current}, rejecting sweep")
                raise ConcurrentSweepRejected(store_id, holder=current)
            time.sleep(poll_interval)

    def renew(self, store_id: int, holder: str) -> bool:
        """Push the lease forward. Returns False when holder no longer owns the lock."""
        updated = self.db.query(SweepLock).filter(
            SweepLock.store_id == store_id,
            SweepLock.holder == holder
        ).update(
            {SweepLock.acquired_at: self.clock()},
            synchronize_session=False
        )
        self.db.commit()
        if updated != 1:
            logger.error(f"[SWEEP-LOCK] Store {store_id}: lease lost by {holder}")
            return False
        return True

    def release(self, store_id: int, holder: str) -> None:
        self.db.rollback()
        self.db.query(SweepLock).filter(
            SweepLock.store_id == store_id,
            SweepLock.holder == holder
        ).update(
            {SweepLock.holder: None, SweepLock.acquired_at: None},
            synchronize_session=False
        )
        self.db.commit()
        logger.info(f"[SWEEP-LOCK] Released lock for store {store_id}")
