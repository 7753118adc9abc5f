"""Period-scoped write serialization for period creation, generation and export."""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from billing_engine.database import acquire_advisory_xact_lock, is_postgres
from billing_engine.errors import PeriodBusyError

logger = logging.getLogger(__name__)

# In-process locks by key; an entry disappears once nobody holds or awaits it
_local_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

# Session.info slot listing the locks a session holds
HELD_LOCKS_KEY = "billing_engine.held_locks"

PERIOD_CREATION_KEY = "billing_period:create"


def _local_lock(key: str) -> asyncio.Lock:
    lock = _local_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[key] = lock
    return lock


def _release_held_locks(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    held: dict[str, asyncio.Lock] = session.info.get(HELD_LOCKS_KEY, {})
    while held:
        _, lock = held.popitem()
        lock.release()


class LockingService:
    """Serializes multi-step writes on the same billing period.

    Locks are transaction scoped: they are taken inside the caller's
    transaction and released when it commits or rolls back, so a second
    writer only reads the period after the first one's changes are
    visible.

    Two layers:
    1. An in-process ``asyncio.Lock`` per key; concurrent requests in the
       same worker queue behind each other
    2. On PostgreSQL, a transaction advisory lock so other workers fail
       fast with ``PeriodBusyError`` (or wait, for period creation)

    A session that already holds a key takes it again without waiting.
    Different keys never contend. Status updates additionally use
    conditional ``UPDATE ... WHERE status = :expected`` statements.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def period_key(billing_period_id: UUID) -> str:
        return f"billing_period:{billing_period_id}"

    async def lock_period(self, billing_period_id: UUID) -> None:
        """Hold the write lock for one billing period until the transaction ends.

        Raises:
            PeriodBusyError: If another worker holds the period (PostgreSQL)
        """
        await self.lock(self.period_key(billing_period_id), billing_period_id)

    async def lock_period_creation(self) -> None:
        """Serialize overlap checks and inserts of billing periods."""
        await self.lock(PERIOD_CREATION_KEY, wait=True)

    async def lock(
        self,
        key: str,
        billing_period_id: UUID | None = None,
        wait: bool = False,
    ) -> None:
        """Hold the write lock for an arbitrary key until the transaction ends."""
        held = self._held_locks()
        if key in held:
            return

        # Begin the transaction whose end releases the lock
        await self.session.connection()

        lock = _local_lock(key)
        await lock.acquire()
        held[key] = lock

        if not is_postgres(self.session):
            return

        acquired = await acquire_advisory_xact_lock(self.session, key, wait=wait)
        if not acquired:
            logger.warning("Advisory lock %s held by another session", key)
            raise PeriodBusyError(billing_period_id)

    def _held_locks(self) -> dict[str, asyncio.Lock]:
        info: dict[str, Any] = self.session.info
        held = info.get(HELD_LOCKS_KEY)
        if held is None:
            held = info[HELD_LOCKS_KEY] = {}
            event.listen(self.session.sync_session, "after_transaction_end", _release_held_locks)
        return held
