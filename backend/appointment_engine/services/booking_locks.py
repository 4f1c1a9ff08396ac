"""Per-party booking locks.

A booking check followed by a write must not interleave with another booking
for the same team member, client or transportation leg on the same day. Keys
are ``(party, id, date)``; locks are taken in sorted order so two requests
touching the same parties cannot deadlock.
"""

import asyncio
import hashlib
import weakref
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.utils.logging import get_logger

logger = get_logger("engine.locks")

LockKey = Tuple[str, int, str]

_locks: "weakref.WeakValueDictionary[LockKey, asyncio.Lock]" = weakref.WeakValueDictionary()


def party_key(party: str, party_id: int, day: Optional[date] = None) -> LockKey:
    return (party, party_id, day.isoformat() if day else "*")


def _lock_for(key: LockKey) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


def _advisory_id(key: LockKey) -> int:
    digest = hashlib.sha1(":".join(map(str, key)).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


@asynccontextmanager
async def booking_locks(db: AsyncSession, keys: Iterable[LockKey]) -> AsyncIterator[List[LockKey]]:
    """Hold every lock in ``keys`` for the duration of the block.

    The caller must commit inside the block. On PostgreSQL the matching
    transaction-scoped advisory locks are taken too, so separate worker
    processes are serialized as well.
    """
    ordered = sorted(set(keys))
    held: List[asyncio.Lock] = []
    try:
        for key in ordered:
            lock = _lock_for(key)
            await lock.acquire()
            held.append(lock)

        bind = db.get_bind()
        if bind.dialect.name == "postgresql":
            for key in ordered:
                await db.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_id(key)}
                )

        logger.debug("booking_locks_acquired", keys=[":".join(map(str, k)) for k in ordered])
        yield ordered
    finally:
        for lock in reversed(held):
            lock.release()
