from __future__ import annotations
"""
Advisor — Session Memory Manager
=================================
Process-wide cache of per-user recent-turn windows.

  - At most one MemorySession per user id.
  - Each window holds the last K turns in chronological order; the oldest
    turn is dropped when a new one would exceed K.
  - Expiry is a fixed window from creation (access does not extend it).
    A single periodic sweep evicts expired entries; get() also checks expiry
    lazily, so an expired entry is never handed out between sweeps.
  - Mutations for one user are serialized by a per-user asyncio.Lock. The
    sweep takes the same lock before evicting, so an in-flight append always
    finishes first.

Windows are a continuity optimization only. Nothing here is persisted.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from advisor.records import ConversationTurn

logger = logging.getLogger(__name__)


@dataclass
class MemorySession:
    """Short-term window plus the (optional) long-term handle for one user.

    Downstream code branches on ``long_term is None`` rather than on
    different memory shapes.
    """

    user_id: str
    window: deque
    created_at: float
    expires_at: float
    long_term: Optional[object] = None

    @property
    def capacity(self) -> int:
        return self.window.maxlen

    def turns(self) -> list[ConversationTurn]:
        """Snapshot of the window, oldest first."""
        return list(self.window)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionMemoryCache:
    """Keyed cache of MemorySession objects with get/put/evict and TTL sweep."""

    def __init__(
        self,
        capacity: int = 5,
        ttl_seconds: float = 1800,
        long_term=None,
        clock: Callable[[], float] = time.time,
    ):
        if capacity < 1:
            raise ValueError("Window capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self.long_term = long_term
        self._clock = clock
        self._entries: dict[str, MemorySession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _new_session(self, user_id: str) -> MemorySession:
        now = self._clock()
        return MemorySession(
            user_id=user_id,
            window=deque(maxlen=self.capacity),
            created_at=now,
            expires_at=now + self.ttl_seconds,
            long_term=self.long_term,
        )

    # ===========================================================================
    # Cache primitives
    # ===========================================================================

    def get(self, user_id: str) -> MemorySession | None:
        """Return the live session for a user, or None if absent/expired."""
        session = self._entries.get(user_id)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            return None
        return session

    def put(self, session: MemorySession) -> None:
        self._entries[session.user_id] = session

    def evict(self, user_id: str) -> bool:
        """Drop a user's session. Returns True if one was present."""
        removed = self._entries.pop(user_id, None) is not None
        lock = self._locks.get(user_id)
        if lock is not None and not lock.locked():
            del self._locks[user_id]
        return removed

    # ===========================================================================
    # Operations
    # ===========================================================================

    async def get_or_create(self, user_id: str) -> MemorySession:
        """Return the user's non-expired session, creating a fresh one if needed."""
        async with self._lock_for(user_id):
            session = self.get(user_id)
            if session is None:
                session = self._new_session(user_id)
                self.put(session)
                logger.debug(f"[memory] New session for {user_id}")
            return session

    async def append(self, user_id: str, turn: ConversationTurn) -> None:
        """Append a turn to the user's window, trimming the oldest past capacity.

        If the user has no live session (expired between request and commit),
        one is created so the turn is not lost.
        """
        async with self._lock_for(user_id):
            session = self.get(user_id)
            if session is None:
                logger.info(f"[memory] No live session for {user_id} at append; creating one")
                session = self._new_session(user_id)
                self.put(session)
            session.window.append(turn)

    async def sweep(self) -> int:
        """Evict every expired session. Returns the number evicted."""
        now = self._clock()
        expired = [uid for uid, s in self._entries.items() if s.is_expired(now)]
        evicted = 0
        for user_id in expired:
            async with self._lock_for(user_id):
                session = self._entries.get(user_id)
                # Re-check: an append may have replaced it while we waited
                if session is not None and session.is_expired(self._clock()):
                    del self._entries[user_id]
                    evicted += 1
            lock = self._locks.get(user_id)
            if user_id not in self._entries and lock is not None and not lock.locked():
                del self._locks[user_id]
        if evicted:
            logger.info(f"[memory] Swept {evicted} expired session(s), {len(self._entries)} live")
        return evicted

    # ===========================================================================
    # Background sweeper
    # ===========================================================================

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"[memory] Sweep failed: {e}")

    def start_sweeper(self, interval: float) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
