"""In-memory conversation sessions keyed by (user, channel)."""

from __future__ import annotations

import asyncio
import heapq
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ccbot.providers.base import ProviderId

DEFAULT_SESSION_TIMEOUT = 30.0
# Extra time the sweep waits past the nominal expiry before reclaiming.
SWEEP_GRACE = 1.0


@dataclass
class Session:
    """
    A live conversation between one user and the bot in one channel.

    While a session is active the user can keep talking without the trigger
    prefix.
    """
    provider: ProviderId
    start_time: float
    last_activity: float
    notified: bool = False  # Session-start marker already shown
    is_new: bool = True


SessionKey = tuple[str, str]


class SessionManager:
    """
    Tracks active sessions with a sliding inactivity timeout.

    Expired sessions are removed lazily on lookup and by ``sweep()``, which
    drains a min-heap of scheduled expiries. The heap may hold stale entries
    for sessions that were refreshed since; ``sweep`` re-checks the live
    session before deleting it.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_SESSION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = float(timeout)
        self._clock = clock
        self._sessions: dict[SessionKey, Session] = {}
        self._expiries: list[tuple[float, SessionKey]] = []

    def __len__(self) -> int:
        return len(self._sessions)

    def _expired(self, session: Session, now: float) -> bool:
        return now - session.last_activity > self.timeout

    def is_active(self, user_id: str, channel_id: str) -> bool:
        """Return True if the user has a live session in the channel."""
        key = (user_id, channel_id)
        session = self._sessions.get(key)
        if session is None:
            return False
        if self._expired(session, self._clock()):
            del self._sessions[key]
            return False
        return True

    def peek(self, user_id: str, channel_id: str) -> Session | None:
        """Return the session without touching it (None if absent or expired)."""
        if not self.is_active(user_id, channel_id):
            return None
        return self._sessions.get((user_id, channel_id))

    def touch(
        self,
        user_id: str,
        channel_id: str,
        force_new: bool = False,
        provider: ProviderId = ProviderId.PRIMARY,
    ) -> Session:
        """Start a session or refresh the existing one.

        The provider is overwritten on refresh too, so the most recent
        trigger always decides which backend answers.
        """
        key = (user_id, channel_id)
        now = self._clock()
        session = self._sessions.get(key)

        if force_new or session is None or self._expired(session, now):
            session = Session(provider=provider, start_time=now, last_activity=now)
            self._sessions[key] = session
        else:
            session.last_activity = now
            session.provider = provider
            session.is_new = False

        heapq.heappush(self._expiries, (now + self.timeout + SWEEP_GRACE, key))
        return session

    def mark_notified(self, session: Session) -> None:
        """Record that ``session`` showed its start marker.

        Takes the session itself rather than its key: a provider switch may
        have replaced the live session for the key in the meantime.
        """
        session.notified = True

    def sweep(self) -> int:
        """Drop sessions whose scheduled expiry has passed. Returns count removed."""
        now = self._clock()
        removed = 0
        while self._expiries and self._expiries[0][0] <= now:
            _, key = heapq.heappop(self._expiries)
            session = self._sessions.get(key)
            if session is not None and self._expired(session, now):
                del self._sessions[key]
                removed += 1
                logger.debug(f"Session timed out for user {key[0]} in channel {key[1]}")
        return removed

    async def run_sweeper(self, interval: float = 5.0) -> None:
        """Run ``sweep`` forever; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")
