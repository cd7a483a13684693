"""Per-command, per-user cooldown tracking.

Each command owns a bucket of user id -> expiry instant. Records are
evicted by an asyncio timer once they expire, so memory is bounded to
the users currently on cooldown. Lookups also treat expired records as
absent, which keeps the tracker correct when no event loop is running.

Concurrent events share this state with last-write-wins semantics:
two near-simultaneous invocations can both pass the cooldown guard
before either records its expiry.
"""

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger("commandwire.cooldowns")

DEFAULT_COOLDOWN_SECONDS = 1


def log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from fire-and-forget tasks instead of losing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("eviction_task_failed", error=str(exc), exc_type=type(exc).__name__)


class CooldownTracker:
    """Tracks when each (command, user) pair may invoke again.

    Args:
        clock: Monotonic time source used when callers omit ``now``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._buckets: Dict[str, Dict[str, float]] = {}
        self._timers: Dict[Tuple[str, str], asyncio.Task] = {}

    def record(
        self,
        command: str,
        user: str,
        now: Optional[float] = None,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
    ) -> float:
        """Start (or restart) the cooldown for ``user`` on ``command``.

        Overwrites any existing record and replaces its eviction timer.

        Returns:
            The expiry instant.
        """
        if now is None:
            now = self.clock()
        expires_at = now + cooldown_seconds
        self._buckets.setdefault(command, {})[user] = expires_at
        self._schedule_eviction(command, user, cooldown_seconds, expires_at)
        logger.debug(
            "cooldown_recorded",
            command=command,
            user=user,
            cooldown_seconds=cooldown_seconds,
        )
        return expires_at

    def remaining(self, command: str, user: str, now: Optional[float] = None) -> Optional[float]:
        """Seconds left on the cooldown, or None if not on cooldown."""
        if now is None:
            now = self.clock()
        bucket = self._buckets.get(command)
        if not bucket:
            return None
        expires_at = bucket.get(user)
        if expires_at is None:
            return None
        left = expires_at - now
        if left <= 0:
            self._evict(command, user, expires_at)
            return None
        return left

    def clear(self, command: Optional[str] = None, user: Optional[str] = None) -> int:
        """Drop records matching the filters. Returns how many were dropped."""
        dropped = 0
        for cmd in list(self._buckets):
            if command is not None and cmd != command:
                continue
            bucket = self._buckets[cmd]
            for uid in list(bucket):
                if user is not None and uid != user:
                    continue
                timer = self._timers.pop((cmd, uid), None)
                if timer and not timer.done():
                    timer.cancel()
                self._evict(cmd, uid, bucket[uid])
                dropped += 1
        return dropped

    def active_count(self) -> int:
        """Number of stored records, including ones not yet evicted."""
        return sum(len(bucket) for bucket in self._buckets.values())

    def cancel_timers(self) -> None:
        """Cancel all pending eviction timers (for shutdown)."""
        for task in self._timers.values():
            if not task.done():
                task.cancel()
        self._timers.clear()

    def _schedule_eviction(
        self, command: str, user: str, delay_seconds: float, expires_at: float
    ) -> None:
        key = (command, user)
        previous = self._timers.pop(key, None)
        if previous and not previous.done():
            previous.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No running loop; lookups purge lazily

        task = loop.create_task(self._evict_after(command, user, delay_seconds, expires_at))
        task.add_done_callback(log_task_exception)
        self._timers[key] = task

    async def _evict_after(
        self, command: str, user: str, delay_seconds: float, expires_at: float
    ) -> None:
        try:
            await asyncio.sleep(delay_seconds)
        except asyncio.CancelledError:
            return
        key = (command, user)
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        self._evict(command, user, expires_at)

    def _evict(self, command: str, user: str, expires_at: float) -> None:
        """Remove a record only if it still holds ``expires_at``."""
        bucket = self._buckets.get(command)
        if bucket is None or bucket.get(user) != expires_at:
            return
        del bucket[user]
        if not bucket:
            del self._buckets[command]
        logger.debug("cooldown_evicted", command=command, user=user)
