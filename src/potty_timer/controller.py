"""
Timer Lifecycle Controller

The only place timer transitions are implemented. Each transition reads the
stored record, computes the next record and asks the store to persist it.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from .errors import NotFound
from .models import Timer, TimerStatus, validate_duration
from .reconcile import compute_remaining, is_due, now_ms
from .store import TimerStore

logger = logging.getLogger(__name__)

# A transition step receives the freshly read record and the current time (ms)
# and returns the fields to change, or None to leave the record as it is.
Step = Callable[[Timer, int], dict[str, Any] | None]


class TimerController:
    """Validated state transitions over a TimerStore."""

    def __init__(self, store: TimerStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self._clock = clock
        # Serializes read-compute-write per timer id within this process.
        # Entries live only while some task holds or waits on them.
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _locked(self, timer_id: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(timer_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[timer_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[timer_id]
            if users == 1:
                del self._locks[timer_id]
            else:
                self._locks[timer_id] = (lock, users - 1)

    async def _transition(self, timer_id: str, step: Step) -> Timer:
        async with self._locked(timer_id):
            current = await self.store.get(timer_id)
            changes = step(current, self._clock())
            if changes is None:
                return current
            nxt = current.model_copy(update=changes)
            return await self.store.update(timer_id, nxt.mutable_fields())

    # ============================================================
    # TRANSITIONS
    # ============================================================

    async def create_timer(self, duration: Any) -> Timer:
        seconds = validate_duration(duration)
        timer = await self.store.create(
            {
                "duration": seconds,
                "start_time": self._clock(),
                "is_active": False,
                "remaining_time": seconds,
                "is_notification_mode": False,
            }
        )
        logger.info("Created timer %s (%ds)", timer.id, seconds)
        return timer

    async def start(self, timer_id: str) -> Timer:
        def step(timer: Timer, now: int) -> dict[str, Any]:
            return {"is_active": True, "start_time": now, "is_notification_mode": False}

        timer = await self._transition(timer_id, step)
        logger.debug("Started timer %s", timer_id)
        return timer

    async def pause(self, timer_id: str) -> Timer:
        """Freeze the live remaining time. Pausing an inactive timer is a no-op."""

        def step(timer: Timer, now: int) -> dict[str, Any] | None:
            if not timer.is_active:
                return None
            return {"is_active": False, "remaining_time": compute_remaining(timer, now)}

        timer = await self._transition(timer_id, step)
        logger.debug("Paused timer %s at %ds", timer_id, timer.remaining_time)
        return timer

    async def reset(self, timer_id: str) -> Timer:
        def step(timer: Timer, now: int) -> dict[str, Any]:
            return {
                "is_active": False,
                "start_time": now,
                "remaining_time": timer.duration,
                "is_notification_mode": False,
            }

        timer = await self._transition(timer_id, step)
        logger.debug("Reset timer %s", timer_id)
        return timer

    async def change_duration(self, timer_id: str, duration: Any) -> Timer:
        """Set a new duration. A running timer restarts its count from now."""
        seconds = validate_duration(duration)

        def step(timer: Timer, now: int) -> dict[str, Any]:
            changes: dict[str, Any] = {"duration": seconds, "remaining_time": seconds}
            if timer.is_active:
                changes["start_time"] = now
            return changes

        timer = await self._transition(timer_id, step)
        logger.debug("Timer %s duration set to %ds", timer_id, seconds)
        return timer

    async def expire_check(self, timer_id: str) -> Timer:
        """Move a running timer that reached zero into notification mode.

        Only applies while the stored record is still running and due, so
        repeated or late calls leave the record untouched.
        """
        expired = False

        def step(timer: Timer, now: int) -> dict[str, Any] | None:
            nonlocal expired
            if not is_due(timer, now):
                return None
            expired = True
            return {"is_active": False, "remaining_time": 0, "is_notification_mode": True}

        timer = await self._transition(timer_id, step)
        if expired:
            logger.info("Timer %s expired", timer_id)
        return timer

    async def dismiss_alert(self, timer_id: str) -> Timer:
        def step(timer: Timer, now: int) -> dict[str, Any] | None:
            if not timer.is_notification_mode:
                return None
            return {"is_active": False, "is_notification_mode": False}

        return await self._transition(timer_id, step)

    async def generic_update(self, timer_id: str, fields: dict[str, Any]) -> Timer:
        """Merge arbitrary mutable fields. No invariant checks; admin use only."""
        async with self._locked(timer_id):
            timer = await self.store.update(timer_id, fields)
        logger.debug("Updated timer %s fields %s", timer_id, sorted(fields))
        return timer

    async def delete_timer(self, timer_id: str) -> None:
        async with self._locked(timer_id):
            await self.store.delete(timer_id)
        logger.info("Deleted timer %s", timer_id)

    async def clear_all(self) -> int:
        return await self.store.clear_all()

    # ============================================================
    # READS
    # ============================================================

    async def _reconcile(self, timer: Timer) -> Timer:
        """Return ``timer`` with its live remaining time, expiring it if due."""
        now = self._clock()
        if is_due(timer, now):
            timer = await self.expire_check(timer.id)
        if timer.is_active:
            return timer.model_copy(update={"remaining_time": compute_remaining(timer, now)})
        return timer

    async def get_timer(self, timer_id: str) -> Timer:
        return await self._reconcile(await self.store.get(timer_id))

    async def current_timer(self) -> Timer:
        return await self._reconcile(await self.store.get_current())

    async def list_timers(self, status: TimerStatus | None = None) -> list[Timer]:
        timers = []
        for stored in await self.store.list_all():
            try:
                timer = await self._reconcile(stored)
            except NotFound:
                # deleted between the listing and its expiry write
                continue
            if status is None or timer.status == status:
                timers.append(timer)
        return timers

    async def expire_due(self) -> list[Timer]:
        """Expire every running timer that has reached zero."""
        expired = []
        now = self._clock()
        for timer in await self.store.list_active():
            if not is_due(timer, now):
                continue
            try:
                result = await self.expire_check(timer.id)
            except NotFound:
                continue
            if result.is_notification_mode and not result.is_active:
                expired.append(result)
        return expired
