"""Owns the triggers that start drain passes."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional, Set

from core.log import get_logger
from datetime_utils import to_rfc3339_utc
from services.connectivity import ConnectivityMonitor
from services.dispatcher import Dispatcher, DrainResult


logger = get_logger("scheduler")


class SyncScheduler:
    """Starts drain passes on connectivity, on a timer, and on demand.

    Holds the timer task and the connectivity subscription so both can be
    torn down with :meth:`stop`.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        connectivity: ConnectivityMonitor,
        *,
        interval: Optional[float] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.connectivity = connectivity
        self.interval = interval if interval is not None else dispatcher.settings.drain_interval_sec
        self._timer: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: Set[asyncio.Task] = set()
        self._last_sync_at: Optional[datetime] = None
        self._last_result: Optional[DrainResult] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def start(self) -> None:
        if self.running:
            return
        # locks left behind by a crashed process would block those items forever
        stale_after = timedelta(seconds=self.dispatcher.settings.stale_lock_sec)
        self.dispatcher.queue.release_stale_locks(self.dispatcher.now() - stale_after)
        self._unsubscribe = self.connectivity.on_change(self._on_connectivity)
        self._loop = asyncio.get_running_loop()
        self._timer = self._loop.create_task(self._tick_loop())
        logger.info("Sync scheduler started (interval %ss)", self.interval)
        if self.connectivity.is_online():
            self._spawn("startup")

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = [t for t in (self._timer, *self._pending) if t is not None]
        self._timer = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # already reported by _trigger_done
                pass
        self._pending.clear()
        logger.info("Sync scheduler stopped")

    async def trigger(self, reason: str = "manual") -> Optional[DrainResult]:
        if not self.connectivity.is_online():
            logger.debug("Trigger %s ignored while offline", reason)
            return None
        logger.debug("Drain triggered by %s", reason)
        result = await self.dispatcher.drain()
        if result is not None:
            self._last_result = result
            self._last_sync_at = result.finished_at
        return result

    async def sync_now(self) -> Optional[DrainResult]:
        return await self.trigger("manual")

    def _on_connectivity(self, online: bool) -> None:
        if not online or self._loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._spawn("online")
        else:
            # notified from another thread; hop onto the scheduler's loop
            self._loop.call_soon_threadsafe(self._spawn, "online")

    def _spawn(self, reason: str) -> None:
        task = self._loop.create_task(self.trigger(reason))
        self._pending.add(task)
        task.add_done_callback(self._trigger_done)

    def _trigger_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Triggered drain failed", exc_info=exc)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.trigger("timer")
            except Exception:
                logger.exception("Timer drain failed")

    def status(self) -> dict:
        settings = self.dispatcher.settings
        return {
            "online": self.connectivity.is_online(),
            "draining": self.dispatcher.draining,
            "lastSyncAt": to_rfc3339_utc(self._last_sync_at),
            "lastResult": self._last_result.as_dict() if self._last_result else None,
            "queue": self.dispatcher.queue.stats(settings.max_retries),
        }


__all__ = ["SyncScheduler"]
