from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from core.log import get_logger
from core.settings import OUTBOX, OutboxSettings
from datetime_utils import utc_now
from services.connectivity import ConnectivityMonitor
from services.dispatcher import Dispatcher, DrainResult
from services.mirror import LocalMirrorUpdater
from services.outbox_queue import OutboxEntry, OutboxQueue
from services.routing import Operation, RoutingTable
from services.scheduler import SyncScheduler
from storage.db import init_db


logger = get_logger("engine")


class OutboxEngine:
    """Wires queue, dispatcher and scheduler together for application code."""

    def __init__(
        self,
        routes: RoutingTable,
        connectivity: Optional[ConnectivityMonitor] = None,
        *,
        queue: Optional[OutboxQueue] = None,
        mirror: Optional[LocalMirrorUpdater] = None,
        declared_operations: Optional[Iterable[Operation]] = None,
        settings: OutboxSettings = OUTBOX,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if declared_operations is not None:
            routes.validate(declared_operations)
        self.routes = routes
        self.settings = settings
        if queue is None:
            # default queue lives in the data directory database
            init_db()
            queue = OutboxQueue()
        self.queue = queue
        self.connectivity = connectivity or ConnectivityMonitor(online=True)
        self.dispatcher = Dispatcher(self.queue, routes, mirror=mirror, settings=settings, clock=clock)
        self.scheduler = SyncScheduler(self.dispatcher, self.connectivity)

    # ------------------------------------------------------------------
    # Producer side
    def enqueue(self, entity: Any, action: Any, payload: Any) -> OutboxEntry:
        if self.routes.resolve(entity, action) is None:
            logger.warning("Enqueued %s with no registered handler", Operation.of(entity, action))
        return self.queue.enqueue(entity, action, payload, now=self.dispatcher.now())

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def sync_now(self) -> Optional[DrainResult]:
        return await self.scheduler.sync_now()

    def status(self) -> dict:
        return self.scheduler.status()

    # ------------------------------------------------------------------
    # Operator hooks
    def dead_items(self) -> List[OutboxEntry]:
        return self.queue.dead_items(self.settings.max_retries)

    def retry(self, item_id: int) -> bool:
        return self.queue.reset(item_id, now=self.dispatcher.now())

    def discard(self, item_id: int) -> bool:
        return self.queue.discard(item_id)


__all__ = ["OutboxEngine"]
