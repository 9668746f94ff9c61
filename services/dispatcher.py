"""Drain loop replaying queued mutations against their remote handlers."""
from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from core.log import get_logger
from core.settings import OUTBOX, OutboxSettings
from datetime_utils import utc_now
from services.backoff import compute_next_attempt
from services.conflicts import describe, is_safe_conflict
from services.errors import ErrorKind
from services.mirror import LocalMirrorUpdater
from services.outbox_queue import OutboxEntry, OutboxQueue
from services.routing import Route, RoutingTable


logger = get_logger("dispatcher")


@dataclass
class DrainResult:
    started_at: datetime
    finished_at: Optional[datetime] = None
    attempted: int = 0
    synced: int = 0
    conflicts: int = 0
    failed: int = 0
    unknown: int = 0
    invalid: int = 0
    # locked by another pass between selection and claim
    skipped: int = 0
    # payload replaced while in flight; resent on the next pass
    superseded: int = 0
    errors: list = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "synced": self.synced,
            "conflicts": self.conflicts,
            "failed": self.failed,
            "unknown": self.unknown,
            "invalid": self.invalid,
            "skipped": self.skipped,
            "superseded": self.superseded,
        }


class Dispatcher:
    def __init__(
        self,
        queue: OutboxQueue,
        routes: RoutingTable,
        *,
        mirror: Optional[LocalMirrorUpdater] = None,
        settings: OutboxSettings = OUTBOX,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.queue = queue
        self.routes = routes
        self.mirror = mirror
        self.settings = settings
        self._clock = clock
        self._draining = False

    @property
    def draining(self) -> bool:
        return self._draining

    def now(self) -> datetime:
        return self._clock()

    async def drain(self) -> Optional[DrainResult]:
        """Run one pass over every eligible item.

        Returns ``None`` without doing anything if a pass is already active.
        """

        if self._draining:
            logger.debug("Drain already in progress, trigger dropped")
            return None
        self._draining = True
        try:
            return await self._drain_pass()
        finally:
            self._draining = False

    async def _drain_pass(self) -> DrainResult:
        result = DrainResult(started_at=self._clock())
        batch = self.queue.eligible(
            result.started_at,
            max_retries=self.settings.max_retries,
            limit=self.settings.batch_limit,
            per_target_ordering=self.settings.per_target_ordering,
        )
        if batch:
            logger.info("Beginning drain pass over %s item(s)", len(batch))
        for entry in batch:
            await self._process(entry, result)
        result.finished_at = self._clock()
        if batch:
            logger.info("Drain pass finished: %s", result.as_dict())
        return result

    async def _process(self, entry: OutboxEntry, result: DrainResult) -> None:
        claimed = self.queue.claim(entry.id, self._clock(), max_retries=self.settings.max_retries)
        if claimed is None:
            result.skipped += 1
            return
        result.attempted += 1
        try:
            if claimed.payload_error is not None:
                self._fail_blocked(claimed, ErrorKind.INVALID_PAYLOAD, claimed.payload_error, result)
                return
            route = self.routes.resolve(claimed.entity, claimed.action)
            if route is None:
                message = f"no handler registered for {claimed.entity}:{claimed.action}"
                self._fail_blocked(claimed, ErrorKind.UNKNOWN_OPERATION, message, result)
                return
            try:
                outcome = await self._invoke(route, claimed)
            except Exception as exc:
                self._handle_failure(claimed, route, exc, result)
                return
            if self.queue.mark_synced(claimed.id, claimed.revision, self._clock()):
                result.synced += 1
                logger.debug("Item %s (%s) synced", claimed.id, claimed.dedupe_key)
                self._reconcile(claimed, route, outcome)
            else:
                result.superseded += 1
                logger.info("Item %s was edited while in flight, resending later", claimed.id)
        finally:
            self.queue.release(claimed.id)

    async def _invoke(self, route: Route, entry: OutboxEntry) -> Any:
        # the dedupe key doubles as the idempotency token for the remote side
        outcome = route.handler(entry.payload, entry.dedupe_key)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _fail_blocked(self, entry: OutboxEntry, kind: ErrorKind, reason: str, result: DrainResult) -> None:
        message = f"{kind.value}: {reason}"
        self.queue.mark_blocked(entry.id, message, kind=kind)
        if kind is ErrorKind.INVALID_PAYLOAD:
            result.invalid += 1
        else:
            result.unknown += 1
        result.errors.append((entry.id, message))
        logger.error("Item %s: %s", entry.id, message)

    def _handle_failure(self, entry: OutboxEntry, route: Route, exc: Exception, result: DrainResult) -> None:
        message = describe(exc)
        now = self._clock()
        if is_safe_conflict(exc):
            if self.queue.mark_synced(entry.id, entry.revision, now, kind=ErrorKind.SAFE_CONFLICT, error=message):
                result.conflicts += 1
                logger.info("Item %s already applied remotely (%s)", entry.id, message)
                self._reconcile(entry, route, None)
            else:
                result.superseded += 1
            return

        attempt = entry.retry_count + 1
        next_at = compute_next_attempt(
            attempt,
            self.settings.base_delay_sec,
            now=now,
            max_delay=self.settings.max_delay_sec,
        )
        exhausted = attempt >= self.settings.max_retries
        kind = ErrorKind.PERMANENTLY_FAILED if exhausted else ErrorKind.TRANSIENT
        if not self.queue.mark_failed(
            entry.id,
            entry.revision,
            retry_count=attempt,
            next_attempt_at=next_at,
            error=message,
            kind=kind,
        ):
            result.superseded += 1
            return
        result.failed += 1
        result.errors.append((entry.id, message))
        if exhausted:
            logger.error("Item %s permanently failed after %s attempts: %s", entry.id, attempt, message)
        else:
            logger.warning("Item %s failed (attempt %s), retry at %s: %s", entry.id, attempt, next_at, message)

    def _reconcile(self, entry: OutboxEntry, route: Route, outcome: Any) -> None:
        if self.mirror is not None:
            self.mirror.reconcile(entry, outcome, route)


__all__ = ["DrainResult", "Dispatcher"]
