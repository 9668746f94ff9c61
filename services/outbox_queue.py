from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from core.log import get_logger
from datetime_utils import ensure_utc, utc_now
from models.queue_item import ACTIVE_STATUSES, QueueItem, SyncStatus
from services.dedupe import build_dedupe_key, extract_identifier, tag
from services.errors import ErrorKind
from storage.db import get_session


logger = get_logger("store")

# failures that no automatic retry can fix
BLOCKED_KINDS = (ErrorKind.UNKNOWN_OPERATION.value, ErrorKind.INVALID_PAYLOAD.value)


@dataclass
class OutboxEntry:
    id: int
    entity: str
    action: str
    payload: Any
    dedupe_key: str
    target_id: Optional[str]
    status: str
    retry_count: int
    revision: int
    created_at: datetime
    last_attempt_at: Optional[datetime]
    next_attempt_at: Optional[datetime]
    locked_at: Optional[datetime]
    synced_at: Optional[datetime]
    last_error: Optional[str]
    error_kind: Optional[str]
    # set when the stored payload cannot be decoded
    payload_error: Optional[str] = None


def _to_entry(row: QueueItem) -> OutboxEntry:
    payload_error = None
    try:
        payload = json.loads(row.payload)
    except json.JSONDecodeError as exc:
        payload, payload_error = None, f"stored payload is not valid JSON ({exc})"
    return OutboxEntry(
        id=row.id,
        entity=row.entity,
        action=row.action,
        payload=payload,
        dedupe_key=row.dedupe_key,
        target_id=row.target_id,
        status=row.status,
        retry_count=row.retry_count,
        revision=row.revision,
        created_at=ensure_utc(row.created_at),
        last_attempt_at=ensure_utc(row.last_attempt_at),
        next_attempt_at=ensure_utc(row.next_attempt_at),
        locked_at=ensure_utc(row.locked_at),
        synced_at=ensure_utc(row.synced_at),
        last_error=row.last_error,
        error_kind=row.error_kind,
        payload_error=payload_error,
    )


def _dead_clause(max_retries: int):
    return and_(
        QueueItem.status == SyncStatus.FAILED.value,
        or_(
            QueueItem.retry_count >= max_retries,
            col(QueueItem.error_kind).in_(BLOCKED_KINDS),
        ),
    )


class OutboxQueue:
    """Durable outbox table: coalescing enqueue plus the status transitions."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    # ----- enqueue -----
    def enqueue(self, entity: Any, action: Any, payload: Any, *, now: Optional[datetime] = None) -> OutboxEntry:
        """Persist a mutation, folding it into a pending item with the same dedupe key.

        The row is committed before this returns; database errors propagate.
        """

        entity_tag, action_tag = tag(entity), tag(action)
        key = build_dedupe_key(entity_tag, action_tag, payload)
        now = ensure_utc(now) or utc_now()
        try:
            return self._upsert(entity_tag, action_tag, key, payload, now)
        except IntegrityError:
            # a concurrent writer won the partial unique index; fold into its row
            return self._upsert(entity_tag, action_tag, key, payload, now)

    def _upsert(self, entity: str, action: str, key: str, payload: Any, now: datetime) -> OutboxEntry:
        body = json.dumps(payload if payload is not None else {}, ensure_ascii=False, default=str)
        with self._session_factory() as session:
            record = session.exec(
                select(QueueItem).where(
                    QueueItem.dedupe_key == key,
                    QueueItem.status != SyncStatus.SYNCED.value,
                )
            ).first()
            if record is not None:
                record.payload = body
                record.status = SyncStatus.PENDING.value
                record.retry_count = 0
                record.revision += 1
                record.next_attempt_at = now
                record.last_error = None
                record.error_kind = None
            else:
                record = QueueItem(
                    entity=entity,
                    action=action,
                    payload=body,
                    dedupe_key=key,
                    target_id=extract_identifier(payload),
                    status=SyncStatus.PENDING.value,
                    created_at=now,
                    next_attempt_at=now,
                )
            session.add(record)
            session.commit()
            session.refresh(record)
            if record.revision:
                logger.debug("Coalesced %s into item %s (rev %s)", key, record.id, record.revision)
            else:
                logger.debug("Enqueued %s as item %s", key, record.id)
            return _to_entry(record)

    # ----- selection and locking -----
    def eligible(
        self,
        now: datetime,
        *,
        max_retries: int,
        limit: int = 100,
        per_target_ordering: bool = False,
    ) -> List[OutboxEntry]:
        now = ensure_utc(now)
        with self._session_factory() as session:
            stmt = (
                select(QueueItem)
                .where(
                    col(QueueItem.status).in_(ACTIVE_STATUSES),
                    col(QueueItem.locked_at).is_(None),
                    QueueItem.retry_count < max_retries,
                    col(QueueItem.next_attempt_at).is_not(None),
                    QueueItem.next_attempt_at <= now,
                )
                .order_by(col(QueueItem.created_at).asc(), col(QueueItem.id).asc())
                .limit(limit)
            )
            rows = list(session.exec(stmt))
            if per_target_ordering:
                rows = [row for row in rows if not self._has_live_predecessor(session, row, max_retries)]
            return [_to_entry(row) for row in rows]

    def _has_live_predecessor(self, session: Session, row: QueueItem, max_retries: int) -> bool:
        if row.target_id is None:
            return False
        stmt = select(QueueItem.id).where(
            QueueItem.target_id == row.target_id,
            QueueItem.id != row.id,
            col(QueueItem.status).in_(ACTIVE_STATUSES),
            QueueItem.retry_count < max_retries,
            or_(
                col(QueueItem.error_kind).is_(None),
                col(QueueItem.error_kind).not_in(BLOCKED_KINDS),
            ),
            or_(
                QueueItem.created_at < row.created_at,
                and_(QueueItem.created_at == row.created_at, QueueItem.id < row.id),
            ),
        )
        return session.exec(stmt).first() is not None

    def claim(self, item_id: int, now: datetime, *, max_retries: int) -> Optional[OutboxEntry]:
        """Atomically lock an item for one dispatch attempt.

        Returns ``None`` when another pass holds it or it stopped being eligible.
        """

        now = ensure_utc(now)
        with self._session_factory() as session:
            result = session.exec(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    col(QueueItem.locked_at).is_(None),
                    col(QueueItem.status).in_(ACTIVE_STATUSES),
                    QueueItem.retry_count < max_retries,
                    col(QueueItem.next_attempt_at).is_not(None),
                    QueueItem.next_attempt_at <= now,
                )
                .values(locked_at=now, last_attempt_at=now)
            )
            session.commit()
            if result.rowcount != 1:
                return None
            record = session.get(QueueItem, item_id)
            return _to_entry(record) if record else None

    def release(self, item_id: int) -> None:
        with self._session_factory() as session:
            session.exec(update(QueueItem).where(QueueItem.id == item_id).values(locked_at=None))
            session.commit()

    def release_stale_locks(self, older_than: datetime) -> int:
        with self._session_factory() as session:
            result = session.exec(
                update(QueueItem)
                .where(
                    col(QueueItem.locked_at).is_not(None),
                    QueueItem.locked_at < ensure_utc(older_than),
                )
                .values(locked_at=None)
            )
            session.commit()
            if result.rowcount:
                logger.warning("Released %s stale lock(s)", result.rowcount)
            return result.rowcount

    # ----- outcomes -----
    # Outcome writes only apply to the revision that was claimed; a payload
    # coalesced mid-flight stays PENDING for the next pass.
    def mark_synced(
        self,
        item_id: int,
        revision: int,
        now: datetime,
        *,
        kind: Optional[ErrorKind] = None,
        error: Optional[str] = None,
    ) -> bool:
        with self._session_factory() as session:
            result = session.exec(
                update(QueueItem)
                .where(QueueItem.id == item_id, QueueItem.revision == revision)
                .values(
                    status=SyncStatus.SYNCED.value,
                    synced_at=ensure_utc(now),
                    locked_at=None,
                    last_error=error,
                    error_kind=kind.value if kind else None,
                )
            )
            session.commit()
            return result.rowcount == 1

    def mark_failed(
        self,
        item_id: int,
        revision: int,
        *,
        retry_count: int,
        next_attempt_at: datetime,
        error: str,
        kind: ErrorKind = ErrorKind.TRANSIENT,
    ) -> bool:
        with self._session_factory() as session:
            result = session.exec(
                update(QueueItem)
                .where(QueueItem.id == item_id, QueueItem.revision == revision)
                .values(
                    status=SyncStatus.FAILED.value,
                    retry_count=retry_count,
                    next_attempt_at=ensure_utc(next_attempt_at),
                    locked_at=None,
                    last_error=error[:1000],
                    error_kind=kind.value,
                )
            )
            session.commit()
            return result.rowcount == 1

    def mark_unknown_operation(self, item_id: int, error: str) -> None:
        """Fail an item with no route; it is never rescheduled automatically."""

        self.mark_blocked(item_id, error, kind=ErrorKind.UNKNOWN_OPERATION)

    def mark_blocked(self, item_id: int, error: str, *, kind: ErrorKind) -> None:
        """Fail an item without scheduling a retry; only an operator can revive it."""

        with self._session_factory() as session:
            session.exec(
                update(QueueItem)
                .where(QueueItem.id == item_id)
                .values(
                    status=SyncStatus.FAILED.value,
                    next_attempt_at=None,
                    locked_at=None,
                    last_error=error[:1000],
                    error_kind=kind.value,
                )
            )
            session.commit()

    # ----- inspection -----
    def get(self, item_id: int) -> Optional[OutboxEntry]:
        with self._session_factory() as session:
            record = session.get(QueueItem, item_id)
            return _to_entry(record) if record else None

    def find_active(self, dedupe_key: str) -> Optional[OutboxEntry]:
        with self._session_factory() as session:
            record = session.exec(
                select(QueueItem).where(
                    QueueItem.dedupe_key == dedupe_key,
                    QueueItem.status != SyncStatus.SYNCED.value,
                )
            ).first()
            return _to_entry(record) if record else None

    def all(self) -> List[OutboxEntry]:
        with self._session_factory() as session:
            stmt = select(QueueItem).order_by(col(QueueItem.created_at).asc(), col(QueueItem.id).asc())
            return [_to_entry(row) for row in session.exec(stmt)]

    def count(self) -> int:
        """Number of items not yet confirmed."""

        with self._session_factory() as session:
            stmt = select(func.count()).select_from(QueueItem).where(
                QueueItem.status != SyncStatus.SYNCED.value
            )
            return int(session.exec(stmt).one())

    def stats(self, max_retries: int) -> Dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        with self._session_factory() as session:
            rows = session.exec(
                select(QueueItem.status, func.count()).group_by(QueueItem.status)
            ).all()
            for status, amount in rows:
                counts[status] = int(amount)
            counts["dead"] = int(
                session.exec(select(func.count()).select_from(QueueItem).where(_dead_clause(max_retries))).one()
            )
            counts["locked"] = int(
                session.exec(
                    select(func.count()).select_from(QueueItem).where(col(QueueItem.locked_at).is_not(None))
                ).one()
            )
        return counts

    def dead_items(self, max_retries: int) -> List[OutboxEntry]:
        with self._session_factory() as session:
            stmt = (
                select(QueueItem)
                .where(_dead_clause(max_retries))
                .order_by(col(QueueItem.created_at).asc(), col(QueueItem.id).asc())
            )
            return [_to_entry(row) for row in session.exec(stmt)]

    def reset(self, item_id: int, *, now: Optional[datetime] = None) -> bool:
        """Operator retry-reset: put a failed item back in line."""

        with self._session_factory() as session:
            result = session.exec(
                update(QueueItem)
                .where(QueueItem.id == item_id, QueueItem.status == SyncStatus.FAILED.value)
                .values(
                    status=SyncStatus.PENDING.value,
                    retry_count=0,
                    next_attempt_at=ensure_utc(now) or utc_now(),
                    locked_at=None,
                    last_error=None,
                    error_kind=None,
                )
            )
            session.commit()
            if result.rowcount:
                logger.info("Item %s reset for retry", item_id)
            return result.rowcount == 1

    def discard(self, item_id: int) -> bool:
        with self._session_factory() as session:
            result = session.exec(
                delete(QueueItem).where(
                    QueueItem.id == item_id,
                    QueueItem.status != SyncStatus.SYNCED.value,
                )
            )
            session.commit()
            if result.rowcount:
                logger.info("Item %s discarded", item_id)
            return result.rowcount == 1


__all__ = ["OutboxEntry", "OutboxQueue"]
