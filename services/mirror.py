"""Best-effort reconciliation of the local read-side copy after a sync."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from sqlmodel import Session

from core.log import get_logger
from core.settings import OUTBOX
from datetime_utils import ensure_utc, utc_now
from models.mirror import MirrorRecord
from models.queue_item import SyncStatus
from services.dedupe import tag
from services.routing import Route
from storage.db import get_session


logger = get_logger("mirror")

# hook(entry, outcome) where outcome is whatever the remote handler returned
MirrorHook = Callable[[Any, Any], None]


class MirrorStore:
    """Small wrapper around the ``mirror_record`` table."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def get(self, entity: Any, entity_id: str) -> Optional[MirrorRecord]:
        with self._session_factory() as session:
            return session.get(MirrorRecord, (tag(entity), str(entity_id)))

    def upsert(
        self,
        entity: Any,
        entity_id: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        sync_status: str = SyncStatus.PENDING.value,
        now: Optional[datetime] = None,
    ) -> MirrorRecord:
        timestamp = ensure_utc(now) or utc_now()
        with self._session_factory() as session:
            key = (tag(entity), str(entity_id))
            row = session.get(MirrorRecord, key)
            if row is None:
                row = MirrorRecord(entity=key[0], entity_id=key[1])
            if data is not None:
                row.data_json = json.dumps(data, ensure_ascii=False, sort_keys=True, default=str)
            row.sync_status = sync_status
            row.updated_at = timestamp
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def mark_synced(
        self,
        entity: Any,
        entity_id: str,
        *,
        remote_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MirrorRecord:
        timestamp = ensure_utc(now) or utc_now()
        with self._session_factory() as session:
            key = (tag(entity), str(entity_id))
            row = session.get(MirrorRecord, key)
            if row is None:
                row = MirrorRecord(entity=key[0], entity_id=key[1])
            row.sync_status = SyncStatus.SYNCED.value
            if remote_id is not None:
                row.remote_id = remote_id
            row.synced_at = timestamp
            row.updated_at = timestamp
            session.add(row)
            session.commit()
            session.refresh(row)
            return row


def _remote_id(outcome: Any) -> Optional[str]:
    if isinstance(outcome, Mapping):
        value = outcome.get("id")
    else:
        value = getattr(outcome, "id", None)
    return None if value is None else str(value)


class LocalMirrorUpdater:
    def __init__(
        self,
        store: Optional[MirrorStore] = None,
        *,
        actions: Iterable[str] = OUTBOX.mirror_actions,
    ) -> None:
        self.store = store or MirrorStore()
        self._actions = {tag(action) for action in actions}
        self._hooks: Dict[Tuple[str, str], MirrorHook] = {}

    def register(self, entity: Any, action: Any, hook: MirrorHook) -> None:
        self._hooks[(tag(entity), tag(action))] = hook

    def _mark_synced(self, entry, outcome, route: Optional[Route]) -> None:
        # the route's id field names the mirror row; target_id is the fallback
        entity_id = route.remote_id(entry.payload) if route is not None else None
        if entity_id is None:
            entity_id = entry.target_id
        if entity_id is None:
            return
        self.store.mark_synced(entry.entity, entity_id, remote_id=_remote_id(outcome))

    def reconcile(self, entry, outcome: Any = None, route: Optional[Route] = None) -> bool:
        """Apply the mirror hook for ``entry``; failures are logged, never raised."""

        hook = self._hooks.get((entry.entity, entry.action))
        if hook is None and entry.action not in self._actions:
            return False
        try:
            if hook is not None:
                hook(entry, outcome)
            else:
                self._mark_synced(entry, outcome, route)
        except Exception:
            logger.warning("Mirror update failed for %s", entry.dedupe_key, exc_info=True)
            return False
        return True


__all__ = ["LocalMirrorUpdater", "MirrorHook", "MirrorStore"]
