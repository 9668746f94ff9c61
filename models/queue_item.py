"""SQLModel table for queued outbound mutations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    FAILED = "FAILED"
    SYNCED = "SYNCED"


# statuses a drain pass may still pick up
ACTIVE_STATUSES = (SyncStatus.PENDING.value, SyncStatus.FAILED.value)


class QueueItem(SQLModel, table=True):
    __tablename__ = "outbox_item"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity: str = Field(index=True)
    action: str
    payload: str
    dedupe_key: str = Field(index=True)
    target_id: Optional[str] = Field(default=None, index=True)
    status: str = Field(default=SyncStatus.PENDING.value, index=True)
    retry_count: int = Field(default=0)
    revision: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = Field(default_factory=utc_now, index=True)
    locked_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None
    last_error: Optional[str] = None
    error_kind: Optional[str] = None


__all__ = ["ACTIVE_STATUSES", "QueueItem", "SyncStatus"]
