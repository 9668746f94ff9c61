"""Read-side copy of entities touched by queued mutations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class MirrorRecord(SQLModel, table=True):
    """Local snapshot of a remote entity together with its sync state."""

    __tablename__ = "mirror_record"

    entity: str = Field(primary_key=True)
    entity_id: str = Field(primary_key=True)
    sync_status: str = Field(default="PENDING", index=True)
    remote_id: Optional[str] = None
    data_json: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)
    synced_at: Optional[datetime] = None


__all__ = ["MirrorRecord"]
