"""ORM models exposed by the outbox engine."""
from .mirror import MirrorRecord
from .queue_item import ACTIVE_STATUSES, QueueItem, SyncStatus

__all__ = ["ACTIVE_STATUSES", "MirrorRecord", "QueueItem", "SyncStatus"]
