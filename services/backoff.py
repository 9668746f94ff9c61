from __future__ import annotations

from datetime import datetime
from typing import Optional

from core.settings import OUTBOX
from datetime_utils import seconds_from, utc_now


def backoff_delay(
    attempt: int,
    base_delay: float = OUTBOX.base_delay_sec,
    max_delay: float = OUTBOX.max_delay_sec,
) -> float:
    """Seconds to wait before ``attempt``; attempts 0 and 1 both get ``base_delay``."""

    exponent = max(0, attempt - 1)
    # cap the exponent before multiplying so huge attempt counts stay finite
    if exponent > 62:
        return float(max_delay)
    return float(min(max_delay, base_delay * (2 ** exponent)))


def compute_next_attempt(
    attempt: int,
    base_delay: float = OUTBOX.base_delay_sec,
    *,
    now: Optional[datetime] = None,
    max_delay: float = OUTBOX.max_delay_sec,
) -> datetime:
    return seconds_from(now or utc_now(), backoff_delay(attempt, base_delay, max_delay))


__all__ = ["backoff_delay", "compute_next_attempt"]
