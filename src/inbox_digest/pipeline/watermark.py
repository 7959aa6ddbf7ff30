from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

DEFAULT_LOOKBACK = timedelta(hours=24)


def compute_window_start(
    previous: Optional[datetime],
    *,
    now: datetime,
    lookback: timedelta = DEFAULT_LOOKBACK,
) -> datetime:
    # No overlap buffer: the next fetch starts exactly at the last sync.
    if previous is not None:
        return previous
    return now - lookback


def inbox_query(window_start: datetime) -> str:
    # Gmail "after:" expects seconds since epoch.
    epoch_seconds = max(0, int(window_start.timestamp()))
    return f"in:inbox after:{epoch_seconds}"
