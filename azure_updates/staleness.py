"""
Data staleness checks.
Decides whether the local mirror needs a refresh from the sync checkpoint.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import SyncCheckpoint, SyncStatus, parse_timestamp

DEFAULT_THRESHOLD_HOURS = 24


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def is_stale(
    checkpoint: Optional[SyncCheckpoint],
    threshold_hours: float = DEFAULT_THRESHOLD_HOURS,
    now: Optional[datetime] = None
) -> bool:
    """
    Check if local data needs a refresh.

    - never synced: stale
    - last sync failed: stale (retry at next opportunity)
    - sync in progress: not stale (don't start a second one)
    - last sync succeeded: stale once threshold_hours have elapsed

    Args:
        checkpoint: Current sync checkpoint, None if never synced
        threshold_hours: Age after which data is stale
        now: Reference time (defaults to current UTC time)

    Returns:
        True if a sync is due
    """
    if checkpoint is None:
        return True

    if checkpoint.sync_status == SyncStatus.FAILED:
        return True

    if checkpoint.sync_status == SyncStatus.IN_PROGRESS:
        return False

    if checkpoint.never_synced:
        return True

    elapsed = _hours_between(parse_timestamp(checkpoint.last_sync), _now(now))
    return elapsed >= threshold_hours


def hours_since_sync(
    checkpoint: Optional[SyncCheckpoint],
    now: Optional[datetime] = None
) -> Optional[float]:
    """
    Hours since the last successful sync, rounded to one decimal.

    Returns:
        Hours, or None if never synced
    """
    if checkpoint is None or checkpoint.never_synced:
        return None

    elapsed = _hours_between(parse_timestamp(checkpoint.last_sync), _now(now))
    return round(elapsed, 1)


def _format_time_ago(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'} ago"


def freshness_message(
    checkpoint: Optional[SyncCheckpoint],
    now: Optional[datetime] = None
) -> str:
    """Human-readable description of data freshness."""
    if checkpoint is None:
        return "Never synced"
    if checkpoint.sync_status == SyncStatus.IN_PROGRESS:
        return "Sync in progress"
    if checkpoint.sync_status == SyncStatus.FAILED:
        return f"Sync failed: {checkpoint.error_message or 'Unknown error'}"

    if checkpoint.never_synced:
        return "Never synced"

    hours = _hours_between(parse_timestamp(checkpoint.last_sync), _now(now))
    if hours < 1:
        return _format_time_ago(round(hours * 60), "minute")
    if hours < 24:
        return _format_time_ago(round(hours), "hour")
    return _format_time_ago(round(hours / 24), "day")


def next_sync_time(
    checkpoint: Optional[SyncCheckpoint],
    threshold_hours: float = DEFAULT_THRESHOLD_HOURS
) -> Optional[datetime]:
    """
    When the data next becomes stale.

    Only known after a successful sync.

    Returns:
        Aware datetime, or None
    """
    if checkpoint is None or checkpoint.sync_status != SyncStatus.SUCCESS:
        return None
    if checkpoint.never_synced:
        return None

    return parse_timestamp(checkpoint.last_sync) + timedelta(hours=threshold_hours)
