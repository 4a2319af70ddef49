"""
Key rotation policy.

Pure functions answering whether a key is old enough to rotate. Nothing here
triggers a rotation; callers and operators act on the answer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_ROTATION_DAYS = 90


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def key_age_days(key_created_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days since key creation, truncated."""
    current = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    elapsed = current - _as_utc(key_created_at)
    return elapsed // timedelta(days=1)


def is_rotation_due(
    key_created_at: datetime,
    now: Optional[datetime] = None,
    threshold_days: int = DEFAULT_ROTATION_DAYS,
) -> bool:
    """
    Check whether a key has reached its rotation age.

    Args:
        key_created_at: Key creation time
        now: Reference time (defaults to current UTC time)
        threshold_days: Rotation threshold in days

    Returns:
        True when the key is at least threshold_days whole days old
    """
    if threshold_days <= 0:
        raise ValueError(f"threshold_days must be positive, got {threshold_days}")
    return key_age_days(key_created_at, now) >= threshold_days


def next_rotation_at(
    key_created_at: datetime, threshold_days: int = DEFAULT_ROTATION_DAYS
) -> datetime:
    """Time at which the key becomes due for rotation (UTC)."""
    if threshold_days <= 0:
        raise ValueError(f"threshold_days must be positive, got {threshold_days}")
    return _as_utc(key_created_at) + timedelta(days=threshold_days)
