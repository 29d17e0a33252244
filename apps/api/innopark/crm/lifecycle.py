from __future__ import annotations

from datetime import datetime, time, timezone

PENDING = "Pending"
OVERDUE = "Overdue"
COMPLETED = "Completed"


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_status(stored_status: str, due_date: datetime, now: datetime) -> str:
    """Status a task should report at ``now``.

    Only Pending tasks move, and only forward to Overdue; Completed and
    Overdue are returned unchanged.
    """
    if stored_status == PENDING and as_utc(due_date) < as_utc(now):
        return OVERDUE
    return stored_status


def reopen_status(due_date: datetime, now: datetime) -> str:
    return OVERDUE if as_utc(due_date) < as_utc(now) else PENDING


def times_in_order(start_time: time, end_time: time) -> bool:
    return start_time < end_time
