"""Edit-window policy: one deadline, two questions (editable? production eligible?)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


DEFAULT_EDIT_WINDOW = timedelta(hours=2)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalize to aware UTC; naive values (e.g. read back from SQLite) are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compute_edit_deadline(
    *,
    created_at: datetime,
    is_urgent: bool,
    window: timedelta = DEFAULT_EDIT_WINDOW,
) -> datetime:
    """Urgent orders are locked at creation; normal ones stay editable for `window`."""
    created = as_utc(created_at)
    if is_urgent:
        return created
    return created + window


def is_editable(*, status: str, edit_deadline: datetime, now: datetime) -> bool:
    return status == "new" and as_utc(now) < as_utc(edit_deadline)


def is_production_eligible(*, is_urgent: bool, edit_deadline: datetime, now: datetime) -> bool:
    if is_urgent:
        return True
    return as_utc(now) >= as_utc(edit_deadline)


def remaining_edit_time(*, edit_deadline: datetime, now: datetime) -> timedelta:
    remaining = as_utc(edit_deadline) - as_utc(now)
    if remaining < timedelta(0):
        return timedelta(0)
    return remaining
