"""Human-readable labels for timestamps shown next to travelers."""
from datetime import datetime, timezone
from typing import Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite returns them without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_last_active(last_active: Optional[datetime], now: Optional[datetime] = None) -> str:
    if last_active is None:
        return "Unknown"

    now = as_utc(now) or datetime.now(timezone.utc)
    diff_mins = int((now - as_utc(last_active)).total_seconds() // 60)

    if diff_mins < 1:
        return "Just now"
    if diff_mins < 60:
        return f"{diff_mins} min ago"

    diff_hours = diff_mins // 60
    if diff_hours < 24:
        return f"{diff_hours} hour{'s' if diff_hours > 1 else ''} ago"

    diff_days = diff_hours // 24
    return f"{diff_days} day{'s' if diff_days > 1 else ''} ago"
