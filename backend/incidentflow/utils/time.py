"""Time Utilities - UTC timestamps, SLA deadlines and formatting"""
from datetime import datetime, timezone, timedelta
from typing import Callable, Optional
from dateutil import parser as date_parser


# A clock is any zero-argument callable returning an aware UTC datetime
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def calculate_sla_deadline(start_time: datetime, sla_hours: Optional[int]) -> Optional[datetime]:
    """
    Calculate an SLA deadline from a start time and a state's SLA hours

    Returns None when the state declares no (or a non-positive) SLA.
    """
    if not sla_hours or sla_hours <= 0:
        return None
    return start_time + timedelta(hours=sla_hours)


def is_overdue(due_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check if due datetime has passed

    Args:
        due_at: Due datetime or None
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if overdue, False otherwise
    """
    if due_at is None:
        return False
    return ensure_utc(now or utc_now()) > ensure_utc(due_at)
