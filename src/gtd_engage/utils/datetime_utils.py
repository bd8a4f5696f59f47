"""Datetime parsing and timezone normalization utilities.

Everything that crosses the remote-store boundary is an RFC3339 string; the
rest of the package works with timezone-aware datetimes in UTC.
"""

from __future__ import annotations

import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as _dateutil_parser


def utc_now() -> datetime.datetime:
    """Return the current moment as an aware UTC datetime."""

    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def parse_rfc3339_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """Best-effort conversion of an RFC3339 string to an aware datetime in UTC.

    Date-only strings (``YYYY-MM-DD``) resolve to UTC midnight.

    Args:
        value: RFC3339 or ISO 8601 datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if not value:
        return None

    try:
        parsed = _dateutil_parser.isoparse(value)
    except (ValueError, OverflowError):
        try:
            parsed = _dateutil_parser.parse(value)
        except (ValueError, OverflowError):
            return None

    return ensure_utc(parsed)


def coerce_datetime(value: Any) -> Any:
    """Pre-validation hook shared by model timestamp fields.

    Strings are parsed with :func:`parse_rfc3339_datetime`; unparseable strings
    are passed through so the model reports a validation error.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return ensure_utc(value)
    if isinstance(value, datetime.date):
        return datetime.datetime(
            value.year, value.month, value.day, tzinfo=datetime.timezone.utc
        )
    if isinstance(value, str):
        parsed = parse_rfc3339_datetime(value)
        return parsed if parsed is not None else value
    return value


def normalize_rfc3339(dt_value: datetime.datetime) -> str:
    """Return an RFC3339 string in canonical UTC form with 'Z' suffix.

    Args:
        dt_value: Datetime to normalize

    Returns:
        RFC3339 string in UTC ending with 'Z' (e.g., '2025-11-17T13:42:00Z')
    """
    normalized = ensure_utc(dt_value).isoformat()
    if normalized.endswith("+00:00"):
        normalized = normalized[:-6] + "Z"
    return normalized


def resolve_timezone(
    timezone_name: Optional[str],
    fallback: Optional[datetime.tzinfo] = None,
) -> datetime.tzinfo:
    """Resolve ``timezone_name`` to a tzinfo, falling back to UTC."""

    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            pass

    return fallback or datetime.timezone.utc


def days_between(
    earlier: datetime.datetime, later: datetime.datetime
) -> float:
    """Return the (fractional) number of days from ``earlier`` to ``later``."""

    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 86400.0


__all__ = [
    "coerce_datetime",
    "days_between",
    "ensure_utc",
    "normalize_rfc3339",
    "parse_rfc3339_datetime",
    "resolve_timezone",
    "utc_now",
]
