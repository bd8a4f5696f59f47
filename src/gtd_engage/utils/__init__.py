"""Utility helpers for the engagement services."""

from .datetime_utils import parse_rfc3339_datetime, resolve_timezone, utc_now

__all__ = ["parse_rfc3339_datetime", "resolve_timezone", "utc_now"]
