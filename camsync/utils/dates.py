"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime

import pendulum

DEFAULT_TZ = "America/Chicago"

# Formats seen in the vendor's "Last Updated" banner.
REPORT_TIMESTAMP_FORMATS = (
    "M/D/YYYY h:mm:ss A",
    "M/D/YYYY h:mm A",
    "M/D/YYYY H:mm:ss",
    "M/D/YYYY H:mm",
    "M/D/YYYY",
    "MMM D, YYYY h:mm A",
    "MMMM D, YYYY h:mm A",
)


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return as_plain_date(now_in_tz())


def parse_iso_date(value: str) -> date:
    return as_plain_date(pendulum.parse(value))


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def parse_report_timestamp(value: str | None) -> pendulum.DateTime | None:
    """Parse the free-text report timestamp, or return None when it is unusable."""
    if not value:
        return None
    text = value.strip().rstrip(".")
    if not text:
        return None
    tz = pendulum.timezone(timezone_name())
    for fmt in REPORT_TIMESTAMP_FORMATS:
        try:
            return pendulum.from_format(text, fmt, tz=tz)
        except ValueError:
            continue
    try:
        parsed = pendulum.parse(text, strict=False, tz=tz)
    except ValueError:
        return None
    if not isinstance(parsed, pendulum.DateTime):
        return None
    return parsed.in_timezone(tz)


def local_date(value: datetime) -> date:
    """Calendar date of an aware or naive (assumed UTC) datetime in the configured timezone."""
    moment = pendulum.instance(value, tz="UTC")
    return as_plain_date(moment.in_timezone(timezone_name()))


def effective_date(last_updated: str | None, extracted_at: datetime) -> date:
    parsed = parse_report_timestamp(last_updated)
    if parsed is not None:
        return as_plain_date(parsed)
    return local_date(extracted_at)


def as_plain_date(value: date) -> date:
    """Plain ``datetime.date``; sqlite3 does not adapt pendulum subclasses."""
    return date(value.year, value.month, value.day)
