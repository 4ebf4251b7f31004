from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Seam for tests."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision (`...Z`)."""
    return format_iso(utcnow())


def format_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso(value: object) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Returns None for empty or unparseable values; naive values are treated as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        try:
            dt = date_parser.isoparse(s)
        except (ValueError, TypeError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_record_id() -> str:
    """
    Client-generated record key: millisecond timestamp plus a short random suffix.

    The suffix keeps ids distinct when two records are created within the same millisecond.
    """
    return f"{int(time.time() * 1000)}-{os.urandom(4).hex()}"
