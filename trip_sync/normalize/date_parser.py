"""Timestamp parsing for extracted segment records."""

import re
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from dateutil import parser as dateutil_parser

_EMPTY_VALUES = ("null", "none", "not specified", "unknown", "")


def to_naive_utc(dt: datetime) -> datetime:
    """Drop tzinfo, converting aware values to UTC first."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse a timestamp in many formats, returning a naive datetime or None.

    Handles:
      - datetime / date objects
      - YYYY-MM-DDTHH:MM[:SS][Z|+HH:MM]
      - YYYY-MM-DD (midnight)
      - DDMONYYYY (e.g. 20JAN22, 09MAR2022)
      - anything dateutil understands ("26 March 2024 14:05", RFC 2822)
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    if isinstance(raw, date):
        return datetime.combine(raw, time.min)

    raw = str(raw).strip()
    if raw.lower() in _EMPTY_VALUES:
        return None

    # 1. ISO 8601, the shape the extractor is asked for
    try:
        return to_naive_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        pass

    # 2. DDMONYY / DDMONYYYY
    m = re.match(r'^(\d{2})([A-Z]{3})(\d{2,4})$', raw, re.I)
    if m:
        day, mon, year = m.groups()
        year = year if len(year) == 4 else f"20{year}"
        try:
            return datetime.strptime(f"{day}{mon.upper()}{year}", "%d%b%Y")
        except ValueError:
            pass

    # 3. dateutil as general fallback
    try:
        return to_naive_utc(dateutil_parser.parse(raw))
    except (ValueError, OverflowError):
        pass

    return None
