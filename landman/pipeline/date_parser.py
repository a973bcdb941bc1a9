"""
Lenient recording-date parser for portal and uploaded search results.
County portals in the US print dates month-first ("01/15/2020",
"Jan 15, 2020"); uploads usually carry ISO dates.
"""

import re
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as dateutil_parser

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_recording_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Parse a recording date. Returns None for empty or unreadable input
    rather than raising, so one bad row never rejects a whole ingest.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    if ISO_DATE.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    try:
        return dateutil_parser.parse(text, dayfirst=False).date()
    except (ValueError, OverflowError):
        return None
