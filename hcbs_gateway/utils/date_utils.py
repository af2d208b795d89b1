"""Date parsing and formatting utilities"""

from datetime import date, datetime
from typing import Optional, Union

# Tried in order; ISO first so canonical input never hits the ambiguous US formats
DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%Y/%m/%d")


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse a date in any supported layout; returns None when it cannot be read"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    # Full ISO timestamps, e.g. 2024-01-15T10:30:00Z
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: Union[date, datetime]) -> str:
    """Canonical YYYY-MM-DD"""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Reformat to YYYY-MM-DD when parseable, otherwise return the input unchanged"""
    parsed = parse_date(value)
    return format_date(parsed) if parsed else value


def to_edi_date(value: Optional[str]) -> str:
    """YYYY-MM-DD (or any parseable date) to the X12 CCYYMMDD form"""
    parsed = parse_date(value)
    return parsed.strftime("%Y%m%d") if parsed else ""


def from_edi_date(value: str) -> str:
    """X12 CCYYMMDD to YYYY-MM-DD; other lengths are returned as-is"""
    value = (value or "").strip()
    if len(value) == 8 and value.isdigit():
        return f"{value[0:4]}-{value[4:6]}-{value[6:8]}"
    return value


def compact_timestamp(moment: datetime) -> str:
    """YYYYMMDDHHMMSS, used in generated file names and identifiers"""
    return moment.strftime("%Y%m%d%H%M%S")
