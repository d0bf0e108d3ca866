"""
Locale-tolerant value parsing for billing exports and invoices.

Covers the U.S. and Brazilian-Portuguese number and date conventions found in
AWS, Azure and GCP exports. All parsed datetimes are naive UTC so values from
different sources stay comparable.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from dateutil import parser as date_parser

LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
CURRENCY_PREFIX = re.compile(r"^[A-Z]{3}\s*", re.I)
NON_NUMERIC = re.compile(r"[^\d.\-]")

DMY_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
PT_DATE = re.compile(r"(\d{1,2})\s+de\s+(\w+)\.?\s+(?:de\s+)?(\d{4})", re.I)
EN_DATE = re.compile(r"^([A-Za-z]{3})\s+(\d{1,2}),?\s+(\d{4})$")
PERIOD_SPLIT = re.compile(r"\s*[-–]\s*")
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ][\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)?$")
BILLING_PERIOD_RANGE = re.compile(r"(.+?)(?:\s+-\s+|\s*–\s*)(.+)")

PT_MONTHS = {
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6,
    "jul": 7, "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
}
EN_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def parse_number(value: Any) -> Optional[float]:
    """
    Tabular cell parser: commas become decimal points and the leading numeric
    prefix is read ("12,5" -> 12.5, "3.2 USD" -> 3.2). Unparseable -> None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).replace(",", ".").strip()
    match = LEADING_NUMBER.match(text)
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def parse_amount(value: Any) -> Optional[float]:
    """
    Invoice amount parser: strips a leading 3-letter currency code, removes
    literal dots, then turns commas into decimal points.
    "USD 1234,56" -> 1234.56, "R$ 9.629,19" -> 9629.19. Non-finite -> None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = CURRENCY_PREFIX.sub("", str(value).strip())
    text = text.replace(".", "").replace(",", ".")
    text = NON_NUMERIC.sub("", text)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _safe_datetime(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """DD/MM/YYYY is day-first. Anything else goes through the generic parser."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)

    text = str(value).strip()
    dmy = DMY_DATE.match(text)
    if dmy:
        return _safe_datetime(int(dmy.group(3)), int(dmy.group(2)), int(dmy.group(1)))

    try:
        return _to_naive_utc(date_parser.parse(text))
    except (ValueError, OverflowError):
        return None


def parse_localized_date(value: str) -> Optional[datetime]:
    """
    Tries, in order: ISO, English abbreviations ("Dec 1, 2025"), Portuguese
    ("1 de dez. de 2025"), DD/MM/YYYY, then any other generic form.
    """
    if not value:
        return None
    text = value.strip()

    if ISO_DATE.match(text):
        return parse_date(text)

    en = EN_DATE.match(text)
    if en:
        month = EN_MONTHS.get(en.group(1).lower())
        if month is not None:
            return _safe_datetime(int(en.group(3)), month, int(en.group(2)))

    pt = PT_DATE.search(text)
    if pt:
        month = PT_MONTHS.get(pt.group(2).lower()[:3])
        if month is not None:
            return _safe_datetime(int(pt.group(3)), month, int(pt.group(1)))

    dmy = DMY_DATE.match(text)
    if dmy:
        return _safe_datetime(int(dmy.group(3)), int(dmy.group(2)), int(dmy.group(1)))

    return parse_date(text)


def parse_billing_period(start_raw: str, end_raw: str) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Either field may hold a whole range ("Dec 1, 2025 - Dec 31, 2025").
    A dash or en-dash separates the endpoints.
    """
    if start_raw:
        match = BILLING_PERIOD_RANGE.match(start_raw)
        if match:
            start = parse_localized_date(match.group(1).strip())
            end = parse_localized_date(match.group(2).strip())
            if start and end:
                return start, end
            if start:
                return start, parse_date(end_raw)

    if end_raw:
        match = BILLING_PERIOD_RANGE.match(end_raw)
        if match:
            start = parse_localized_date(match.group(1).strip())
            end = parse_localized_date(match.group(2).strip())
            if start and end:
                return start, end

    return parse_date(start_raw), parse_date(end_raw)


def split_period(value: Any) -> Optional[Tuple[str, str]]:
    """'01/12/2025 - 31/12/2025' -> ('01/12/2025', '31/12/2025'); not a range -> None."""
    if not value:
        return None
    text = str(value).strip()
    if ISO_DATE.match(text):
        return None
    parts = PERIOD_SPLIT.split(text)
    if len(parts) >= 2:
        return parts[0], parts[-1]
    return None
