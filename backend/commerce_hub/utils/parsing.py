"""Value coercion helpers shared by adapters and webhook ingestors.

Every platform sends timestamps, money and counts in its own shape
(ISO strings with offsets, `{"date": ...}` wrappers, numbers as strings).
These helpers turn them into the naive-UTC datetimes and Decimals stored
in the database.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into naive UTC.

    Accepts a trailing "Z", explicit offsets, "YYYY-MM-DD HH:MM:SS" and
    already-built datetimes. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            # Yampi style "2024-01-15 10:30:00.000000"
            try:
                dt = datetime.strptime(text[:19], "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Coerce numbers and numeric strings to Decimal."""
    if value is None or value == "":
        return Decimal(default)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)
    return number if number.is_finite() else Decimal(default)


def to_int(value: Any, default: int = 0) -> int:
    """Coerce numbers and numeric strings to int (floats are truncated)."""
    if value is None or value == "":
        return default
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, OverflowError):
        return default


def as_mapping(value: Any) -> Dict[str, Any]:
    """Nested payload object, or {} when the platform sent something else."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return str(value)
    return None
