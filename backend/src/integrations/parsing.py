"""Small parsing helpers shared by provider mappings."""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Parse a provider amount (string, int or float) into Decimal.

    Floats go through str() so 12.99 stays 12.99. Unparseable values give default.
    """
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 / RFC 3339 timestamp, returning an aware datetime or None.

    Naive values are taken as UTC.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_rfc3339(value: datetime) -> str:
    """Format an aware datetime as RFC 3339 in UTC with a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_amount(value: Any) -> str:
    """Two-decimal string for price payloads."""
    return f"{to_decimal(value):.2f}"


def latest_timestamp(current: str, candidate: Optional[str]) -> str:
    """Return whichever ISO timestamp string is later, comparing parsed values."""
    if not candidate:
        return current
    if not current:
        return candidate
    current_dt = parse_datetime(current)
    candidate_dt = parse_datetime(candidate)
    if candidate_dt is None:
        return current
    if current_dt is None or candidate_dt > current_dt:
        return candidate
    return current
