"""
member_atlas/reports/formatting.py — Display helpers shared by every surface.

Missing values render as "N/A" (names, contacts, dates) or "0" (numbers),
never as "None".
"""

from datetime import date, datetime
from typing import Any, Optional

from member_atlas.metrics.leaderboards import resolve_display_name
from member_atlas.models import MemberRecord

NOT_AVAILABLE = "N/A"

_KB = 1024
_MB = 1024 * 1024
_GB = 1024 * 1024 * 1024


def format_number(value: Any) -> str:
    """Thousands-separated number; None, NaN and non-numbers render as '0'.

    Examples:
        >>> format_number(1234567)
        '1,234,567'
        >>> format_number(None)
        '0'
        >>> format_number(1234.5)
        '1,234.5'
    """
    if value is None or isinstance(value, bool):
        return "0"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0"
    if number != number:  # NaN
        return "0"
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,.3f}".rstrip("0").rstrip(".")


def format_bytes(count: float) -> str:
    """Human-readable byte count with two decimals above 1 KB.

    Examples:
        >>> format_bytes(512)
        '512 bytes'
        >>> format_bytes(2048)
        '2.00 KB'
        >>> format_bytes(5 * 1024 * 1024)
        '5.00 MB'
    """
    if count >= _GB:
        return f"{count / _GB:.2f} GB"
    if count >= _MB:
        return f"{count / _MB:.2f} MB"
    if count >= _KB:
        return f"{count / _KB:.2f} KB"
    return f"{int(count)} bytes"


def format_language_value(value: float, is_bytes: bool) -> str:
    return format_bytes(value) if is_bytes else f"{format_number(value)} repos"


def member_display_name(member: MemberRecord) -> str:
    return resolve_display_name(member, fallback=NOT_AVAILABLE)


def member_email(member: MemberRecord) -> str:
    return member.email or member.personal_email or NOT_AVAILABLE


def member_phone(member: MemberRecord) -> str:
    return member.phone_number or member.whatsapp_number or NOT_AVAILABLE


def _to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Any) -> str:
    """'October 18, 2026' for ISO strings, datetimes or epoch milliseconds."""
    dt = _to_datetime(value)
    if dt is None:
        return NOT_AVAILABLE
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


def format_datetime(value: Any) -> str:
    """'October 18, 2026, 02:30 PM'."""
    dt = _to_datetime(value)
    if dt is None:
        return NOT_AVAILABLE
    return f"{format_date(dt)}, {dt.strftime('%I:%M %p')}"
