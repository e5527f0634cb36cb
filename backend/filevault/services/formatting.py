"""Display helpers layered on top of stored records."""
from datetime import datetime, timezone

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_file_size(size: int) -> str:
    """1536 -> '1.5 KB'. Binary units, at most two decimals."""
    if not size or size <= 0:
        return "0 Bytes"
    exponent = 0
    value = float(size)
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def format_duration(seconds: int | None) -> str:
    """80 -> '1:20'."""
    if not seconds:
        return "N/A"
    minutes, remainder = divmod(int(seconds), 60)
    return f"{minutes}:{remainder:02d}"


def format_count(value: int | None) -> str:
    return f"{value or 0:,}"


def format_date(value: datetime | None) -> str | None:
    """e.g. 'Oct 19, 2026, 03:04 PM' (UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%b %d, %Y, %I:%M %p")
