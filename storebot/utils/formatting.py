from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now(offset_seconds: float = 0) -> str:
    return (utc_now() + timedelta(seconds=offset_seconds)).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_rupiah(amount: Any) -> str:
    try:
        value = int(round(float(amount or 0)))
    except (TypeError, ValueError):
        value = 0
    return "Rp " + f"{value:,}".replace(",", ".")


def format_date(value: Optional[str]) -> str:
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return parsed.strftime("%d %B %Y %H:%M")


def format_size(size: int) -> str:
    if not size or size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    if value == int(value):
        return f"{int(value)} {units[index]}"
    return f"{value} {units[index]}"


def truncate(text: str, limit: int) -> str:
    text = str(text or "")
    return text if len(text) <= limit else text[:limit] + "..."
