from datetime import datetime, timezone
from typing import Optional

WATERMARK_TIME_FORMAT = "%d %b %Y, %H:%M:%S"


def utcnow() -> datetime:
    """Current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_watermark_time(value: datetime) -> str:
    return as_utc(value).strftime(WATERMARK_TIME_FORMAT)
