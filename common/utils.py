from datetime import datetime, timezone
from pathlib import Path

# Time utility functions

PHOTO_SUFFIX = ".jpeg"

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def format_timestamp(ts: datetime) -> str:
    # RFC 3339, what the collector expects for reading timestamps
    return ts.astimezone(timezone.utc).isoformat()

def photo_name(ts: datetime) -> str:
    return format_timestamp(ts) + PHOTO_SUFFIX

def photo_time(name: str) -> datetime:
    """Capture time encoded in a photo file name. Raises ValueError if it has none."""
    ts = datetime.fromisoformat(Path(name).stem)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
