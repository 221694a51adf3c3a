# core/utils.py

import uuid
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time. All expiry comparisons use this."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to UTC.
    - None stays None
    - Naive datetimes are assumed to already be UTC
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def clean_text(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace; empty strings become None.
    """
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
