# stockline/core/clock.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite 读回来的 DateTime 不带 tzinfo（存的就是 UTC），统一补成 aware。
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
