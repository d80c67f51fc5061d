# retailflow/utils/time.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        # 假定传入是 UTC naive
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def strictly_after(prev: datetime | None) -> datetime:
    """
    返回 now()，但保证严格大于 prev（同一微秒内的连续写入也会递增）。
    """
    now = utc_now()
    prev = ensure_utc(prev)
    if prev is not None and now <= prev:
        return prev + timedelta(microseconds=1)
    return now


def epoch_millis(dt: datetime | None = None) -> int:
    return int((dt or utc_now()).timestamp() * 1000)
