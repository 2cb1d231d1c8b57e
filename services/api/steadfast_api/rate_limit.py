from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from fastapi import HTTPException

from steadfast_api.core.config import Settings


@dataclass
class _Window:
    minute_start: int
    minute_count: int
    hour_start: int
    hour_count: int


_LOCK = Lock()
_STATE: dict[tuple[str, str], _Window] = {}
_SWEPT_HOUR: dict[str, int] = {"bucket": -1}


def _prune_stale(hour_bucket: int) -> None:
    # Caller holds _LOCK. A window from an earlier hour carries no counts forward.
    if _SWEPT_HOUR["bucket"] == hour_bucket:
        return
    _SWEPT_HOUR["bucket"] = hour_bucket
    for key in [k for k, w in _STATE.items() if w.hour_start < hour_bucket]:
        del _STATE[key]


def _epoch_seconds(now: datetime) -> int:
    if getattr(now, "tzinfo", None) is None:
        now = now.replace(tzinfo=UTC)
    return int(now.timestamp())


def _limited(*, action: str, retry_after: int, extra_detail: dict[str, Any] | None) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail={
            "error": "rate_limited",
            "action": action,
            "retry_after_sec": retry_after,
            **(extra_detail or {}),
        },
        headers={"Retry-After": str(int(retry_after))},
    )


def check_rate_limit(
    *,
    user_id: str,
    action: str,
    per_minute: int,
    per_hour: int,
    now: datetime | None = None,
    extra_detail: dict[str, Any] | None = None,
) -> None:
    settings = Settings()
    if not getattr(settings, "rate_limit_enabled", True):
        return

    if per_minute <= 0 and per_hour <= 0:
        return

    now_s = _epoch_seconds(now or datetime.now(UTC))
    minute_bucket = now_s // 60
    hour_bucket = now_s // 3600
    key = (str(user_id or "anon"), str(action))

    with _LOCK:
        _prune_stale(hour_bucket)
        w = _STATE.get(key)
        if w is None:
            w = _Window(
                minute_start=minute_bucket,
                minute_count=0,
                hour_start=hour_bucket,
                hour_count=0,
            )

        if w.minute_start != minute_bucket:
            w.minute_start = minute_bucket
            w.minute_count = 0
        if w.hour_start != hour_bucket:
            w.hour_start = hour_bucket
            w.hour_count = 0

        if per_minute > 0 and w.minute_count >= int(per_minute):
            raise _limited(
                action=action,
                retry_after=max(1, 60 - (now_s % 60)),
                extra_detail=extra_detail,
            )
        if per_hour > 0 and w.hour_count >= int(per_hour):
            raise _limited(
                action=action,
                retry_after=max(1, 3600 - (now_s % 3600)),
                extra_detail=extra_detail,
            )

        w.minute_count += 1
        w.hour_count += 1
        _STATE[key] = w
