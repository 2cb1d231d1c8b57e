from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from typing import Literal

from steadfast_api.errors import BackdatedCheckInError


CheckInStatus = Literal["victory", "relapse"]
BackdatedPolicy = Literal["reject", "ignore_streak"]

CHECKIN_STATUSES: tuple[str, ...] = ("victory", "relapse")


@dataclass(frozen=True)
class StreakState:
    checkin_count: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_checkin_day: date | None = None
    last_relapse_day: date | None = None


def utc_day(ts: datetime) -> date:
    """Truncate a timestamp to its UTC calendar day. Naive values are taken as UTC."""
    if getattr(ts, "tzinfo", None) is None:
        return ts.date()
    return ts.astimezone(UTC).date()


def apply_checkin(
    state: StreakState,
    *,
    created_at: datetime,
    status: CheckInStatus,
    backdated: BackdatedPolicy = "reject",
) -> StreakState:
    """
    Fold one check-in into the streak state.

    Every check-in bumps the count. A relapse zeroes the current streak and
    stamps both day markers. A victory continues the streak on the next UTC
    day, keeps it on the same day, and restarts it at 1 after a gap; a relapse
    recorded on the same day as the victory pins it to 0.
    """
    if str(status) not in CHECKIN_STATUSES:
        raise ValueError(f"unknown check-in status: {status!r}")

    day = utc_day(created_at)
    last = state.last_checkin_day
    count = int(state.checkin_count or 0) + 1

    if last is not None and day < last:
        if backdated == "ignore_streak":
            return replace(state, checkin_count=count)
        raise BackdatedCheckInError(day=day, last_day=last)

    if status == "relapse":
        return replace(
            state,
            checkin_count=count,
            current_streak=0,
            last_checkin_day=day,
            last_relapse_day=day,
        )

    current = int(state.current_streak or 0)
    if last is not None:
        diff_days = (day - last).days
        if diff_days == 1:
            current += 1
        elif diff_days > 1:
            current = 1
    else:
        current = 1

    relapse = state.last_relapse_day
    if relapse is not None:
        if relapse == day:
            current = 0
        elif last is not None and relapse > last:
            current = 1

    return replace(
        state,
        checkin_count=count,
        current_streak=current,
        longest_streak=max(int(state.longest_streak or 0), current),
        last_checkin_day=day,
    )
