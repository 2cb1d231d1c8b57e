from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Literal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from steadfast_api.core.config import Settings
from steadfast_api.errors import InvalidMonthError
from steadfast_api.models import (
    CheckIn,
    Comment,
    PrayerRequest,
    UserAchievement,
    Victory,
)
from steadfast_api.progression import (
    ensure_progress,
    load_catalog,
    progress_counters,
)
from steadfast_api.requirements import (
    is_satisfied,
    parse_requirement,
    requirement_to_dict,
)


AnalyticsPeriod = Literal["last_4_weeks", "all_time"]

_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


def _as_aware(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt


@dataclass(frozen=True)
class AchievementStatus:
    id: str
    code: str
    title: str
    description: str | None
    category: str
    tier: str
    requirement: dict[str, Any]
    points: int | None
    icon: str | None
    scripture_ref: str | None
    blessing_text: str | None
    unlocked: bool
    unlocked_at: datetime | None
    can_unlock: bool


@dataclass(frozen=True)
class AnalyticsSummary:
    period: str
    checkins: int
    prayers: int
    victories: int
    comments: int
    current_checkin_streak: int
    longest_checkin_streak: int
    window_start: datetime | None = None


def achievements_for_user(session: Session, *, user_id: str) -> list[AchievementStatus]:
    """Every catalog achievement with the caller's unlock state and a can-unlock preview."""
    progress = ensure_progress(session, user_id=user_id)
    counters = progress_counters(progress)
    unlocked_at: dict[str, datetime] = {
        str(aid): at
        for aid, at in session.execute(
            select(UserAchievement.achievement_id, UserAchievement.unlocked_at).where(
                UserAchievement.user_id == str(user_id)
            )
        ).all()
    }

    out: list[AchievementStatus] = []
    for a in load_catalog(session):
        req = parse_requirement(a.requirement_json)
        unlocked = a.id in unlocked_at
        out.append(
            AchievementStatus(
                id=a.id,
                code=a.code,
                title=a.title,
                description=a.description,
                category=a.category,
                tier=a.tier,
                requirement=requirement_to_dict(req),
                points=a.points,
                icon=a.icon,
                scripture_ref=a.scripture_ref,
                blessing_text=a.blessing_text,
                unlocked=unlocked,
                unlocked_at=_as_aware(unlocked_at.get(a.id)),
                can_unlock=(not unlocked) and is_satisfied(req, counters),
            )
        )
    return out


def parse_month(month: str) -> tuple[int, int]:
    m = _MONTH_RE.match(str(month or "").strip())
    if not m:
        raise InvalidMonthError(str(month))
    year, mon = int(m.group(1)), int(m.group(2))
    if mon < 1 or mon > 12:
        raise InvalidMonthError(str(month))
    return year, mon


def month_bounds(year: int, mon: int) -> tuple[datetime, datetime]:
    start = datetime(year, mon, 1, tzinfo=UTC)
    if mon == 12:
        end = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(year, mon + 1, 1, tzinfo=UTC)
    return start, end


def calendar_for_month(
    session: Session, *, user_id: str, month: str
) -> dict[str, dict[str, bool]]:
    """
    Days of the UTC month on which the user posted at least one Victory.

    Reads Victory posts, not victory-status check-ins.
    """
    year, mon = parse_month(month)
    start, end = month_bounds(year, mon)
    rows = session.scalars(
        select(Victory.created_at)
        .where(Victory.user_id == str(user_id))
        .where(Victory.created_at >= start)
        .where(Victory.created_at < end)
    ).all()
    days: dict[str, dict[str, bool]] = {}
    for created_at in rows:
        d = (_as_aware(created_at) or start).astimezone(UTC).date()
        days[d.isoformat()] = {"victory": True}
    return days


def window_start(*, now: datetime, days: int) -> datetime:
    # Today counts as the last day of the window.
    today = now.astimezone(UTC).date()
    first: date = today - timedelta(days=max(1, int(days)) - 1)
    return datetime.combine(first, time.min, tzinfo=UTC)


def _count_since(session: Session, model: Any, *, user_id: str, start: datetime) -> int:
    return int(
        session.scalar(
            select(func.count())
            .select_from(model)
            .where(model.user_id == str(user_id))
            .where(model.created_at >= start)
        )
        or 0
    )


def analytics(
    session: Session,
    *,
    user_id: str,
    period: AnalyticsPeriod,
    now: datetime | None = None,
) -> AnalyticsSummary:
    if period not in ("last_4_weeks", "all_time"):
        raise ValueError(f"unknown analytics period: {period!r}")
    progress = ensure_progress(session, user_id=user_id)
    current = int(progress.current_checkin_streak or 0)
    longest = int(progress.longest_checkin_streak or 0)

    if period == "all_time":
        return AnalyticsSummary(
            period=period,
            checkins=int(progress.checkin_count or 0),
            prayers=int(progress.prayer_count or 0),
            victories=int(progress.victory_count or 0),
            comments=int(progress.comment_count or 0),
            current_checkin_streak=current,
            longest_checkin_streak=longest,
        )

    now_dt = _as_aware(now) or datetime.now(UTC)
    start = window_start(now=now_dt, days=Settings().analytics_window_days)
    return AnalyticsSummary(
        period=period,
        checkins=_count_since(session, CheckIn, user_id=user_id, start=start),
        prayers=_count_since(session, PrayerRequest, user_id=user_id, start=start),
        victories=_count_since(session, Victory, user_id=user_id, start=start),
        comments=_count_since(session, Comment, user_id=user_id, start=start),
        current_checkin_streak=current,
        longest_checkin_streak=longest,
        window_start=start,
    )
