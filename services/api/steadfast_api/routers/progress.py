from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

import orjson
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from steadfast_api.core.config import Settings
from steadfast_api.deps import CurrentUserId, DBSession
from steadfast_api.features import feature_statuses
from steadfast_api.models import Achievement, CheckIn, UserAchievement, UserProgress
from steadfast_api.notifications import enqueue_notification, notify_achievements_unlocked
from steadfast_api.progress_queries import (
    achievements_for_user,
    analytics,
    calendar_for_month,
)
from steadfast_api.progression import ensure_progress, evaluate_and_unlock, record_checkin
from steadfast_api.rate_limit import check_rate_limit

router = APIRouter(prefix="/api/progress", tags=["progress"])

# Client clocks drift; anything further ahead than this is rejected.
_MAX_CLOCK_SKEW = timedelta(minutes=5)


def _as_aware(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _safe_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return default


class ProgressOut(BaseModel):
    user_id: str
    checkin_count: int
    prayer_count: int
    victory_count: int
    comment_count: int
    current_checkin_streak: int
    longest_checkin_streak: int
    last_checkin_date: date | None = None
    last_relapse_date: date | None = None


class UnlockOut(BaseModel):
    id: str
    achievement_id: str
    unlocked_at: datetime
    progress_snapshot: dict[str, int] = Field(default_factory=dict)


class CheckInIn(BaseModel):
    mood: float = Field(ge=0.0, le=1.0)
    note: str | None = Field(default=None, max_length=2000)
    visibility: Literal["private", "partner", "group"] = "private"
    partner_ids: list[str] = Field(default_factory=list)
    status: Literal["victory", "relapse"] = "victory"
    created_at: datetime | None = None


class CheckInOut(BaseModel):
    id: str
    mood: float
    note: str | None = None
    visibility: str
    partner_ids: list[str] = Field(default_factory=list)
    status: str
    is_automatic: bool = False
    created_at: datetime


class CreateCheckInOut(BaseModel):
    checkin: CheckInOut
    progress: ProgressOut
    newly_unlocked: list[UnlockOut]


class AchievementOut(BaseModel):
    id: str
    code: str
    title: str
    description: str | None = None
    category: str
    tier: str
    requirement: dict[str, Any] = Field(default_factory=dict)
    points: int | None = None
    icon: str | None = None
    scripture_ref: str | None = None
    blessing_text: str | None = None
    unlocked: bool
    unlocked_at: datetime | None = None
    can_unlock: bool


class AchievementsOut(BaseModel):
    items: list[AchievementOut]


class UnlockResultOut(BaseModel):
    newly_unlocked: bool
    unlock: UnlockOut


class AnalyticsOut(BaseModel):
    period: Literal["last_4_weeks", "all_time"]
    checkins: int
    prayers: int
    victories: int
    comments: int
    current_checkin_streak: int
    longest_checkin_streak: int
    window_start: datetime | None = None


class CalendarDayOut(BaseModel):
    victory: bool = True


class CalendarOut(BaseModel):
    month: str
    days: dict[str, CalendarDayOut]


class FeatureOut(BaseModel):
    key: str
    threshold_days: int
    unlocked: bool
    current_checkin_streak: int
    longest_checkin_streak: int
    remaining_days: int


class FeaturesOut(BaseModel):
    items: list[FeatureOut]


def progress_out(row: UserProgress) -> ProgressOut:
    return ProgressOut(
        user_id=row.user_id,
        checkin_count=int(row.checkin_count or 0),
        prayer_count=int(row.prayer_count or 0),
        victory_count=int(row.victory_count or 0),
        comment_count=int(row.comment_count or 0),
        current_checkin_streak=int(row.current_checkin_streak or 0),
        longest_checkin_streak=int(row.longest_checkin_streak or 0),
        last_checkin_date=row.last_checkin_date,
        last_relapse_date=row.last_relapse_date,
    )


def unlock_out(ua: UserAchievement) -> UnlockOut:
    snapshot = _safe_json(ua.progress_snapshot_json, {})
    return UnlockOut(
        id=ua.id,
        achievement_id=ua.achievement_id,
        unlocked_at=_as_aware(ua.unlocked_at) or datetime.fromtimestamp(0, tz=UTC),
        progress_snapshot=snapshot if isinstance(snapshot, dict) else {},
    )


def _checkin_out(c: CheckIn) -> CheckInOut:
    partner_ids = _safe_json(c.partner_ids_json, [])
    return CheckInOut(
        id=c.id,
        mood=float(c.mood),
        note=c.note,
        visibility=c.visibility,
        partner_ids=[str(p) for p in partner_ids] if isinstance(partner_ids, list) else [],
        status=c.status,
        is_automatic=bool(c.is_automatic),
        created_at=_as_aware(c.created_at) or datetime.fromtimestamp(0, tz=UTC),
    )


@router.get("", response_model=ProgressOut)
def get_progress(user_id: str = CurrentUserId, db: Session = DBSession) -> ProgressOut:
    row = ensure_progress(db, user_id=user_id)
    db.commit()
    return progress_out(row)


@router.post("/checkins", response_model=CreateCheckInOut, status_code=201)
def create_checkin(
    payload: CheckInIn,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> CreateCheckInOut:
    settings = Settings()
    check_rate_limit(
        user_id=user_id,
        action="checkin_create",
        per_minute=int(settings.rate_limit_checkins_per_minute),
        per_hour=int(settings.rate_limit_checkins_per_hour),
    )

    partner_ids = [str(p) for p in payload.partner_ids if str(p).strip()]
    if payload.visibility == "partner" and not partner_ids:
        raise HTTPException(
            status_code=400, detail="Partner IDs are required for partner visibility."
        )

    now = datetime.now(UTC)
    # Stored naive on SQLite; keep every column value in UTC.
    created_at = (_as_aware(payload.created_at) or now).astimezone(UTC)
    if created_at > now + _MAX_CLOCK_SKEW:
        raise HTTPException(status_code=400, detail="created_at is in the future")

    checkin = CheckIn(
        id=f"ci_{uuid4().hex}",
        user_id=user_id,
        mood=float(payload.mood),
        note=payload.note,
        visibility=payload.visibility,
        partner_ids_json=orjson.dumps(
            partner_ids if payload.visibility == "partner" else []
        ).decode("utf-8"),
        status=payload.status,
        is_automatic=False,
        created_at=created_at,
    )
    db.add(checkin)

    progress = record_checkin(
        db, user_id=user_id, created_at=created_at, status=payload.status, now=now
    )
    newly = evaluate_and_unlock(db, user_id=user_id, now=now)

    if payload.visibility == "partner":
        for partner_id in partner_ids:
            enqueue_notification(
                db,
                user_id=partner_id,
                type="checkin_created",
                title="New Check-in",
                body="Your accountability partner posted a new check-in.",
                meta={"checkin_id": checkin.id, "actor_id": user_id},
                now=now,
            )
    notify_achievements_unlocked(db, user_id=user_id, unlocked=newly, now=now)

    out = CreateCheckInOut(
        checkin=_checkin_out(checkin),
        progress=progress_out(progress),
        newly_unlocked=[unlock_out(ua) for ua in newly],
    )
    db.commit()
    return out


@router.get("/achievements", response_model=AchievementsOut)
def list_achievements(
    user_id: str = CurrentUserId, db: Session = DBSession
) -> AchievementsOut:
    items = achievements_for_user(db, user_id=user_id)
    db.commit()
    return AchievementsOut(
        items=[
            AchievementOut(
                id=a.id,
                code=a.code,
                title=a.title,
                description=a.description,
                category=a.category,
                tier=a.tier,
                requirement=a.requirement,
                points=a.points,
                icon=a.icon,
                scripture_ref=a.scripture_ref,
                blessing_text=a.blessing_text,
                unlocked=a.unlocked,
                unlocked_at=a.unlocked_at,
                can_unlock=a.can_unlock,
            )
            for a in items
        ]
    )


@router.post("/achievements/{achievement_id}/unlock", response_model=UnlockResultOut)
def unlock_achievement(
    achievement_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> UnlockResultOut:
    if db.get(Achievement, achievement_id) is None:
        raise HTTPException(status_code=404, detail="achievement_not_found")

    now = datetime.now(UTC)
    newly = evaluate_and_unlock(db, user_id=user_id, now=now)
    notify_achievements_unlocked(db, user_id=user_id, unlocked=newly, now=now)
    db.commit()

    target = next((ua for ua in newly if ua.achievement_id == achievement_id), None)
    if target is not None:
        return UnlockResultOut(newly_unlocked=True, unlock=unlock_out(target))

    existing = db.scalar(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .where(UserAchievement.achievement_id == achievement_id)
    )
    if existing is not None:
        return UnlockResultOut(newly_unlocked=False, unlock=unlock_out(existing))
    raise HTTPException(status_code=400, detail="not_eligible")


@router.get("/analytics", response_model=AnalyticsOut)
def get_analytics(
    period: Literal["last_4_weeks", "all_time"] = "last_4_weeks",
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> AnalyticsOut:
    summary = analytics(db, user_id=user_id, period=period)
    db.commit()
    return AnalyticsOut(
        period=summary.period,  # type: ignore[arg-type]
        checkins=summary.checkins,
        prayers=summary.prayers,
        victories=summary.victories,
        comments=summary.comments,
        current_checkin_streak=summary.current_checkin_streak,
        longest_checkin_streak=summary.longest_checkin_streak,
        window_start=summary.window_start,
    )


@router.get("/calendar", response_model=CalendarOut)
def get_calendar(
    month: str | None = None,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> CalendarOut:
    month_s = month or datetime.now(UTC).strftime("%Y-%m")
    days = calendar_for_month(db, user_id=user_id, month=month_s)
    return CalendarOut(
        month=month_s,
        days={k: CalendarDayOut(victory=bool(v.get("victory"))) for k, v in days.items()},
    )


@router.get("/features", response_model=FeaturesOut)
def get_features(user_id: str = CurrentUserId, db: Session = DBSession) -> FeaturesOut:
    progress = ensure_progress(db, user_id=user_id)
    db.commit()
    return FeaturesOut(
        items=[
            FeatureOut(
                key=f.key,
                threshold_days=f.threshold_days,
                unlocked=f.unlocked,
                current_checkin_streak=f.current_checkin_streak,
                longest_checkin_streak=f.longest_checkin_streak,
                remaining_days=f.remaining_days,
            )
            for f in feature_statuses(progress)
        ]
    )
