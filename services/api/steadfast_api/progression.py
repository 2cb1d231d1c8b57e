from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal, get_args
from uuid import uuid4

import orjson
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from steadfast_api.core.config import Settings
from steadfast_api.eventlog import log_event
from steadfast_api.locks import lock_user_progress
from steadfast_api.models import Achievement, UserAchievement, UserProgress
from steadfast_api.requirements import is_satisfied, parse_requirement
from steadfast_api.streaks import CheckInStatus, StreakState, apply_checkin


CounterField = Literal["prayer_count", "victory_count", "comment_count"]
COUNTER_FIELDS: tuple[str, ...] = get_args(CounterField)


def _load_progress(
    session: Session, *, user_id: str, for_update: bool
) -> UserProgress | None:
    q = select(UserProgress).where(UserProgress.user_id == str(user_id))
    if for_update:
        q = q.with_for_update()
    return session.scalar(q)


def ensure_progress(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
    for_update: bool = False,
) -> UserProgress:
    """Get-or-create the user's progress row; concurrent creators converge on one row."""
    row = _load_progress(session, user_id=user_id, for_update=for_update)
    if row is not None:
        return row

    now_dt = now or datetime.now(UTC)
    row = UserProgress(
        user_id=str(user_id),
        checkin_count=0,
        prayer_count=0,
        victory_count=0,
        comment_count=0,
        current_checkin_streak=0,
        longest_checkin_streak=0,
        last_checkin_date=None,
        last_relapse_date=None,
        created_at=now_dt,
        updated_at=now_dt,
    )
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError:
        row = _load_progress(session, user_id=user_id, for_update=for_update)
        if row is None:
            raise
    return row


def progress_counters(row: UserProgress) -> dict[str, int]:
    return {
        "checkin_count": int(row.checkin_count or 0),
        "prayer_count": int(row.prayer_count or 0),
        "victory_count": int(row.victory_count or 0),
        "comment_count": int(row.comment_count or 0),
        "checkin_streak_current": int(row.current_checkin_streak or 0),
        "checkin_streak_longest": int(row.longest_checkin_streak or 0),
    }


def progress_snapshot(row: UserProgress) -> dict[str, int]:
    return {
        "checkin_count": int(row.checkin_count or 0),
        "prayer_count": int(row.prayer_count or 0),
        "victory_count": int(row.victory_count or 0),
        "comment_count": int(row.comment_count or 0),
        "current_checkin_streak": int(row.current_checkin_streak or 0),
        "longest_checkin_streak": int(row.longest_checkin_streak or 0),
    }


def streak_state_from_row(row: UserProgress) -> StreakState:
    return StreakState(
        checkin_count=int(row.checkin_count or 0),
        current_streak=int(row.current_checkin_streak or 0),
        longest_streak=int(row.longest_checkin_streak or 0),
        last_checkin_day=row.last_checkin_date,
        last_relapse_day=row.last_relapse_date,
    )


def record_checkin(
    session: Session,
    *,
    user_id: str,
    created_at: datetime,
    status: CheckInStatus,
    now: datetime | None = None,
) -> UserProgress:
    """
    Fold a check-in into the user's progress under a per-user lock.

    Raises BackdatedCheckInError (before mutating anything) for a check-in
    dated before the last counted day when the policy is "reject".
    """
    now_dt = now or datetime.now(UTC)
    policy = Settings().backdated_checkin_policy

    lock_user_progress(session, user_id=user_id)
    row = ensure_progress(session, user_id=user_id, now=now_dt, for_update=True)
    before = streak_state_from_row(row)
    after = apply_checkin(
        before,
        created_at=created_at,
        status=status,
        backdated=policy,  # type: ignore[arg-type]
    )

    row.checkin_count = after.checkin_count
    row.current_checkin_streak = after.current_streak
    row.longest_checkin_streak = after.longest_streak
    row.last_checkin_date = after.last_checkin_day
    row.last_relapse_date = after.last_relapse_day
    row.updated_at = now_dt
    session.add(row)

    log_event(
        session,
        type="checkin_recorded",
        user_id=user_id,
        payload={
            "status": str(status),
            "day": after.last_checkin_day.isoformat() if after.last_checkin_day else None,
            "streak_before": before.current_streak,
            "streak_after": after.current_streak,
            "longest": after.longest_streak,
        },
        now=now_dt,
    )
    return row


def increment_counter(
    session: Session,
    *,
    user_id: str,
    field: CounterField,
    now: datetime | None = None,
) -> UserProgress:
    if field not in COUNTER_FIELDS:
        raise ValueError(f"unknown progress counter: {field!r}")
    now_dt = now or datetime.now(UTC)

    row = ensure_progress(session, user_id=user_id, now=now_dt)
    session.flush()
    column = getattr(UserProgress, field)
    session.execute(
        update(UserProgress)
        .where(UserProgress.user_id == str(user_id))
        .values({column: column + 1, UserProgress.updated_at: now_dt})
        .execution_options(synchronize_session=False)
    )
    session.refresh(row)

    log_event(
        session,
        type="counter_incremented",
        user_id=user_id,
        payload={"field": field, "value": int(getattr(row, field) or 0)},
        now=now_dt,
    )
    return row


def unlocked_achievement_ids(session: Session, *, user_id: str) -> set[str]:
    return set(
        session.scalars(
            select(UserAchievement.achievement_id).where(
                UserAchievement.user_id == str(user_id)
            )
        ).all()
    )


def load_catalog(session: Session) -> list[Achievement]:
    return list(
        session.scalars(
            select(Achievement).order_by(Achievement.created_at, Achievement.id)
        ).all()
    )


def _insert_unlock(
    session: Session,
    *,
    user_id: str,
    achievement_id: str,
    snapshot: dict[str, Any],
    now: datetime,
) -> UserAchievement | None:
    ua = UserAchievement(
        id=f"ua_{uuid4().hex}",
        user_id=str(user_id),
        achievement_id=str(achievement_id),
        unlocked_at=now,
        progress_snapshot_json=orjson.dumps(snapshot).decode("utf-8"),
    )
    try:
        with session.begin_nested():
            session.add(ua)
    except IntegrityError:
        # A concurrent evaluator got there first.
        return None
    return ua


def evaluate_and_unlock(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
) -> list[UserAchievement]:
    """
    Unlock every catalog achievement the user now qualifies for.

    Already-unlocked achievements are skipped up front, so a second call with
    no progress change returns an empty list. Progress is only read here.
    """
    now_dt = now or datetime.now(UTC)
    row = ensure_progress(session, user_id=user_id, now=now_dt)
    counters = progress_counters(row)
    snapshot = progress_snapshot(row)
    already = unlocked_achievement_ids(session, user_id=user_id)

    newly: list[UserAchievement] = []
    for achievement in load_catalog(session):
        if achievement.id in already:
            continue
        req = parse_requirement(achievement.requirement_json)
        if not is_satisfied(req, counters):
            continue
        ua = _insert_unlock(
            session,
            user_id=user_id,
            achievement_id=achievement.id,
            snapshot=snapshot,
            now=now_dt,
        )
        if ua is None:
            continue
        newly.append(ua)
        log_event(
            session,
            type="achievement_unlocked",
            user_id=user_id,
            payload={"achievement_id": achievement.id, "code": achievement.code},
            now=now_dt,
        )
    return newly
