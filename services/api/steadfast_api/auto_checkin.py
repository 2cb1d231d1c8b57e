from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from steadfast_api.errors import ProgressError
from steadfast_api.eventlog import log_event, log_json
from steadfast_api.models import CheckIn, User
from steadfast_api.progression import evaluate_and_unlock, record_checkin


TIMEZONE_OFFSETS: dict[str, float] = {
    "PST": -8, "PDT": -7,
    "MST": -7, "MDT": -6,
    "CST": -6, "CDT": -5,
    "EST": -5, "EDT": -4,
    "GMT": 0, "UTC": 0,
    "CET": 1, "CEST": 2,
    "EET": 2, "EEST": 3,
    "JST": 9,
    "AEST": 10, "AEDT": 11,
    "IST": 5.5,
}

_UTC_OFFSET_RE = re.compile(r"UTC([+-])(\d+(?:\.\d+)?)", flags=re.IGNORECASE)
_BARE_OFFSET_RE = re.compile(r"^([+-])(\d+(?:\.\d+)?)$")

AUTO_CHECKIN_MOOD = 0.5
AUTO_CHECKIN_NOTE = "Automatic check-in - no manual check-in recorded for this day"


def parse_timezone_offset(timezone: str | None) -> float:
    """Hours east of UTC for "EST", "UTC+5", "+5.5" and friends; 0 when unparseable."""
    raw = str(timezone or "").strip()
    if not raw:
        return 0.0
    known = TIMEZONE_OFFSETS.get(raw.upper())
    if known is not None:
        return float(known)
    m = _UTC_OFFSET_RE.search(raw) or _BARE_OFFSET_RE.match(raw)
    if m:
        sign = 1.0 if m.group(1) == "+" else -1.0
        return sign * float(m.group(2))
    return 0.0


def local_day(*, now: datetime, offset_hours: float) -> date:
    return (now.astimezone(UTC) + timedelta(hours=offset_hours)).date()


def local_day_bounds(day: date, *, offset_hours: float) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in a fixed-offset zone."""
    start_local = datetime.combine(day, time.min, tzinfo=UTC)
    start = start_local - timedelta(hours=offset_hours)
    return start, start + timedelta(days=1)


@dataclass(frozen=True)
class AutoCheckinResult:
    user_id: str
    checkin_id: str
    day: date
    achievements_unlocked: int


def create_automatic_checkin(
    session: Session, *, user: User, now: datetime
) -> AutoCheckinResult | None:
    """
    Record an automatic relapse check-in when the user's local day has none.

    Partners are not notified for automatic check-ins.
    """
    now = now.astimezone(UTC)
    offset = parse_timezone_offset(user.timezone)
    day = local_day(now=now, offset_hours=offset)
    start, end = local_day_bounds(day, offset_hours=offset)
    existing = session.scalar(
        select(CheckIn.id)
        .where(CheckIn.user_id == user.id)
        .where(CheckIn.created_at >= start)
        .where(CheckIn.created_at < end)
        .limit(1)
    )
    if existing is not None:
        return None

    checkin = CheckIn(
        id=f"ci_{uuid4().hex}",
        user_id=user.id,
        mood=AUTO_CHECKIN_MOOD,
        note=AUTO_CHECKIN_NOTE,
        visibility="private",
        partner_ids_json="[]",
        status="relapse",
        is_automatic=True,
        created_at=now,
    )
    session.add(checkin)
    record_checkin(
        session, user_id=user.id, created_at=checkin.created_at, status="relapse", now=now
    )
    unlocked = evaluate_and_unlock(session, user_id=user.id, now=now)
    log_event(
        session,
        type="auto_checkin_created",
        user_id=user.id,
        payload={
            "checkin_id": checkin.id,
            "day": day.isoformat(),
            "timezone": user.timezone,
            "achievements_unlocked": len(unlocked),
        },
        now=now,
    )
    return AutoCheckinResult(
        user_id=user.id,
        checkin_id=checkin.id,
        day=day,
        achievements_unlocked=len(unlocked),
    )


def run_auto_checkins(
    session: Session,
    *,
    now: datetime | None = None,
    offset_hours: float | None = None,
) -> list[AutoCheckinResult]:
    """
    Walk active users (optionally only those at one UTC offset) and fill in
    missing check-ins. Each user is committed on its own.
    """
    now_dt = now or datetime.now(UTC)
    users = session.scalars(
        select(User).where(User.is_active.is_(True)).order_by(User.id)
    ).all()

    results: list[AutoCheckinResult] = []
    for user in users:
        if offset_hours is not None:
            if abs(parse_timezone_offset(user.timezone) - float(offset_hours)) >= 0.1:
                continue
        try:
            res = create_automatic_checkin(session, user=user, now=now_dt)
            session.commit()
        except ProgressError as exc:
            session.rollback()
            log_json(
                {
                    "level": "warning",
                    "msg": "auto_checkin_skipped",
                    "user_id": user.id,
                    "error": str(exc)[:200],
                }
            )
            continue
        if res is not None:
            results.append(res)
    return results
