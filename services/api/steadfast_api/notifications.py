from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from steadfast_api.core.config import Settings
from steadfast_api.models import Achievement, Notification, UserAchievement


def enqueue_notification(
    session: Session,
    *,
    user_id: str,
    type: str,
    title: str | None = None,
    body: str | None = None,
    meta: dict[str, Any] | None = None,
    dedupe_key: str | None = None,
    now: datetime | None = None,
) -> Notification | None:
    """
    Write a row to the notifications outbox. Delivery (push/email) happens elsewhere.

    Returns None when notifications are disabled or the dedupe key was already used.
    """
    if not Settings().notifications_enabled:
        return None
    now_dt = now or datetime.now(UTC)

    if dedupe_key:
        existing = session.scalar(
            select(Notification.id)
            .where(Notification.user_id == str(user_id))
            .where(Notification.dedupe_key == str(dedupe_key))
        )
        if existing is not None:
            return None

    row = Notification(
        id=f"nt_{uuid4().hex}",
        user_id=str(user_id),
        type=str(type),
        title=str(title)[:200] if title else None,
        body=str(body)[:500] if body else None,
        dedupe_key=str(dedupe_key) if dedupe_key else None,
        meta_json=orjson.dumps(meta or {}, default=str).decode("utf-8"),
        created_at=now_dt,
        read_at=None,
    )
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError:
        return None
    return row


def notify_achievements_unlocked(
    session: Session,
    *,
    user_id: str,
    unlocked: list[UserAchievement],
    now: datetime | None = None,
) -> int:
    sent = 0
    for ua in unlocked:
        achievement = session.get(Achievement, ua.achievement_id)
        title = achievement.title if achievement is not None else "Achievement unlocked"
        row = enqueue_notification(
            session,
            user_id=user_id,
            type="achievement_unlocked",
            title="Achievement unlocked",
            body=title,
            meta={
                "achievement_id": ua.achievement_id,
                "code": achievement.code if achievement is not None else None,
            },
            dedupe_key=f"achievement:{user_id}:{ua.achievement_id}",
            now=now,
        )
        if row is not None:
            sent += 1
    return sent
