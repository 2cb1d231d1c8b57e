from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import orjson
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from steadfast_api.deps import CurrentUserId, DBSession
from steadfast_api.models import Notification

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _as_aware(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _safe_json_dict(raw: str | None) -> dict[str, Any]:
    try:
        obj = orjson.loads(raw or "{}")
    except orjson.JSONDecodeError:
        return {}
    return obj if isinstance(obj, dict) else {}


def _unread_count(db: Session, *, user_id: str) -> int:
    return int(
        db.scalar(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.read_at.is_(None))
        )
        or 0
    )


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str | None = None
    body: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    read_at: datetime | None = None


class NotificationsOut(BaseModel):
    items: list[NotificationOut]
    unread_count: int = 0


class MarkReadResponse(BaseModel):
    ok: bool = True
    id: str
    unread_count: int = 0


@router.get("", response_model=NotificationsOut)
def list_notifications(
    limit: int = 20,
    unread: bool = False,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> NotificationsOut:
    limit = max(1, min(50, int(limit)))
    q = select(Notification).where(Notification.user_id == user_id)
    if unread:
        q = q.where(Notification.read_at.is_(None))
    rows = db.scalars(
        q.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
    ).all()
    return NotificationsOut(
        items=[
            NotificationOut(
                id=str(n.id),
                type=str(n.type),
                title=n.title,
                body=n.body,
                meta=_safe_json_dict(n.meta_json),
                created_at=_as_aware(n.created_at) or datetime.fromtimestamp(0, tz=UTC),
                read_at=_as_aware(n.read_at),
            )
            for n in rows
        ],
        unread_count=_unread_count(db, user_id=user_id),
    )


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
def mark_read(
    notification_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> MarkReadResponse:
    n = db.get(Notification, notification_id)
    if n is None or str(n.user_id) != str(user_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    if n.read_at is None:
        n.read_at = datetime.now(UTC)
        db.add(n)
        db.commit()
    return MarkReadResponse(
        id=str(notification_id), unread_count=_unread_count(db, user_id=user_id)
    )
