from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from steadfast_api.deps import CurrentUserId, DBSession
from steadfast_api.features import require_feature_unlocked
from steadfast_api.models import CheckIn, Comment, PrayerRequest, Victory
from steadfast_api.notifications import notify_achievements_unlocked
from steadfast_api.progression import (
    CounterField,
    ensure_progress,
    evaluate_and_unlock,
    increment_counter,
)
from steadfast_api.routers.progress import ProgressOut, UnlockOut, progress_out, unlock_out

router = APIRouter(prefix="/api/accountability", tags=["accountability"])

_COMMENT_TARGETS = {
    "checkin": CheckIn,
    "prayer": PrayerRequest,
    "victory": Victory,
}


class PrayerIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    body: str | None = Field(default=None, max_length=5000)


class VictoryIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    body: str | None = Field(default=None, max_length=5000)
    visibility: Literal["private", "partner", "group", "public"] = "partner"


class CommentIn(BaseModel):
    target_type: Literal["checkin", "prayer", "victory"]
    target_id: str
    body: str = Field(min_length=1, max_length=2000)


class CreatedOut(BaseModel):
    id: str
    kind: Literal["prayer", "victory", "comment"]
    created_at: datetime
    progress: ProgressOut
    newly_unlocked: list[UnlockOut]


def _count_and_evaluate(
    db: Session,
    *,
    user_id: str,
    field: CounterField,
    kind: Literal["prayer", "victory", "comment"],
    entity_id: str,
    now: datetime,
) -> CreatedOut:
    progress = increment_counter(db, user_id=user_id, field=field, now=now)
    newly = evaluate_and_unlock(db, user_id=user_id, now=now)
    notify_achievements_unlocked(db, user_id=user_id, unlocked=newly, now=now)
    out = CreatedOut(
        id=entity_id,
        kind=kind,
        created_at=now,
        progress=progress_out(progress),
        newly_unlocked=[unlock_out(ua) for ua in newly],
    )
    db.commit()
    return out


@router.post("/prayers", response_model=CreatedOut, status_code=201)
def create_prayer(
    payload: PrayerIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> CreatedOut:
    now = datetime.now(UTC)
    row = PrayerRequest(
        id=f"pr_{uuid4().hex}",
        user_id=user_id,
        title=payload.title,
        body=payload.body,
        created_at=now,
    )
    db.add(row)
    return _count_and_evaluate(
        db, user_id=user_id, field="prayer_count", kind="prayer", entity_id=row.id, now=now
    )


@router.post("/victories", response_model=CreatedOut, status_code=201)
def create_victory(
    payload: VictoryIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> CreatedOut:
    if payload.visibility == "public":
        require_feature_unlocked(
            ensure_progress(db, user_id=user_id), "victory_public_post"
        )
    now = datetime.now(UTC)
    row = Victory(
        id=f"vi_{uuid4().hex}",
        user_id=user_id,
        title=payload.title,
        body=payload.body,
        visibility=payload.visibility,
        created_at=now,
    )
    db.add(row)
    return _count_and_evaluate(
        db, user_id=user_id, field="victory_count", kind="victory", entity_id=row.id, now=now
    )


@router.post("/comments", response_model=CreatedOut, status_code=201)
def create_comment(
    payload: CommentIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> CreatedOut:
    model = _COMMENT_TARGETS[payload.target_type]
    if db.get(model, payload.target_id) is None:
        raise HTTPException(status_code=404, detail="target_not_found")
    now = datetime.now(UTC)
    row = Comment(
        id=f"cm_{uuid4().hex}",
        user_id=user_id,
        target_type=payload.target_type,
        target_id=payload.target_id,
        body=payload.body,
        created_at=now,
    )
    db.add(row)
    return _count_and_evaluate(
        db, user_id=user_id, field="comment_count", kind="comment", entity_id=row.id, now=now
    )
