from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from sqlalchemy.orm import Session

from steadfast_api.models import Event

EVENT_SCHEMA_VERSION = 1


def log_event(
    session: Session,
    *,
    type: str,
    user_id: str | None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Event:
    """
    Append a domain event to the events table (flushed with the caller's transaction).

    Known types: checkin_recorded, counter_incremented, achievement_unlocked,
    auto_checkin_created.
    """
    now_dt = now or datetime.now(UTC)
    p: dict[str, Any] = dict(payload or {})
    p.setdefault("v", EVENT_SCHEMA_VERSION)
    p.setdefault("user_id", user_id)

    ev = Event(
        id=f"ev_{uuid4().hex}",
        user_id=user_id,
        type=str(type),
        payload_json=orjson.dumps(p, default=str).decode("utf-8"),
        created_at=now_dt,
    )
    session.add(ev)
    return ev


def log_json(payload: dict[str, Any]) -> None:
    """One structured log line on stdout."""
    try:
        line = orjson.dumps(payload, default=str).decode("utf-8")
    except TypeError:
        line = orjson.dumps({"level": "error", "msg": "unserializable_log_payload"}).decode(
            "utf-8"
        )
    print(line, flush=True)
