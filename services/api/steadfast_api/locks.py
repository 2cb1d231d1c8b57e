from __future__ import annotations

import contextlib
import hashlib
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from steadfast_api.errors import ProgressConflictError


def advisory_lock_key(*, name: str) -> int:
    raw = f"steadfast:{str(name)}".encode("utf-8")
    digest = hashlib.sha256(raw).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def progress_lock_name(user_id: str) -> str:
    return f"user_progress:{str(user_id)}"


def is_postgres(session: Session) -> bool:
    try:
        bind = session.get_bind()
        return bool(getattr(getattr(bind, "dialect", None), "name", "") == "postgresql")
    except Exception:  # noqa: BLE001
        return False


def try_advisory_lock(session: Session, *, name: str) -> bool:
    """Session-scoped lock for scheduler jobs; survives commits until unlocked."""
    if not is_postgres(session):
        return True
    key = advisory_lock_key(name=name)
    try:
        got = session.execute(
            text("SELECT pg_try_advisory_lock(:k) AS locked"), {"k": key}
        ).scalar()
        return bool(got)
    except Exception:  # noqa: BLE001
        return False


def unlock_advisory_lock(session: Session, *, name: str) -> None:
    if not is_postgres(session):
        return
    key = advisory_lock_key(name=name)
    try:
        session.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})
        session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()


@contextlib.contextmanager
def advisory_lock(session: Session, *, name: str) -> Iterator[bool]:
    acquired = try_advisory_lock(session, name=name)
    try:
        yield acquired
    finally:
        if acquired:
            unlock_advisory_lock(session, name=name)


def try_advisory_xact_lock(session: Session, *, name: str) -> bool:
    """Transaction-scoped lock; released on commit/rollback. Always acquired outside PostgreSQL."""
    if not is_postgres(session):
        return True
    key = advisory_lock_key(name=name)
    got = session.execute(
        text("SELECT pg_try_advisory_xact_lock(:k) AS locked"), {"k": key}
    ).scalar()
    return bool(got)


def lock_user_progress(session: Session, *, user_id: str) -> None:
    if not try_advisory_xact_lock(session, name=progress_lock_name(user_id)):
        raise ProgressConflictError(str(user_id))
