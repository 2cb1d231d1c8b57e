from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import orjson
import pytest


T0 = datetime(2026, 2, 1, 9, 0, 0, tzinfo=UTC)


def test_ensure_progress_creates_zero_row_once(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import UserProgress
    from steadfast_api.progression import ensure_progress

    user_id = make_user()
    with SessionLocal() as session:
        assert session.get(UserProgress, user_id) is None
        p1 = ensure_progress(session, user_id=user_id, now=T0)
        p2 = ensure_progress(session, user_id=user_id, now=T0)
        session.commit()
        assert p1 is p2
        assert int(p1.checkin_count) == 0
        assert int(p1.current_checkin_streak) == 0
        assert p1.last_checkin_date is None

    with SessionLocal() as session:
        rows = session.query(UserProgress).filter(UserProgress.user_id == user_id).all()
        assert len(rows) == 1


def test_record_checkin_persists_streak_and_logs_event(make_user) -> None:
    from sqlalchemy import select

    from steadfast_api.db import SessionLocal
    from steadfast_api.models import Event, UserProgress
    from steadfast_api.progression import record_checkin

    user_id = make_user()
    with SessionLocal() as session:
        for i in range(3):
            record_checkin(
                session, user_id=user_id, created_at=T0 + timedelta(days=i), status="victory"
            )
        record_checkin(
            session, user_id=user_id, created_at=T0 + timedelta(days=3), status="relapse"
        )
        session.commit()

    with SessionLocal() as session:
        p = session.get(UserProgress, user_id)
        assert p is not None
        assert int(p.checkin_count) == 4
        assert int(p.current_checkin_streak) == 0
        assert int(p.longest_checkin_streak) == 3
        assert p.last_checkin_date == date(2026, 2, 4)
        assert p.last_relapse_date == date(2026, 2, 4)

        events = session.scalars(
            select(Event)
            .where(Event.user_id == user_id)
            .where(Event.type == "checkin_recorded")
        ).all()
        assert len(events) == 4
        payloads = [orjson.loads(e.payload_json) for e in events]
        assert sorted(int(pl["streak_after"]) for pl in payloads) == [0, 1, 2, 3]


def test_backdated_checkin_rejected_leaves_row_untouched(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.errors import BackdatedCheckInError
    from steadfast_api.models import UserProgress
    from steadfast_api.progression import record_checkin

    user_id = make_user()
    with SessionLocal() as session:
        record_checkin(session, user_id=user_id, created_at=T0, status="victory")
        session.commit()

    with SessionLocal() as session:
        with pytest.raises(BackdatedCheckInError):
            record_checkin(
                session, user_id=user_id, created_at=T0 - timedelta(days=2), status="victory"
            )
        session.rollback()

    with SessionLocal() as session:
        p = session.get(UserProgress, user_id)
        assert p is not None
        assert int(p.checkin_count) == 1
        assert p.last_checkin_date == T0.date()


def test_backdated_checkin_ignore_streak_policy(make_user, monkeypatch) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progression import record_checkin

    monkeypatch.setenv("STEADFAST_BACKDATED_CHECKIN_POLICY", "ignore_streak")
    user_id = make_user()
    with SessionLocal() as session:
        record_checkin(session, user_id=user_id, created_at=T0, status="victory")
        p = record_checkin(
            session, user_id=user_id, created_at=T0 - timedelta(days=2), status="relapse"
        )
        session.commit()
        assert int(p.checkin_count) == 2
        assert int(p.current_checkin_streak) == 1
        assert p.last_relapse_date is None


def test_increment_counter_rejects_unknown_field(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progression import increment_counter

    user_id = make_user()
    with SessionLocal() as session:
        with pytest.raises(ValueError):
            increment_counter(session, user_id=user_id, field="checkin_count")  # type: ignore[arg-type]


def test_increment_counter_counts_and_unlocks_first_prayer(make_user) -> None:
    from steadfast_api.achievement_catalog import achievement_id_for_code
    from steadfast_api.db import SessionLocal
    from steadfast_api.progression import evaluate_and_unlock, increment_counter

    user_id = make_user()
    with SessionLocal() as session:
        p = increment_counter(session, user_id=user_id, field="prayer_count", now=T0)
        assert int(p.prayer_count) == 1
        newly = evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()
        assert [ua.achievement_id for ua in newly] == [achievement_id_for_code("first_prayer")]

        # Nothing changed, nothing new.
        assert evaluate_and_unlock(session, user_id=user_id, now=T0) == []
        session.commit()


def test_composite_unlock_requires_all_rules(make_user) -> None:
    from steadfast_api.achievement_catalog import achievement_id_for_code
    from steadfast_api.db import SessionLocal
    from steadfast_api.progression import (
        evaluate_and_unlock,
        increment_counter,
        record_checkin,
    )

    composite_id = achievement_id_for_code("faithful_encourager")
    user_id = make_user()
    with SessionLocal() as session:
        for i in range(5):
            record_checkin(
                session, user_id=user_id, created_at=T0 + timedelta(days=i), status="victory"
            )
        increment_counter(session, user_id=user_id, field="victory_count", now=T0)
        first = evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()
        assert composite_id not in {ua.achievement_id for ua in first}
        assert achievement_id_for_code("first_victory") in {ua.achievement_id for ua in first}

        increment_counter(session, user_id=user_id, field="victory_count", now=T0)
        second = evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()
        assert [ua.achievement_id for ua in second] == [composite_id]


def test_unlock_snapshot_is_frozen_at_unlock_time(make_user) -> None:
    from sqlalchemy import select

    from steadfast_api.achievement_catalog import achievement_id_for_code
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import UserAchievement
    from steadfast_api.progression import evaluate_and_unlock, increment_counter

    user_id = make_user()
    with SessionLocal() as session:
        increment_counter(session, user_id=user_id, field="prayer_count", now=T0)
        evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()
        for _ in range(3):
            increment_counter(session, user_id=user_id, field="prayer_count", now=T0)
        evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()

    with SessionLocal() as session:
        ua = session.scalar(
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id)
            .where(UserAchievement.achievement_id == achievement_id_for_code("first_prayer"))
        )
        assert ua is not None
        snap = orjson.loads(ua.progress_snapshot_json)
        assert snap["prayer_count"] == 1
        assert set(snap) == {
            "checkin_count",
            "prayer_count",
            "victory_count",
            "comment_count",
            "current_checkin_streak",
            "longest_checkin_streak",
        }


def test_duplicate_unlock_insert_is_swallowed(make_user) -> None:
    from sqlalchemy import func, select

    from steadfast_api.achievement_catalog import achievement_id_for_code
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import UserAchievement
    from steadfast_api.progression import _insert_unlock, ensure_progress

    user_id = make_user()
    ach_id = achievement_id_for_code("first_victory")
    with SessionLocal() as session:
        ensure_progress(session, user_id=user_id, now=T0)
        first = _insert_unlock(
            session, user_id=user_id, achievement_id=ach_id, snapshot={}, now=T0
        )
        again = _insert_unlock(
            session, user_id=user_id, achievement_id=ach_id, snapshot={}, now=T0
        )
        session.commit()
        assert first is not None
        assert again is None
        n = session.scalar(
            select(func.count())
            .select_from(UserAchievement)
            .where(UserAchievement.user_id == user_id)
        )
        assert int(n or 0) == 1


def test_unlocks_round_trip_through_unlocked_ids(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progression import (
        evaluate_and_unlock,
        increment_counter,
        unlocked_achievement_ids,
    )

    user_id = make_user()
    with SessionLocal() as session:
        increment_counter(session, user_id=user_id, field="prayer_count", now=T0)
        increment_counter(session, user_id=user_id, field="victory_count", now=T0)
        newly = evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()

    with SessionLocal() as session:
        assert unlocked_achievement_ids(session, user_id=user_id) == {
            ua.achievement_id for ua in newly
        }


def test_catalog_with_bad_requirement_does_not_block_others(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import Achievement
    from steadfast_api.progression import evaluate_and_unlock, increment_counter

    with SessionLocal() as session:
        if session.get(Achievement, "ach_test_broken") is None:
            session.add(
                Achievement(
                    id="ach_test_broken",
                    code="test_broken",
                    title="Broken",
                    category="test",
                    tier="bronze",
                    requirement_json="{not json",
                    created_at=T0,
                )
            )
            session.commit()

    user_id = make_user()
    with SessionLocal() as session:
        increment_counter(session, user_id=user_id, field="comment_count", now=T0)
        newly = evaluate_and_unlock(session, user_id=user_id, now=T0)
        session.commit()
        assert "ach_test_broken" not in {ua.achievement_id for ua in newly}
