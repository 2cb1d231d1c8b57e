from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest


def _victory(user_id: str, at: datetime):
    from steadfast_api.models import Victory

    return Victory(
        id=f"vi_{uuid4().hex}",
        user_id=user_id,
        title="Held the line",
        body=None,
        visibility="partner",
        created_at=at,
    )


def _checkin(user_id: str, at: datetime, status: str = "victory"):
    from steadfast_api.models import CheckIn

    return CheckIn(
        id=f"ci_{uuid4().hex}",
        user_id=user_id,
        mood=0.7,
        note=None,
        visibility="private",
        partner_ids_json="[]",
        status=status,
        is_automatic=False,
        created_at=at,
    )


def test_parse_month_accepts_and_rejects() -> None:
    from steadfast_api.errors import InvalidMonthError
    from steadfast_api.progress_queries import month_bounds, parse_month

    assert parse_month("2026-03") == (2026, 3)
    assert parse_month("2026-3") == (2026, 3)
    for bad in ("2026-13", "2026-00", "March", "2026/03", "", "26-03"):
        with pytest.raises(InvalidMonthError):
            parse_month(bad)

    start, end = month_bounds(2026, 12)
    assert start == datetime(2026, 12, 1, tzinfo=UTC)
    assert end == datetime(2027, 1, 1, tzinfo=UTC)


def test_calendar_marks_victory_days_in_month(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progress_queries import calendar_for_month

    user_id = make_user()
    other_id = make_user()
    with SessionLocal() as session:
        session.add(_victory(user_id, datetime(2026, 3, 5, 10, 0, tzinfo=UTC)))
        session.add(_victory(user_id, datetime(2026, 3, 5, 18, 0, tzinfo=UTC)))
        session.add(_victory(user_id, datetime(2026, 3, 31, 23, 59, tzinfo=UTC)))
        session.add(_victory(user_id, datetime(2026, 4, 1, 0, 0, tzinfo=UTC)))
        session.add(_victory(user_id, datetime(2026, 2, 28, 23, 59, tzinfo=UTC)))
        session.add(_victory(other_id, datetime(2026, 3, 10, 12, 0, tzinfo=UTC)))
        # Victory-status check-ins do not mark the calendar.
        session.add(_checkin(user_id, datetime(2026, 3, 12, 12, 0, tzinfo=UTC)))
        session.commit()

        days = calendar_for_month(session, user_id=user_id, month="2026-03")
        assert days == {
            "2026-03-05": {"victory": True},
            "2026-03-31": {"victory": True},
        }
        assert calendar_for_month(session, user_id=user_id, month="2026-01") == {}


def test_calendar_invalid_month_raises(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.errors import InvalidMonthError
    from steadfast_api.progress_queries import calendar_for_month

    user_id = make_user()
    with SessionLocal() as session:
        with pytest.raises(InvalidMonthError):
            calendar_for_month(session, user_id=user_id, month="2026-13")


def test_window_start_includes_today() -> None:
    from steadfast_api.progress_queries import window_start

    now = datetime(2026, 5, 29, 12, 0, tzinfo=UTC)
    assert window_start(now=now, days=28) == datetime(2026, 5, 2, tzinfo=UTC)
    assert window_start(now=now, days=1) == datetime(2026, 5, 29, tzinfo=UTC)


def test_analytics_all_time_reads_counters(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progress_queries import analytics
    from steadfast_api.progression import increment_counter, record_checkin

    user_id = make_user()
    t0 = datetime(2026, 5, 1, 8, 0, tzinfo=UTC)
    with SessionLocal() as session:
        record_checkin(session, user_id=user_id, created_at=t0, status="victory")
        record_checkin(
            session, user_id=user_id, created_at=t0 + timedelta(days=1), status="victory"
        )
        increment_counter(session, user_id=user_id, field="prayer_count", now=t0)
        increment_counter(session, user_id=user_id, field="comment_count", now=t0)
        increment_counter(session, user_id=user_id, field="comment_count", now=t0)
        session.commit()

        s = analytics(session, user_id=user_id, period="all_time")
        assert s.period == "all_time"
        assert (s.checkins, s.prayers, s.victories, s.comments) == (2, 1, 0, 2)
        assert s.current_checkin_streak == 2
        assert s.longest_checkin_streak == 2
        assert s.window_start is None


def test_analytics_last_4_weeks_counts_window_rows(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import PrayerRequest
    from steadfast_api.progress_queries import analytics

    user_id = make_user()
    now = datetime(2026, 5, 29, 12, 0, tzinfo=UTC)
    inside = datetime(2026, 5, 2, 0, 30, tzinfo=UTC)
    outside = datetime(2026, 5, 1, 23, 30, tzinfo=UTC)
    with SessionLocal() as session:
        session.add(_checkin(user_id, inside))
        session.add(_checkin(user_id, outside))
        session.add(_checkin(user_id, now - timedelta(hours=1), status="relapse"))
        session.add(_victory(user_id, inside))
        session.add(
            PrayerRequest(
                id=f"pr_{uuid4().hex}",
                user_id=user_id,
                title="Strength",
                body=None,
                created_at=outside,
            )
        )
        session.commit()

        s = analytics(session, user_id=user_id, period="last_4_weeks", now=now)
        assert s.checkins == 2
        assert s.victories == 1
        assert s.prayers == 0
        assert s.comments == 0
        assert s.window_start == datetime(2026, 5, 2, tzinfo=UTC)


def test_analytics_rejects_unknown_period(make_user) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.progress_queries import analytics

    with SessionLocal() as session:
        with pytest.raises(ValueError):
            analytics(session, user_id=make_user(), period="forever")  # type: ignore[arg-type]


def test_achievements_for_user_previews_can_unlock(make_user) -> None:
    from steadfast_api.achievement_catalog import DEFAULT_ACHIEVEMENTS
    from steadfast_api.db import SessionLocal
    from steadfast_api.progress_queries import achievements_for_user
    from steadfast_api.progression import ensure_progress

    user_id = make_user()
    with SessionLocal() as session:
        p = ensure_progress(session, user_id=user_id)
        p.prayer_count = 1
        session.commit()

        items = {a.code: a for a in achievements_for_user(session, user_id=user_id)}
        assert {str(d["code"]) for d in DEFAULT_ACHIEVEMENTS} <= set(items)
        first_prayer = items["first_prayer"]
        assert first_prayer.unlocked is False
        assert first_prayer.can_unlock is True
        assert first_prayer.requirement == {"type": "prayer_count", "value": 1}
        assert items["streak_7"].can_unlock is False
