from __future__ import annotations


def test_advisory_lock_key_is_stable_and_distinct() -> None:
    from steadfast_api.locks import advisory_lock_key, progress_lock_name

    a1 = advisory_lock_key(name=progress_lock_name("user_a"))
    a2 = advisory_lock_key(name=progress_lock_name("user_a"))
    b = advisory_lock_key(name=progress_lock_name("user_b"))

    assert isinstance(a1, int)
    assert -(2**63) <= a1 < 2**63
    assert a1 == a2
    assert a1 != b


def test_locks_are_noops_on_sqlite(seeded_db) -> None:
    from steadfast_api.db import SessionLocal
    from steadfast_api.locks import (
        advisory_lock,
        is_postgres,
        lock_user_progress,
        try_advisory_xact_lock,
    )

    with SessionLocal() as session:
        assert is_postgres(session) is False
        assert try_advisory_xact_lock(session, name="noop_test") is True
        lock_user_progress(session, user_id="user_demo")
        with advisory_lock(session, name="scheduler_auto_checkin") as acquired:
            assert acquired is True


def test_scheduler_run_once_reports_counts(seeded_db) -> None:
    from steadfast_api.scheduler_main import run_once

    # No user in the test database sits at UTC-11.
    res = run_once(offset_hours=-11.0)
    assert res["ok"] is True
    assert res["auto_checkins"] == 0
    assert res["achievements_unlocked"] == 0
