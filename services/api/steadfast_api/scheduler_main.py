from __future__ import annotations

import argparse
import signal
import time
from datetime import UTC, datetime

import orjson

from steadfast_api.auto_checkin import run_auto_checkins
from steadfast_api.core.config import Settings
from steadfast_api.db import SessionLocal
from steadfast_api.locks import advisory_lock


def run_once(
    *, now: datetime | None = None, offset_hours: float | None = None
) -> dict[str, object]:
    now_dt = now or datetime.now(UTC)
    with SessionLocal() as session:
        with advisory_lock(session, name="scheduler_auto_checkin") as acquired:
            if not acquired:
                return {"ok": True, "generated_at": now_dt.isoformat(), "skipped": True}
            results = run_auto_checkins(session, now=now_dt, offset_hours=offset_hours)
    return {
        "ok": True,
        "generated_at": now_dt.isoformat(),
        "auto_checkins": len(results),
        "achievements_unlocked": sum(r.achievements_unlocked for r in results),
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Steadfast scheduler (automatic end-of-day check-ins)."
    )
    parser.add_argument("--once", action="store_true", help="Run once and exit.")
    parser.add_argument(
        "--offset-hours",
        type=float,
        default=None,
        help="Only process users at this UTC offset (e.g. -5, 5.5).",
    )
    args = parser.parse_args(argv)

    settings = Settings()
    if not bool(settings.auto_checkin_enabled):
        print("[scheduler] disabled (STEADFAST_AUTO_CHECKIN_ENABLED=false)")
        return 0

    stop = {"flag": False}

    def _handle(_sig, _frame) -> None:  # noqa: ANN001
        stop["flag"] = True

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)

    interval_sec = max(60, int(settings.scheduler_interval_minutes or 60) * 60)

    while True:
        res = run_once(offset_hours=args.offset_hours)
        print(f"[scheduler] ok: {orjson.dumps(res).decode('utf-8')}")
        if args.once or stop["flag"]:
            return 0
        time.sleep(interval_sec)


if __name__ == "__main__":
    raise SystemExit(main())
