from __future__ import annotations

import argparse
from datetime import UTC, datetime

from sqlalchemy import delete

from steadfast_api.achievement_catalog import seed_default_achievements
from steadfast_api.db import Base, SessionLocal, engine
from steadfast_api.models import (
    CheckIn,
    Comment,
    Event,
    Notification,
    PrayerRequest,
    User,
    UserAchievement,
    UserProgress,
    Victory,
)


DEMO_USERS: list[dict[str, object]] = [
    {"id": "user_demo", "username": "demo", "display_name": "Demo Walker", "timezone": "UTC"},
    {"id": "user_partner", "username": "partner", "display_name": "Faithful Friend", "timezone": "EST"},
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the achievement catalog and demo users.")
    parser.add_argument(
        "--reset", action="store_true", help="Wipe demo users' activity and progress first."
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create tables directly (local SQLite without alembic).",
    )
    args = parser.parse_args()

    if args.create_schema:
        Base.metadata.create_all(engine)

    now = datetime.now(UTC)
    demo_ids = [str(u["id"]) for u in DEMO_USERS]

    with SessionLocal() as session:
        if args.reset:
            for model in (
                UserAchievement,
                UserProgress,
                CheckIn,
                PrayerRequest,
                Victory,
                Comment,
                Notification,
                Event,
            ):
                session.execute(delete(model).where(model.user_id.in_(demo_ids)))

        for demo_user in DEMO_USERS:
            if session.get(User, str(demo_user["id"])) is not None:
                continue
            session.add(
                User(
                    id=str(demo_user["id"]),
                    username=str(demo_user["username"]),
                    display_name=str(demo_user["display_name"]),
                    timezone=str(demo_user["timezone"]),
                    is_active=True,
                    created_at=now,
                )
            )

        added = seed_default_achievements(session, now=now)
        session.commit()

    print(f"[seed] users={len(DEMO_USERS)} achievements_added={len(added)}")


if __name__ == "__main__":
    main()
