from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import orjson
from sqlalchemy import select
from sqlalchemy.orm import Session

from steadfast_api.models import Achievement


# Streak tiers line up with the feature unlock thresholds (7/14/21/30/90).
DEFAULT_ACHIEVEMENTS: list[dict[str, Any]] = [
    {
        "code": "streak_7",
        "title": "Weekly Walk",
        "description": "Check in 7 days in a row.",
        "category": "streak",
        "tier": "bronze",
        "requirement": {"type": "checkin_streak", "value": 7},
        "points": 25,
        "scripture_ref": "Hebrews 12:1",
        "blessing_text": "Run with endurance the race set before you.",
        "icon": "streak_bronze",
    },
    {
        "code": "streak_14",
        "title": "Fortnight of Faith",
        "description": "Check in 14 days in a row.",
        "category": "streak",
        "tier": "silver",
        "requirement": {"type": "checkin_streak", "value": 14},
        "points": 50,
        "scripture_ref": "Psalm 1:2-3",
        "blessing_text": "Rooted by streams of living water.",
        "icon": "streak_silver",
    },
    {
        "code": "streak_21",
        "title": "Daniel Fast of Faith",
        "description": "Check in 21 days in a row.",
        "category": "streak",
        "tier": "silver",
        "requirement": {"type": "checkin_streak", "value": 21},
        "points": 75,
        "scripture_ref": "Daniel 10:3",
        "blessing_text": "Your perseverance is heard in heaven.",
        "icon": "streak_silver_2",
    },
    {
        "code": "streak_30",
        "title": "Mountain Mover",
        "description": "Check in 30 days in a row.",
        "category": "streak",
        "tier": "gold",
        "requirement": {"type": "checkin_streak", "value": 30},
        "points": 120,
        "scripture_ref": "Matthew 17:20",
        "blessing_text": "Faith that moves mountains grows day by day.",
        "icon": "streak_gold",
    },
    {
        "code": "streak_90",
        "title": "Season of Victory",
        "description": "Check in 90 days in a row.",
        "category": "streak",
        "tier": "platinum",
        "requirement": {"type": "checkin_streak", "value": 90},
        "points": 300,
        "scripture_ref": "Galatians 6:9",
        "blessing_text": "In due season you will reap if you do not give up.",
        "icon": "streak_platinum",
    },
    {
        "code": "first_prayer",
        "title": "First Prayer",
        "description": "Share your first prayer request.",
        "category": "prayer",
        "tier": "bronze",
        "requirement": {"type": "prayer_count", "value": 1},
        "points": 10,
        "icon": "prayer_bronze",
    },
    {
        "code": "prayer_warrior_10",
        "title": "Prayer Warrior",
        "description": "Share 10 prayer requests.",
        "category": "prayer",
        "tier": "silver",
        "requirement": {"type": "prayer_count", "value": 10},
        "points": 40,
        "icon": "prayer_silver",
    },
    {
        "code": "first_victory",
        "title": "First Victory",
        "description": "Celebrate your first victory.",
        "category": "victory",
        "tier": "bronze",
        "requirement": {"type": "victory_count", "value": 1},
        "points": 10,
        "icon": "victory_bronze",
    },
    {
        "code": "chain_breaker_10",
        "title": "Chain Breaker",
        "description": "Celebrate 10 victories.",
        "category": "victory",
        "tier": "silver",
        "requirement": {"type": "victory_count", "value": 10},
        "points": 40,
        "icon": "victory_silver",
    },
    {
        "code": "encourager_5",
        "title": "Encourager",
        "description": "Leave 5 encouraging comments.",
        "category": "comment",
        "tier": "bronze",
        "requirement": {"type": "comment_count", "value": 5},
        "points": 15,
        "icon": "comment_bronze",
    },
    {
        "code": "faithful_encourager",
        "title": "Faithful Encourager",
        "description": "Check in 5 times and celebrate 2 victories.",
        "category": "engagement",
        "tier": "silver",
        "requirement": {
            "type": "composite",
            "rules": [{"k": "checkin_count", "v": 5}, {"k": "victory_count", "v": 2}],
        },
        "points": 30,
        "icon": "engagement_silver",
    },
    {
        "code": "community_pillar",
        "title": "Community Pillar",
        "description": "Reach 50 prayers, victories and comments combined.",
        "category": "engagement",
        "tier": "gold",
        "requirement": {
            "type": "composite_sum",
            "fields": ["prayer_count", "victory_count", "comment_count"],
            "value": 50,
        },
        "points": 100,
        "icon": "engagement_gold",
    },
]


def achievement_id_for_code(code: str) -> str:
    return f"ach_{str(code)}"


def seed_default_achievements(
    session: Session, *, now: datetime | None = None
) -> list[str]:
    """Insert catalog entries missing by code. Returns the codes that were added."""
    now_dt = now or datetime.now(UTC)
    existing = set(session.scalars(select(Achievement.code)).all())
    added: list[str] = []
    for item in DEFAULT_ACHIEVEMENTS:
        code = str(item["code"])
        if code in existing:
            continue
        session.add(
            Achievement(
                id=achievement_id_for_code(code),
                code=code,
                title=str(item["title"]),
                description=item.get("description"),
                category=str(item["category"]),
                tier=str(item.get("tier") or "bronze"),
                requirement_json=orjson.dumps(item["requirement"]).decode("utf-8"),
                points=item.get("points"),
                icon=item.get("icon"),
                scripture_ref=item.get("scripture_ref"),
                blessing_text=item.get("blessing_text"),
                created_at=now_dt,
            )
        )
        added.append(code)
    return added
