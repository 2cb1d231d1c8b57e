from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from steadfast_api.errors import FeatureLockedError
from steadfast_api.models import UserProgress


FeatureKey = Literal[
    "victory_public_post",
    "communities_public_create",
    "multiple_accountability_partners",
    "create_multiple_public_communities",
    "post_more_than_one_victory",
]

FEATURE_THRESHOLDS: dict[str, int] = {
    "victory_public_post": 7,
    "communities_public_create": 14,
    "multiple_accountability_partners": 21,
    "create_multiple_public_communities": 30,
    "post_more_than_one_victory": 90,
}


@dataclass(frozen=True)
class FeatureStatus:
    key: str
    threshold_days: int
    unlocked: bool
    current_checkin_streak: int
    longest_checkin_streak: int
    remaining_days: int


def feature_threshold(feature: str) -> int:
    try:
        return FEATURE_THRESHOLDS[str(feature)]
    except KeyError:
        raise ValueError(f"unknown feature: {feature!r}") from None


def has_feature_unlocked(progress: UserProgress, feature: str) -> bool:
    # Gated on the current relapse-free streak, not the longest one.
    return int(progress.current_checkin_streak or 0) >= feature_threshold(feature)


def require_feature_unlocked(progress: UserProgress, feature: str) -> None:
    if not has_feature_unlocked(progress, feature):
        raise FeatureLockedError(
            feature=str(feature), threshold_days=feature_threshold(feature)
        )


def feature_statuses(progress: UserProgress) -> list[FeatureStatus]:
    current = int(progress.current_checkin_streak or 0)
    longest = int(progress.longest_checkin_streak or 0)
    out: list[FeatureStatus] = []
    for key, threshold in FEATURE_THRESHOLDS.items():
        out.append(
            FeatureStatus(
                key=key,
                threshold_days=threshold,
                unlocked=current >= threshold,
                current_checkin_streak=current,
                longest_checkin_streak=longest,
                remaining_days=max(0, threshold - current),
            )
        )
    return out
