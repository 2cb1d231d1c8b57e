from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

import orjson


# Requirement keys -> counter names used by composite rules and sums.
COUNTER_KEYS: tuple[str, ...] = (
    "checkin_count",
    "prayer_count",
    "victory_count",
    "comment_count",
    "checkin_streak_current",
    "checkin_streak_longest",
)

SIMPLE_COUNTER_TYPES: tuple[str, ...] = (
    "checkin_count",
    "prayer_count",
    "victory_count",
    "comment_count",
)


@dataclass(frozen=True)
class StreakRequirement:
    value: int


@dataclass(frozen=True)
class CounterRequirement:
    key: str
    value: int


@dataclass(frozen=True)
class CompositeRule:
    key: str
    value: int


@dataclass(frozen=True)
class CompositeRequirement:
    rules: tuple[CompositeRule, ...]


@dataclass(frozen=True)
class CompositeSumRequirement:
    fields: tuple[str, ...]
    value: int


@dataclass(frozen=True)
class UnknownRequirement:
    type: str | None = None


Requirement = Union[
    StreakRequirement,
    CounterRequirement,
    CompositeRequirement,
    CompositeSumRequirement,
    UnknownRequirement,
]


def _as_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    return None


def parse_requirement(raw: Any) -> Requirement:
    """
    Parse a stored requirement descriptor into its typed variant.

    Anything malformed becomes UnknownRequirement, which never satisfies, so a
    bad catalog row cannot block evaluation of the others.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = orjson.loads(raw or "{}")
        except orjson.JSONDecodeError:
            return UnknownRequirement()
    if not isinstance(raw, dict):
        return UnknownRequirement()

    kind = raw.get("type")
    kind_s = str(kind) if kind is not None else None

    if kind_s == "checkin_streak":
        value = _as_int(raw.get("value"))
        if value is None:
            return UnknownRequirement(type=kind_s)
        return StreakRequirement(value=value)

    if kind_s in SIMPLE_COUNTER_TYPES:
        value = _as_int(raw.get("value"))
        if value is None:
            return UnknownRequirement(type=kind_s)
        return CounterRequirement(key=kind_s, value=value)

    if kind_s == "composite":
        rules_raw = raw.get("rules") or []
        if not isinstance(rules_raw, list):
            return UnknownRequirement(type=kind_s)
        rules: list[CompositeRule] = []
        for r in rules_raw:
            if not isinstance(r, dict):
                return UnknownRequirement(type=kind_s)
            v = _as_int(r.get("v"))
            if v is None:
                return UnknownRequirement(type=kind_s)
            rules.append(CompositeRule(key=str(r.get("k") or ""), value=v))
        return CompositeRequirement(rules=tuple(rules))

    if kind_s == "composite_sum":
        fields_raw = raw.get("fields") or []
        if not isinstance(fields_raw, list):
            return UnknownRequirement(type=kind_s)
        value = _as_int(raw.get("value", 0))
        if value is None:
            return UnknownRequirement(type=kind_s)
        return CompositeSumRequirement(
            fields=tuple(str(f) for f in fields_raw), value=value
        )

    return UnknownRequirement(type=kind_s)


def requirement_to_dict(req: Requirement) -> dict[str, Any]:
    if isinstance(req, StreakRequirement):
        return {"type": "checkin_streak", "value": req.value}
    if isinstance(req, CounterRequirement):
        return {"type": req.key, "value": req.value}
    if isinstance(req, CompositeRequirement):
        return {
            "type": "composite",
            "rules": [{"k": r.key, "v": r.value} for r in req.rules],
        }
    if isinstance(req, CompositeSumRequirement):
        return {"type": "composite_sum", "fields": list(req.fields), "value": req.value}
    return {"type": req.type} if req.type else {}


def counter_value(counters: Mapping[str, int], key: str) -> int:
    # Unknown keys count as zero.
    if key not in COUNTER_KEYS:
        return 0
    return int(counters.get(key) or 0)


def is_satisfied(req: Requirement, counters: Mapping[str, int]) -> bool:
    if isinstance(req, StreakRequirement):
        return (
            counter_value(counters, "checkin_streak_longest") >= req.value
            or counter_value(counters, "checkin_streak_current") >= req.value
        )
    if isinstance(req, CounterRequirement):
        return counter_value(counters, req.key) >= req.value
    if isinstance(req, CompositeRequirement):
        if not req.rules:
            return False
        return all(counter_value(counters, r.key) >= r.value for r in req.rules)
    if isinstance(req, CompositeSumRequirement):
        total = sum(counter_value(counters, f) for f in req.fields)
        return total >= req.value
    if isinstance(req, UnknownRequirement):
        return False
    raise TypeError(f"unhandled requirement variant: {type(req).__name__}")
