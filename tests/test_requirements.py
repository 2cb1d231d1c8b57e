from __future__ import annotations

from steadfast_api.requirements import (
    CompositeRequirement,
    CompositeRule,
    CompositeSumRequirement,
    CounterRequirement,
    StreakRequirement,
    UnknownRequirement,
    is_satisfied,
    parse_requirement,
    requirement_to_dict,
)


def _counters(**kw: int) -> dict[str, int]:
    base = {
        "checkin_count": 0,
        "prayer_count": 0,
        "victory_count": 0,
        "comment_count": 0,
        "checkin_streak_current": 0,
        "checkin_streak_longest": 0,
    }
    base.update(kw)
    return base


def test_parse_known_variants() -> None:
    assert parse_requirement({"type": "checkin_streak", "value": 7}) == StreakRequirement(7)
    assert parse_requirement('{"type": "prayer_count", "value": 3}') == CounterRequirement(
        key="prayer_count", value=3
    )
    comp = parse_requirement(
        {"type": "composite", "rules": [{"k": "checkin_count", "v": 5}]}
    )
    assert comp == CompositeRequirement(rules=(CompositeRule("checkin_count", 5),))
    csum = parse_requirement(
        b'{"type": "composite_sum", "fields": ["prayer_count", "victory_count"], "value": 4}'
    )
    assert csum == CompositeSumRequirement(fields=("prayer_count", "victory_count"), value=4)


def test_malformed_descriptors_become_unknown() -> None:
    assert isinstance(parse_requirement("not json"), UnknownRequirement)
    assert isinstance(parse_requirement([1, 2]), UnknownRequirement)
    assert isinstance(parse_requirement({"type": "checkin_streak"}), UnknownRequirement)
    assert isinstance(
        parse_requirement({"type": "prayer_count", "value": True}), UnknownRequirement
    )
    assert isinstance(
        parse_requirement({"type": "composite", "rules": [{"k": "checkin_count"}]}),
        UnknownRequirement,
    )
    assert parse_requirement({"type": "moon_phase", "value": 1}) == UnknownRequirement(
        type="moon_phase"
    )


def test_unknown_requirement_never_satisfies() -> None:
    maxed = _counters(
        checkin_count=10_000,
        prayer_count=10_000,
        victory_count=10_000,
        comment_count=10_000,
        checkin_streak_current=10_000,
        checkin_streak_longest=10_000,
    )
    assert is_satisfied(UnknownRequirement(type="moon_phase"), maxed) is False
    assert is_satisfied(UnknownRequirement(), maxed) is False


def test_streak_requirement_uses_longest_or_current() -> None:
    req = StreakRequirement(7)
    assert is_satisfied(req, _counters(checkin_streak_longest=7)) is True
    assert is_satisfied(req, _counters(checkin_streak_current=7)) is True
    assert is_satisfied(req, _counters(checkin_streak_longest=6)) is False


def test_counter_threshold() -> None:
    req = CounterRequirement(key="comment_count", value=5)
    assert is_satisfied(req, _counters(comment_count=4)) is False
    assert is_satisfied(req, _counters(comment_count=5)) is True


def test_composite_requires_every_rule() -> None:
    req = parse_requirement(
        {
            "type": "composite",
            "rules": [{"k": "checkin_count", "v": 5}, {"k": "victory_count", "v": 2}],
        }
    )
    assert is_satisfied(req, _counters(checkin_count=5, victory_count=1)) is False
    assert is_satisfied(req, _counters(checkin_count=4, victory_count=2)) is False
    assert is_satisfied(req, _counters(checkin_count=5, victory_count=2)) is True


def test_empty_composite_never_satisfies() -> None:
    req = parse_requirement({"type": "composite", "rules": []})
    assert isinstance(req, CompositeRequirement)
    assert is_satisfied(req, _counters(checkin_count=100)) is False


def test_composite_rule_on_unknown_key_counts_zero() -> None:
    req = CompositeRequirement(rules=(CompositeRule("karma", 1),))
    assert is_satisfied(req, _counters(checkin_count=99)) is False
    assert is_satisfied(CompositeRequirement(rules=(CompositeRule("karma", 0),)), _counters())


def test_composite_sum_totals_fields() -> None:
    req = CompositeSumRequirement(
        fields=("prayer_count", "victory_count", "comment_count"), value=10
    )
    assert is_satisfied(req, _counters(prayer_count=3, victory_count=3, comment_count=3)) is False
    assert is_satisfied(req, _counters(prayer_count=4, victory_count=3, comment_count=3)) is True


def test_composite_sum_value_defaults_to_zero() -> None:
    req = parse_requirement({"type": "composite_sum", "fields": ["prayer_count"]})
    assert req == CompositeSumRequirement(fields=("prayer_count",), value=0)
    assert is_satisfied(req, _counters()) is True


def test_requirement_to_dict_matches_stored_shape() -> None:
    raw = {
        "type": "composite",
        "rules": [{"k": "checkin_count", "v": 5}, {"k": "victory_count", "v": 2}],
    }
    assert requirement_to_dict(parse_requirement(raw)) == raw
    assert requirement_to_dict(UnknownRequirement()) == {}
