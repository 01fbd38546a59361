"""Smart-collection rule evaluation tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rosterlab.curation import (
    CatalogEntry,
    Combinator,
    Comparator,
    FilterField,
    FilterRule,
    SmartCollectionEvaluator,
    field_applies,
)
from rosterlab.library import ContentKind, ContentStatus

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

RYU = CatalogEntry(
    kind=ContentKind.CHARACTER,
    id="ryu",
    name="Ryu",
    author="Phantom",
    status=ContentStatus.ACTIVE,
    installed_at=NOW - timedelta(days=3),
    source_game="Street Fighter",
    style="POTS Style",
    is_hd=True,
    has_ai=False,
    tags=["Street Fighter", "POTS Style", "HD"],
)
KFM = CatalogEntry(
    kind=ContentKind.CHARACTER,
    id="kfm",
    name="Kung Fu Man",
    author="Elecbyte",
    status=ContentStatus.DISABLED,
    installed_at=NOW - timedelta(days=40),
)
TEMPLE = CatalogEntry(
    kind=ContentKind.STAGE,
    id="temple",
    name="Temple",
    author="Elecbyte",
    status=ContentStatus.ACTIVE,
    total_width=640,
    has_music=True,
    tags=["Night"],
)
CATALOG = [RYU, KFM, TEMPLE]


def _rule(field: FilterField, comparator: Comparator, value: str = "") -> FilterRule:
    return FilterRule(field=field, comparator=comparator, value=value)


def _ids(rules: list[FilterRule], combinator: Combinator = Combinator.ALL) -> list[str]:
    evaluator = SmartCollectionEvaluator(clock=lambda: NOW)
    return [entry.id for entry in evaluator.evaluate(CATALOG, rules, combinator)]


def test_empty_rules_follow_combinator() -> None:
    assert _ids([]) == ["ryu", "kfm", "temple"]
    assert _ids([], Combinator.ANY) == []


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        (_rule(FilterField.NAME, Comparator.CONTAINS, "KUNG"), ["kfm"]),
        (_rule(FilterField.NAME, Comparator.EQUALS, "ryu"), ["ryu"]),
        (_rule(FilterField.AUTHOR, Comparator.NOT_EQUALS, "elecbyte"), ["ryu"]),
        (_rule(FilterField.AUTHOR, Comparator.NOT_CONTAINS, "byte"), ["ryu"]),
        (_rule(FilterField.STATUS, Comparator.EQUALS, "active"), ["ryu", "temple"]),
        (_rule(FilterField.SOURCE_GAME, Comparator.IS_EMPTY), ["kfm", "temple"]),
        (_rule(FilterField.SOURCE_GAME, Comparator.EQUALS, "street fighter"), ["ryu"]),
    ],
)
def test_string_comparisons(rule: FilterRule, expected: list[str]) -> None:
    assert _ids([rule]) == expected


def test_tag_rules_use_comma_separated_sets() -> None:
    assert _ids([_rule(FilterField.TAG, Comparator.CONTAINS, "hd, night")]) == ["ryu", "temple"]
    assert _ids([_rule(FilterField.TAG, Comparator.NOT_CONTAINS, "hd")]) == ["kfm", "temple"]
    assert _ids([_rule(FilterField.TAG, Comparator.IS_EMPTY)]) == ["kfm"]
    assert _ids([_rule(FilterField.TAG, Comparator.CONTAINS, " , ")]) == []


def test_kind_specific_fields_never_match_the_other_kind() -> None:
    assert field_applies(FilterField.STYLE, ContentKind.STAGE) is False
    assert field_applies(FilterField.TOTAL_WIDTH, ContentKind.CHARACTER) is False
    assert _ids([_rule(FilterField.STYLE, Comparator.IS_EMPTY)]) == ["kfm"]
    assert _ids([_rule(FilterField.HAS_MUSIC, Comparator.IS_EMPTY)]) == []


def test_boolean_rules_accept_only_true_and_false() -> None:
    assert _ids([_rule(FilterField.IS_HD, Comparator.EQUALS, "TRUE")]) == ["ryu"]
    assert _ids([_rule(FilterField.IS_HD, Comparator.NOT_EQUALS, "true")]) == ["kfm"]
    assert _ids([_rule(FilterField.IS_HD, Comparator.EQUALS, "yes")]) == []
    assert _ids([_rule(FilterField.HAS_MUSIC, Comparator.EQUALS, "true")]) == ["temple"]


def test_numeric_rules() -> None:
    assert _ids([_rule(FilterField.TOTAL_WIDTH, Comparator.GREATER_THAN, "600")]) == ["temple"]
    assert _ids([_rule(FilterField.TOTAL_WIDTH, Comparator.LESS_THAN, "600")]) == []
    assert _ids([_rule(FilterField.TOTAL_WIDTH, Comparator.EQUALS, "wide")]) == []


def test_date_rules() -> None:
    assert _ids([_rule(FilterField.INSTALLED_AT, Comparator.WITHIN_DAYS, "7")]) == ["ryu"]
    assert _ids([_rule(FilterField.INSTALLED_AT, Comparator.WITHIN_DAYS, "seven")]) == []
    assert _ids([_rule(FilterField.INSTALLED_AT, Comparator.WITHIN_DAYS, "99999999999")]) == []
    assert _ids([_rule(FilterField.INSTALLED_AT, Comparator.LESS_THAN, "2024-05-01")]) == ["kfm"]
    assert _ids([_rule(FilterField.INSTALLED_AT, Comparator.IS_EMPTY)]) == ["temple"]


def test_combinators() -> None:
    rules = [
        _rule(FilterField.AUTHOR, Comparator.EQUALS, "elecbyte"),
        _rule(FilterField.STATUS, Comparator.EQUALS, "active"),
    ]

    assert _ids(rules) == ["temple"]
    assert _ids(rules, Combinator.ANY) == ["ryu", "kfm", "temple"]
