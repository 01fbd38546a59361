"""Smart-collection rule evaluation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from rosterlab.library import ContentKind

from .models import CatalogEntry, Combinator, Comparator, FilterField, FilterRule

Clock = Callable[[], datetime]

CHARACTER_ONLY_FIELDS = frozenset({FilterField.STYLE, FilterField.IS_HD, FilterField.HAS_AI})
STAGE_ONLY_FIELDS = frozenset(
    {FilterField.TOTAL_WIDTH, FilterField.HAS_MUSIC, FilterField.RESOLUTION}
)

_TRUE = "true"
_FALSE = "false"


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _parse_date(text: str) -> datetime | None:
    try:
        return _utc(datetime.fromisoformat(text.strip()))
    except ValueError:
        return None


def _parse_number(text: str) -> float | None:
    try:
        return float(text.strip())
    except ValueError:
        return None


def field_applies(field: FilterField, kind: ContentKind) -> bool:
    """Return False for fields that only make sense for the other content kind."""
    if kind is ContentKind.CHARACTER:
        return field not in STAGE_ONLY_FIELDS
    if kind is ContentKind.STAGE:
        return field not in CHARACTER_ONLY_FIELDS
    return False


class SmartCollectionEvaluator:
    """Evaluate filter rules against catalog entries.

    Evaluation is pure apart from the injectable clock used by ``within_days``.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock: Clock = clock or (lambda: datetime.now(timezone.utc))

    def evaluate(
        self,
        items: Iterable[CatalogEntry],
        rules: Sequence[FilterRule],
        combinator: Combinator = Combinator.ALL,
    ) -> list[CatalogEntry]:
        """Return the items matching ``rules`` in their input order.

        With no rules, ``all`` matches every item and ``any`` matches none.
        """
        return [item for item in items if self.matches(item, rules, combinator)]

    def matches(
        self, item: CatalogEntry, rules: Sequence[FilterRule], combinator: Combinator
    ) -> bool:
        results = (self.evaluate_rule(rule, item) for rule in rules)
        if combinator is Combinator.ALL:
            return all(results)
        return any(results)

    def evaluate_rule(self, rule: FilterRule, item: CatalogEntry) -> bool:
        field = rule.field
        if not field_applies(field, item.kind):
            return False
        if field is FilterField.NAME:
            return self._string(item.name, rule)
        if field is FilterField.AUTHOR:
            return self._string(item.author or "", rule)
        if field is FilterField.TAG:
            return self._tags(item.tags, rule)
        if field is FilterField.INSTALLED_AT:
            return self._date(item.installed_at, rule)
        if field is FilterField.STATUS:
            return self._optional_string(item.status.value if item.status else None, rule)
        if field in (FilterField.IS_HD, FilterField.HAS_AI, FilterField.HAS_MUSIC):
            return self._boolean(getattr(item, field.value), rule)
        if field is FilterField.TOTAL_WIDTH:
            return self._number(item.total_width, rule)
        return self._optional_string(getattr(item, field.value), rule)

    # Field evaluators -------------------------------------------------

    @staticmethod
    def _string(value: str, rule: FilterRule) -> bool:
        comparator = rule.comparator
        haystack = value.casefold()
        needle = rule.value.casefold()
        if comparator is Comparator.EQUALS:
            return haystack == needle
        if comparator is Comparator.NOT_EQUALS:
            return haystack != needle
        if comparator is Comparator.CONTAINS:
            return needle in haystack
        if comparator is Comparator.NOT_CONTAINS:
            return needle not in haystack
        if comparator is Comparator.IS_EMPTY:
            return not value.strip()
        if comparator is Comparator.IS_NOT_EMPTY:
            return bool(value.strip())
        return False

    def _optional_string(self, value: Optional[str], rule: FilterRule) -> bool:
        blank = value is None or not value.strip()
        if rule.comparator is Comparator.IS_EMPTY:
            return blank
        if rule.comparator is Comparator.IS_NOT_EMPTY:
            return not blank
        if value is None:
            return False
        return self._string(value, rule)

    @staticmethod
    def _tags(tags: Sequence[str], rule: FilterRule) -> bool:
        owned = {tag.strip().casefold() for tag in tags if tag.strip()}
        if rule.comparator is Comparator.IS_EMPTY:
            return not owned
        if rule.comparator is Comparator.IS_NOT_EMPTY:
            return bool(owned)
        wanted = {part.strip().casefold() for part in rule.value.split(",") if part.strip()}
        if not wanted:
            return False
        if rule.comparator in (Comparator.CONTAINS, Comparator.EQUALS):
            return bool(owned & wanted)
        if rule.comparator in (Comparator.NOT_CONTAINS, Comparator.NOT_EQUALS):
            return not owned & wanted
        return False

    @staticmethod
    def _boolean(value: Optional[bool], rule: FilterRule) -> bool:
        if rule.comparator is Comparator.IS_EMPTY:
            return value is None
        if rule.comparator is Comparator.IS_NOT_EMPTY:
            return value is not None
        literal = rule.value.strip().casefold()
        if literal not in (_TRUE, _FALSE):
            return False
        expected = literal == _TRUE
        if rule.comparator is Comparator.EQUALS:
            return value is not None and value == expected
        if rule.comparator is Comparator.NOT_EQUALS:
            return value is None or value != expected
        return False

    @staticmethod
    def _number(value: Optional[int], rule: FilterRule) -> bool:
        if rule.comparator is Comparator.IS_EMPTY:
            return value is None
        if rule.comparator is Comparator.IS_NOT_EMPTY:
            return value is not None
        literal = _parse_number(rule.value)
        if value is None or literal is None:
            return False
        if rule.comparator is Comparator.EQUALS:
            return value == literal
        if rule.comparator is Comparator.NOT_EQUALS:
            return value != literal
        if rule.comparator is Comparator.GREATER_THAN:
            return value > literal
        if rule.comparator is Comparator.LESS_THAN:
            return value < literal
        return False

    def _date(self, value: Optional[datetime], rule: FilterRule) -> bool:
        if rule.comparator is Comparator.IS_EMPTY:
            return value is None
        if rule.comparator is Comparator.IS_NOT_EMPTY:
            return value is not None
        if value is None:
            return False
        value = _utc(value)
        if rule.comparator is Comparator.WITHIN_DAYS:
            try:
                cutoff = _utc(self.clock()) - timedelta(days=int(rule.value.strip()))
            except (ValueError, OverflowError):
                return False
            return value >= cutoff
        literal = _parse_date(rule.value)
        if literal is None:
            return False
        if rule.comparator is Comparator.GREATER_THAN:
            return value > literal
        if rule.comparator is Comparator.LESS_THAN:
            return value < literal
        return False


__all__ = ["SmartCollectionEvaluator", "field_applies", "Clock"]
