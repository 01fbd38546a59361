"""Collections and smart-collection rules."""

from .evaluator import SmartCollectionEvaluator, field_applies
from .models import (
    CatalogEntry,
    Collection,
    Combinator,
    Comparator,
    FilterField,
    FilterRule,
    GridCell,
    RosterSlot,
    SlotKind,
)
from .store import DEFAULT_COLLECTION_NAME, CollectionStore

__all__ = [
    "CatalogEntry",
    "Collection",
    "CollectionStore",
    "Combinator",
    "Comparator",
    "DEFAULT_COLLECTION_NAME",
    "FilterField",
    "FilterRule",
    "GridCell",
    "RosterSlot",
    "SlotKind",
    "SmartCollectionEvaluator",
    "field_applies",
]
