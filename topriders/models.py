"""Typed records that flow through the top riders pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import MAX_VALID_RANK, MIN_VALID_RANK, MIN_VALID_SCORE


class Category(str, Enum):
    """Output groupings, one per source tab."""

    MAIN_LEAGUE = "ML"
    DEVELOPMENT_LEAGUE = "DL"
    PRIME_1 = "Prime1"
    PRIME_2 = "Prime2"


@dataclass(frozen=True)
class SheetTab:
    name: str
    gid: str


@dataclass(frozen=True)
class FetchedTab:
    """A tab after delimited-text parsing."""

    name: str
    rows: List[List[str]]


@dataclass(frozen=True)
class ValidationRules:
    min_score: float = MIN_VALID_SCORE
    min_rank: int = MIN_VALID_RANK
    max_rank: int = MAX_VALID_RANK


@dataclass(frozen=True)
class Entry:
    """One ranked participant row.

    ``rank_hint`` of 0 means the sheet carried no position for the rider.
    """

    name: str
    score: float
    category: Category
    rank_hint: int = 0
    affiliation: Optional[str] = None

    def is_valid(self, rules: ValidationRules = ValidationRules()) -> bool:
        if not isinstance(self.name, str) or not self.name.strip():
            return False
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)):
            return False
        if not math.isfinite(self.score) or self.score < rules.min_score:
            return False
        if isinstance(self.rank_hint, bool) or not isinstance(self.rank_hint, int):
            return False
        if self.rank_hint != 0 and not (rules.min_rank <= self.rank_hint <= rules.max_rank):
            return False
        return isinstance(self.category, Category)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "rank_hint": self.rank_hint,
            "score": self.score,
            "affiliation": self.affiliation,
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        return cls(
            name=str(data.get("name") or ""),
            rank_hint=int(data.get("rank_hint") or 0),
            score=float(data.get("score") or 0.0),
            affiliation=data.get("affiliation"),
            category=Category(data.get("category")),
        )


_CATEGORY_FIELDS = {
    Category.MAIN_LEAGUE: "main_league",
    Category.DEVELOPMENT_LEAGUE: "development_league",
    Category.PRIME_1: "prime1",
    Category.PRIME_2: "prime2",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    """Restore a timestamp that may have been flattened to text or epoch ms."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"Unrecognised timestamp: {value!r}")


@dataclass(frozen=True)
class ResultSet:
    """One refresh cycle's ranked output across all categories."""

    main_league: Tuple[Entry, ...] = ()
    development_league: Tuple[Entry, ...] = ()
    prime1: Tuple[Entry, ...] = ()
    prime2: Tuple[Entry, ...] = ()
    computed_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_categories(cls, ranked: Dict[Category, List[Entry]], computed_at: Optional[datetime] = None) -> "ResultSet":
        kwargs: Dict[str, Any] = {
            attr: tuple(ranked.get(cat, ())) for cat, attr in _CATEGORY_FIELDS.items()
        }
        if computed_at is not None:
            kwargs["computed_at"] = computed_at
        return cls(**kwargs)

    def for_category(self, category: Category) -> Tuple[Entry, ...]:
        return getattr(self, _CATEGORY_FIELDS[category])

    def counts(self) -> Dict[str, int]:
        return {cat.value: len(self.for_category(cat)) for cat in Category}

    def is_empty(self) -> bool:
        return not any(self.for_category(cat) for cat in Category)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            attr: [e.to_dict() for e in self.for_category(cat)]
            for cat, attr in _CATEGORY_FIELDS.items()
        }
        out["computed_at"] = self.computed_at.isoformat()
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultSet":
        ranked = {
            cat: [Entry.from_dict(item) for item in (data.get(attr) or [])]
            for cat, attr in _CATEGORY_FIELDS.items()
        }
        return cls.from_categories(ranked, computed_at=_parse_timestamp(data.get("computed_at")))


__all__ = [
    "Category",
    "Entry",
    "FetchedTab",
    "ResultSet",
    "SheetTab",
    "ValidationRules",
]
