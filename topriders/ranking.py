"""Ranking utilities for picking the top riders of each category."""

from __future__ import annotations

import locale
import math
from typing import Dict, Iterable, List, Optional

from .models import Category, Entry, ValidationRules

_DEFAULT_RULES = ValidationRules()


def _name_key(name: str):
    return (locale.strxfrm(name.casefold()), name)


def _rank_key(rank_hint: int) -> float:
    # A missing position sorts after every real one
    return rank_hint if rank_hint > 0 else math.inf


def filter_valid(entries: Iterable[Entry], rules: ValidationRules = _DEFAULT_RULES) -> List[Entry]:
    """Drop entries that break the Entry invariants."""
    return [e for e in entries if isinstance(e, Entry) and e.is_valid(rules)]


def sort_descending(entries: Iterable[Entry]) -> List[Entry]:
    """Sort by score (high first), then position (low first), then name."""
    return sorted(entries, key=lambda e: (-e.score, _rank_key(e.rank_hint), _name_key(e.name)))


def sort_by_position(entries: Iterable[Entry]) -> List[Entry]:
    """Sort by position (low first), then score (high first), then name."""
    return sorted(entries, key=lambda e: (_rank_key(e.rank_hint), -e.score, _name_key(e.name)))


def top_n(entries: Optional[Iterable[Entry]], n: int, rules: ValidationRules = _DEFAULT_RULES) -> List[Entry]:
    """Return the best ``n`` valid entries.

    Args:
        entries: Candidate entries; invalid ones are filtered out again here.
        n: Maximum number of entries to return. ``n <= 0`` yields ``[]``.
        rules: Validation bounds to apply.

    Returns:
        A new list of at most ``n`` entries ordered by :func:`sort_descending`.
    """
    if not entries or n <= 0:
        return []
    return sort_descending(filter_valid(entries, rules))[: int(n)]


def by_category(entries: Iterable[Entry], category: Category) -> List[Entry]:
    return [e for e in entries if e.category is category]


def ranking_stats(entries: Iterable[Entry], rules: ValidationRules = _DEFAULT_RULES) -> Dict[str, float]:
    """Summary numbers for a list of entries.

    ``total`` counts everything passed in; the score figures cover valid
    entries only and are 0 when there are none.
    """
    entries = list(entries or [])
    valid = filter_valid(entries, rules)
    scores = [e.score for e in valid]
    return {
        "total": len(entries),
        "valid": len(valid),
        "average_score": sum(scores) / len(scores) if scores else 0.0,
        "max_score": max(scores) if scores else 0.0,
        "min_score": min(scores) if scores else 0.0,
    }


def find_ties(entries: Iterable[Entry], rules: ValidationRules = _DEFAULT_RULES) -> List[List[Entry]]:
    """Groups of valid entries sharing the same score, in first-seen order."""
    groups: Dict[float, List[Entry]] = {}
    for entry in filter_valid(entries or [], rules):
        groups.setdefault(entry.score, []).append(entry)
    return [group for group in groups.values() if len(group) > 1]


__all__ = [
    "by_category",
    "filter_valid",
    "find_ties",
    "ranking_stats",
    "sort_by_position",
    "sort_descending",
    "top_n",
]
