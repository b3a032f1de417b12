"""Turn parsed sheet tabs into validated :class:`Entry` records.

Columns are located by matching header text against an ordered rule list,
not by position, so tabs that lay out their columns differently (separate
first/last name columns in one tab, a single rider column in another) are
read the same way.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import Category, Entry, FetchedTab, ValidationRules
from .parser import is_blank_row

log = logging.getLogger(__name__)

# Exact tab name first, then a case-insensitive substring
TAB_PATTERNS: Dict[Category, Tuple[str, str]] = {
    Category.MAIN_LEAGUE: ("Main League", "main"),
    Category.DEVELOPMENT_LEAGUE: ("Dev League", "dev"),
    Category.PRIME_1: ("ML Primes", "ml prime"),
    Category.PRIME_2: ("DL Primes", "dl prime"),
}


def _exact(text: str) -> Callable[[str], bool]:
    return lambda header: header == text


def _pattern(regex: str) -> Callable[[str], bool]:
    compiled = re.compile(regex, re.IGNORECASE)
    return lambda header: compiled.match(header) is not None


# First matching rule wins for each header cell.
COLUMN_RULES: List[Tuple[Callable[[str], bool], str]] = [
    (_exact("first name"), "first_name"),
    (_exact("last name"), "last_name"),
    (_exact("total"), "score"),
    (_exact("ci club"), "affiliation"),
    (_pattern(r"^(pos|position|rank|#)$"), "rank_hint"),
    (_pattern(r"^(name|rider|cyclist)$"), "name"),
    (_pattern(r"^(points|pts|total)$"), "score"),
    (_pattern(r"^(club|team)$"), "affiliation"),
]


@dataclass
class HeaderMap:
    """Column index per field, -1 when the header carries no such column."""

    rank_hint: int = -1
    first_name: int = -1
    last_name: int = -1
    name: int = -1
    score: int = -1
    affiliation: int = -1

    @property
    def valid(self) -> bool:
        has_name = self.last_name >= 0 or self.name >= 0
        return has_name and self.score >= 0


def map_header(header_row: Sequence[str]) -> HeaderMap:
    mapping = HeaderMap()
    for idx, raw in enumerate(header_row):
        header = (raw or "").strip().lower()
        if not header:
            continue
        for predicate, field_name in COLUMN_RULES:
            if predicate(header):
                setattr(mapping, field_name, idx)
                break
    return mapping


def find_tab(tabs: Sequence[FetchedTab], category: Category) -> Optional[FetchedTab]:
    exact, fragment = TAB_PATTERNS[category]
    for tab in tabs:
        if tab.name == exact:
            return tab
    for tab in tabs:
        if fragment in tab.name.lower():
            return tab
    return None


def _cell(row: Sequence[str], idx: int) -> str:
    if idx < 0 or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def _leading_number(text: str, pattern: str) -> Optional[str]:
    m = re.match(pattern, text.strip())
    return m.group(0) if m else None


def parse_score(text: str) -> float:
    """Leading decimal number of ``text``.

    Returns NaN when the cell holds no number so the entry fails validation
    instead of ranking as a zero score.
    """
    token = _leading_number(text, r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
    if token is None:
        return math.nan
    return float(token)


def parse_rank(text: str) -> int:
    token = _leading_number(text, r"[+-]?\d+")
    return int(token) if token is not None else 0


def _row_name(row: Sequence[str], mapping: HeaderMap) -> str:
    if mapping.first_name >= 0 and mapping.last_name >= 0:
        return f"{_cell(row, mapping.first_name)} {_cell(row, mapping.last_name)}".strip()
    if mapping.last_name >= 0:
        return _cell(row, mapping.last_name)
    if mapping.name >= 0:
        return _cell(row, mapping.name)
    return ""


def parse_row(row: Sequence[str], mapping: HeaderMap, category: Category) -> Optional[Entry]:
    name = _row_name(row, mapping)
    if not name:
        return None
    rank_hint = parse_rank(_cell(row, mapping.rank_hint)) if mapping.rank_hint >= 0 else 0
    score = parse_score(_cell(row, mapping.score)) if mapping.score >= 0 else math.nan
    affiliation = _cell(row, mapping.affiliation) if mapping.affiliation >= 0 else ""
    return Entry(
        name=name,
        rank_hint=rank_hint,
        score=score,
        affiliation=affiliation or None,
        category=category,
    )


def extract_rows(rows: Sequence[Sequence[str]], category: Category, rules: ValidationRules = ValidationRules()) -> List[Entry]:
    """Entries for one tab's grid, header in the first row."""
    if not rows:
        return []
    mapping = map_header(rows[0])
    log.debug("Column analysis for %s: %s -> %s", category.value, list(rows[0]), mapping)
    if not mapping.valid:
        log.warning("Could not identify column structure for category %s", category.value)
        return []
    entries: List[Entry] = []
    for row in rows[1:]:
        if is_blank_row(row):
            continue
        entry = parse_row(row, mapping, category)
        if entry is not None and entry.is_valid(rules):
            entries.append(entry)
    return entries


def extract_category(tabs: Sequence[FetchedTab], category: Category, rules: ValidationRules = ValidationRules()) -> List[Entry]:
    tab = find_tab(tabs, category)
    if tab is None or not tab.rows:
        log.warning("No %s sheet found", category.value)
        return []
    return extract_rows(tab.rows, category, rules)


def extract_all(tabs: Sequence[FetchedTab], rules: ValidationRules = ValidationRules()) -> Dict[Category, List[Entry]]:
    return {cat: extract_category(tabs, cat, rules) for cat in Category}


__all__ = [
    "COLUMN_RULES",
    "HeaderMap",
    "TAB_PATTERNS",
    "extract_all",
    "extract_category",
    "extract_rows",
    "find_tab",
    "map_header",
    "parse_rank",
    "parse_row",
    "parse_score",
]
