import math
import pathlib
import random
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from topriders.models import Category, Entry
from topriders.ranking import (
    by_category,
    filter_valid,
    find_ties,
    ranking_stats,
    sort_by_position,
    sort_descending,
    top_n,
)

ML = Category.MAIN_LEAGUE


def _e(name, score, rank=0, category=ML):
    return Entry(name=name, score=score, rank_hint=rank, category=category)


def _sample():
    return [
        _e("Cara", 80, 3),
        _e("Abe", 100, 1),
        _e("Bea", 90, 2),
        _e("Dan", 80, 4),
        _e("", 200),
        _e("Nan", math.nan),
        _e("Neg", -3),
        _e("Inf", math.inf),
    ]


def test_top_n_filters_sorts_and_truncates():
    top = top_n(_sample(), 3)
    assert [e.name for e in top] == ["Abe", "Bea", "Cara"]


def test_length_is_min_of_n_and_valid_count():
    entries = _sample()
    valid = filter_valid(entries)
    assert len(valid) == 4
    for n in range(0, 8):
        assert len(top_n(entries, n)) == min(n, len(valid))


def test_non_positive_n_and_empty_input():
    assert top_n(_sample(), 0) == []
    assert top_n(_sample(), -2) == []
    assert top_n([], 5) == []
    assert top_n(None, 5) == []


def test_scores_are_non_increasing():
    rng = random.Random(7)
    entries = [_e(f"R{i}", rng.randint(0, 20), rng.randint(0, 30)) for i in range(60)]
    scores = [e.score for e in top_n(entries, 60)]
    assert scores == sorted(scores, reverse=True)


def test_idempotent():
    entries = _sample()
    once = top_n(entries, 3)
    assert top_n(once, 3) == once
    assert top_n(entries, 3) == once


def test_tie_break_by_position_then_name():
    entries = [_e("Zed", 50, 2), _e("Amy", 50, 0), _e("Bob", 50, 2), _e("Cy", 50, 1)]
    # Missing position (0) sorts after every real position
    assert [e.name for e in sort_descending(entries)] == ["Cy", "Bob", "Zed", "Amy"]
    for _ in range(3):
        shuffled = list(entries)
        random.shuffle(shuffled)
        assert [e.name for e in top_n(shuffled, 4)] == ["Cy", "Bob", "Zed", "Amy"]


def test_name_order_ignores_case():
    entries = [_e("bravo", 10), _e("Alpha", 10), _e("charlie", 10)]
    assert [e.name for e in sort_descending(entries)] == ["Alpha", "bravo", "charlie"]


def test_top_five_of_three_returns_all_three_sorted():
    entries = [_e("C", 10), _e("A", 30), _e("B", 20)]
    assert [e.name for e in top_n(entries, 5)] == ["A", "B", "C"]


def test_inputs_are_not_mutated():
    entries = [_e("C", 10), _e("A", 30)]
    snapshot = list(entries)
    top_n(entries, 1)
    assert entries == snapshot


def test_sort_by_position():
    entries = [_e("A", 10, 2), _e("B", 50, 0), _e("C", 5, 1)]
    assert [e.name for e in sort_by_position(entries)] == ["C", "A", "B"]


def test_stats_ties_and_category_filter():
    entries = _sample() + [_e("Pri", 80, 0, Category.PRIME_1)]
    stats = ranking_stats(entries)
    assert stats["total"] == 9
    assert stats["valid"] == 5
    assert stats["max_score"] == 100
    assert stats["min_score"] == 80
    assert math.isclose(stats["average_score"], (100 + 90 + 80 + 80 + 80) / 5)
    ties = find_ties(entries)
    assert len(ties) == 1
    assert sorted(e.name for e in ties[0]) == ["Cara", "Dan", "Pri"]
    assert [e.name for e in by_category(entries, Category.PRIME_1)] == ["Pri"]
    assert ranking_stats([])["average_score"] == 0.0
