import math
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from topriders.extractor import (
    extract_all,
    extract_category,
    extract_rows,
    find_tab,
    map_header,
    parse_rank,
    parse_score,
)
from topriders.models import Category, FetchedTab, ValidationRules
from topriders.parser import parse_csv_text


def test_first_last_total_club_header():
    mapping = map_header(["First Name", "Last Name", "Total", "CI Club"])
    assert (mapping.first_name, mapping.last_name, mapping.score, mapping.affiliation) == (0, 1, 2, 3)
    assert mapping.rank_hint == -1
    assert mapping.valid


@pytest.mark.parametrize(
    "header,field",
    [
        ("Pos", "rank_hint"),
        ("position", "rank_hint"),
        ("RANK", "rank_hint"),
        ("#", "rank_hint"),
        ("Name", "name"),
        ("Rider", "name"),
        ("cyclist", "name"),
        ("Points", "score"),
        ("pts", "score"),
        ("Club", "affiliation"),
        ("Team", "affiliation"),
    ],
)
def test_generic_header_synonyms(header, field):
    mapping = map_header(["", header])
    assert getattr(mapping, field) == 1


def test_header_validity_rules():
    assert map_header(["Last Name", "Total"]).valid
    assert map_header(["Rider", "Pts"]).valid
    assert not map_header(["First Name", "Total"]).valid
    assert not map_header(["Rider", "Club"]).valid
    assert not map_header([]).valid


@pytest.mark.parametrize(
    "header,row,expected",
    [
        (["First Name", "Last Name", "Total"], ["John", "Doe", "150"], "John Doe"),
        (["Last Name", "Points"], ["Alice Walker", "90"], "Alice Walker"),
        (["Rider", "Pts"], ["Mick Byrne", "15"], "Mick Byrne"),
        (["Cyclist", "Total"], ["  Ann Lee ", "3"], "Ann Lee"),
    ],
)
def test_name_is_built_for_every_header_style(header, row, expected):
    entries = extract_rows([header, row], Category.MAIN_LEAGUE)
    assert len(entries) == 1
    assert entries[0].name == expected
    assert entries[0].category is Category.MAIN_LEAGUE


def test_malformed_rows_are_dropped():
    grid = parse_csv_text(
        "Pos,First Name,Last Name,Total,CI Club\n"
        "1,John,Doe,150,Test Club\n"
        ",,,,\n"
        "2,,,140,No Name Club\n"
        "3,Jane,Smith,140,Another Club\n"
        "4,Tom,Ryan,abc,Club\n"
        "5,Ann,Lee,99,\n"
    )
    entries = extract_rows(grid, Category.MAIN_LEAGUE)
    assert [e.name for e in entries] == ["John Doe", "Jane Smith", "Ann Lee"]
    assert entries[2].affiliation is None
    assert entries[0].affiliation == "Test Club"
    assert entries[1].rank_hint == 3


def test_only_first_name_present_in_a_row_still_names_the_rider():
    entries = extract_rows([["First Name", "Last Name", "Total"], ["Cher", "", "10"]], Category.PRIME_1)
    assert entries[0].name == "Cher"


def test_rank_hint_bounds_and_score_floor():
    grid = [
        ["Pos", "Rider", "Points"],
        ["0", "No Position", "10"],
        ["1001", "Too Far", "10"],
        ["7", "Negative", "-1"],
        ["2", "Fine", "0"],
    ]
    names = [e.name for e in extract_rows(grid, Category.DEVELOPMENT_LEAGUE)]
    assert names == ["No Position", "Fine"]
    relaxed = extract_rows(grid, Category.DEVELOPMENT_LEAGUE, ValidationRules(min_score=-5, max_rank=2000))
    assert [e.name for e in relaxed] == ["No Position", "Too Far", "Negative", "Fine"]


def test_short_rows_do_not_break_extraction():
    entries = extract_rows([["Rider", "Club", "Points"], ["Solo", "Club A"]], Category.MAIN_LEAGUE)
    assert entries == []


def test_number_parsing():
    assert parse_score("150") == 150.0
    assert parse_score("12.5 pts") == 12.5
    assert math.isnan(parse_score("n/a"))
    assert math.isnan(parse_score(""))
    assert parse_rank("3rd") == 3
    assert parse_rank("") == 0


def test_find_tab_exact_then_substring():
    tabs = [FetchedTab("2025 main standings", []), FetchedTab("Main League", [["x"]])]
    assert find_tab(tabs, Category.MAIN_LEAGUE).name == "Main League"
    assert find_tab([FetchedTab("ML Primes 2025", [])], Category.PRIME_1).name == "ML Primes 2025"
    assert find_tab(tabs, Category.PRIME_2) is None


def test_missing_tab_or_bad_header_yields_empty(caplog):
    caplog.set_level("WARNING")
    tabs = [FetchedTab("Dev League", [["Club", "Team"], ["a", "b"]])]
    assert extract_category(tabs, Category.MAIN_LEAGUE) == []
    assert extract_category(tabs, Category.DEVELOPMENT_LEAGUE) == []
    messages = [r.getMessage() for r in caplog.records]
    assert any("No ML sheet found" in m for m in messages)
    assert any("column structure" in m for m in messages)


def test_tabs_with_different_layouts_extract_together():
    tabs = [
        FetchedTab("Main League", parse_csv_text("First Name,Last Name,Total,CI Club\nJohn,Doe,150,Test Club")),
        FetchedTab("Dev League", parse_csv_text("Pos,Last Name,Total\n1,Alice Walker,90")),
        FetchedTab("ML Primes", parse_csv_text("Rider,Points\nMick Byrne,15")),
    ]
    result = extract_all(tabs)
    assert [e.name for e in result[Category.MAIN_LEAGUE]] == ["John Doe"]
    assert [e.name for e in result[Category.DEVELOPMENT_LEAGUE]] == ["Alice Walker"]
    assert [e.name for e in result[Category.PRIME_1]] == ["Mick Byrne"]
    assert result[Category.PRIME_2] == []
