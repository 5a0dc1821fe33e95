"""Tests for the search, filter, sort and pagination engine."""

import math
from datetime import date
from decimal import Decimal

import pytest

from agency_sales.listing import (
    ASC,
    DESC,
    DateRange,
    ListQuery,
    SortState,
    filter_items,
    matches_search,
    paginate,
    parse_numeric,
    run_list_query,
    sort_items,
)

ROWS = [
    {"id": 1, "suburb": "Mawson Lakes", "soldPrice": "$500,000", "agent": "Alice", "status": "sold"},
    {"id": 2, "suburb": "Elizabeth", "soldPrice": "$1,200,000", "agent": "bob", "status": "listed"},
    {"id": 3, "suburb": "Glenelg", "soldPrice": "$80,000", "agent": "Carol", "status": "settled"},
]


def ids(items):
    return [item["id"] for item in items]


def test_search_is_case_insensitive_substring():
    result = filter_items(ROWS, search="lakes", search_fields=["suburb"])
    assert ids(result) == [1]


def test_search_without_term_matches_everything():
    assert matches_search(ROWS[0], "", ["suburb"])


def test_numeric_sort_ignores_currency_formatting():
    result = sort_items(ROWS, SortState(key="soldPrice", direction=DESC))
    assert [parse_numeric(r["soldPrice"]) for r in result] == [1200000, 500000, 80000]


def test_parse_numeric_handles_junk():
    assert parse_numeric("$1,200,000") == 1200000
    assert parse_numeric("n/a") == 0
    assert parse_numeric(None) == 0


def test_non_finite_numbers_parse_as_zero():
    assert parse_numeric(float("nan")) == 0
    assert parse_numeric(float("inf")) == 0
    assert parse_numeric(Decimal("-Infinity")) == 0


def test_sort_survives_nan_prices():
    rows = [{"id": 1, "price": float("nan")}, {"id": 2, "price": 5}, {"id": 3, "price": -1}]
    assert ids(sort_items(rows, SortState(key="price", direction=ASC))) == [3, 1, 2]


def test_string_sort_is_case_insensitive():
    result = sort_items(ROWS, SortState(key="agent", direction=ASC))
    assert [r["agent"] for r in result] == ["Alice", "bob", "Carol"]


def test_sort_is_idempotent_and_toggle_reverses():
    state = SortState(key="status", direction=ASC)
    once = sort_items(ROWS, state)
    assert sort_items(once, state) == once

    flipped = sort_items(ROWS, state.toggle("status"))
    assert flipped == list(reversed(once))


def test_toggle_new_key_uses_default_direction():
    state = SortState(key="suburb", direction=DESC)
    assert state.toggle("agent").direction == ASC
    assert state.toggle("totalCommission").direction == DESC
    assert SortState(view_default=DESC).toggle("agent").direction == DESC


def test_select_ignores_disallowed_keys():
    state = SortState(key="suburb")
    assert state.select("password", DESC, allowed=["suburb", "agent"]) is state
    assert state.select("agent", "sideways").direction == ASC


def test_missing_values_sort_last_ascending():
    rows = [{"id": 1, "price": None}, {"id": 2, "price": "10"}]
    assert ids(sort_items(rows, SortState(key="price", direction=ASC))) == [2, 1]


def test_filters_treat_all_as_unset():
    assert ids(filter_items(ROWS, filters={"status": "all"})) == [1, 2, 3]
    assert ids(filter_items(ROWS, filters={"status": ["sold", "settled"]})) == [1, 3]


def test_range_and_date_filters():
    assert ids(filter_items(ROWS, filters={"soldPrice": (100000, None)})) == [1, 2]

    rows = [{"id": 1, "sold": "2024-01-05"}, {"id": 2, "sold": date(2023, 12, 1)}, {"id": 3}]
    window = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))
    assert ids(filter_items(rows, filters={"sold": window})) == [1]


@pytest.mark.parametrize(
    "page,expected",
    [(1, [1, 2]), (2, [3]), (3, []), (0, [1, 2]), (-4, [1, 2])],
)
def test_paginate_clamps_and_empties(page, expected):
    result = paginate(ROWS, page, 2)
    assert ids(result.items) == expected
    assert result.total == 3
    assert result.total_pages == 2


def test_run_list_query_builds_envelope():
    query = ListQuery(
        search="e",
        search_fields=["suburb"],
        sort=SortState(key="soldPrice", direction=DESC),
        page=1,
        page_size=2,
    )
    envelope = run_list_query(ROWS, query).as_envelope(lambda row: row["id"])
    assert envelope == {"data": [2, 1], "total": 3}


@pytest.mark.parametrize("direction", [ASC, DESC])
@pytest.mark.parametrize("page_size", [1, 2, 3, 4, 7])
def test_pages_concatenate_to_sorted_list(direction, page_size):
    rows = [
        {"id": i, "price": price}
        for i, price in enumerate(["$90", "$450", "$90", "$1,200", "$450", "$675", "$450"], 1)
    ]
    sort = SortState(key="price", direction=direction)
    ordered = sort_items(rows, sort)

    pages = []
    for page in range(1, math.ceil(len(rows) / page_size) + 1):
        query = ListQuery(sort=sort, page=page, page_size=page_size)
        pages += run_list_query(rows, query).items
    assert ids(pages) == ids(ordered)
