"""Tests for TableState and the filtered, sorted, paginated view."""

import dataclasses

import pytest

from claude_table.filters import FilterSpec
from claude_table.sample import generate_sample_rows
from claude_table.table import (
    Pagination,
    SortKey,
    TableRow,
    TableState,
    normalize_column,
    page_count,
    page_rows,
    visible_rows,
)


def ids(rows):
    return [r.id for r in rows]


def test_state_is_immutable(state):
    with pytest.raises(dataclasses.FrozenInstanceError):
        state.rows = ()
    with pytest.raises(TypeError):
        state.filter_specs["name"] = FilterSpec("==", "x")
    assert isinstance(state.rows, tuple)


def test_filters_combine_across_columns(state):
    s = state.replace(filter_specs={"amount": FilterSpec(">", "10"), "category": FilterSpec("==", "sports")})
    assert ids(visible_rows(s)) == ["row-2", "row-4"]
    assert len(s.rows) == 5, "filtering never removes rows"


def test_sort_by_amount_and_name(state):
    s = state.replace(sort_spec=[SortKey("amount", descending=True)])
    assert ids(visible_rows(s)) == ["row-5", "row-3", "row-4", "row-2", "row-1"]
    s = state.replace(sort_spec=[SortKey("name")])
    # case-insensitive and stable: "Widget A" (row-1) stays before "widget a" (row-3)
    assert ids(visible_rows(s)) == ["row-2", "row-5", "row-4", "row-1", "row-3"]


def test_sort_by_date_uses_calendar_order():
    rows = [
        TableRow("a", "A", 1.0, "active", "2024-2-1", "X"),
        TableRow("b", "B", 1.0, "active", "2024-01-15", "X"),
        TableRow("c", "C", 1.0, "active", "2024-02-10", "X"),
    ]
    s = TableState(rows=rows, sort_spec=[SortKey("date")])
    assert ids(visible_rows(s)) == ["b", "a", "c"]


def test_pagination(state):
    s = state.replace(pagination=Pagination(page_index=1, page_size=2))
    assert page_count(s) == 3
    assert ids(page_rows(s)) == ["row-3", "row-4"]
    s = s.replace(pagination=Pagination(page_index=9, page_size=2))
    assert ids(page_rows(s)) == ["row-5"], "out-of-range page clamps to the last page"
    assert page_count(TableState()) == 1
    assert page_rows(TableState()) == []


def test_first_page(state):
    s = state.replace(pagination=Pagination(page_index=2, page_size=2))
    assert s.first_page().pagination == Pagination(page_index=0, page_size=2)
    assert state.first_page() is state


def test_normalize_column():
    assert normalize_column("  Amount ") == "amount"
    assert normalize_column("id") is None
    assert normalize_column("price") is None


def test_sample_rows():
    from datetime import date

    rows = generate_sample_rows(75, seed=7, today=date(2024, 6, 30))
    assert len(rows) == 75
    assert rows[0].id == "row-1" and rows[-1].id == "row-75"
    assert all(10 <= r.amount <= 1009 for r in rows)
    assert all("2023-01-01" <= r.date <= "2024-06-30" for r in rows)
    assert rows == generate_sample_rows(75, seed=7, today=date(2024, 6, 30)), "seed makes rows repeatable"
