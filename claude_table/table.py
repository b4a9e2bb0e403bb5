"""Table rows, immutable table state and the filtered/sorted/paginated view."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Iterable, Mapping

from claude_table.filters import FilterSpec, matches, parse_date, to_number

DATA_COLUMNS = ("name", "amount", "status", "date", "category")
STATUSES = ("active", "inactive", "pending")
DEFAULT_PAGE_SIZE = 11


def normalize_column(column: str) -> str | None:
    normalized = column.strip().lower()
    return normalized if normalized in DATA_COLUMNS else None


@dataclass(frozen=True)
class TableRow:
    id: str
    name: str
    amount: float
    status: str
    date: str
    category: str

    def get(self, column: str):
        return getattr(self, column)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class SortKey:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class Pagination:
    page_index: int = 0
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class TableState:
    """A persistent value: tool execution always builds a new state."""

    rows: tuple[TableRow, ...] = ()
    sort_spec: tuple[SortKey, ...] = ()
    filter_specs: Mapping[str, FilterSpec] = field(default_factory=lambda: MappingProxyType({}))
    pagination: Pagination = Pagination()

    def __post_init__(self):
        object.__setattr__(self, "rows", tuple(self.rows))
        object.__setattr__(self, "sort_spec", tuple(self.sort_spec))
        if not isinstance(self.filter_specs, MappingProxyType):
            object.__setattr__(self, "filter_specs", MappingProxyType(dict(self.filter_specs)))

    def replace(self, **changes) -> "TableState":
        return dataclasses.replace(self, **changes)

    def first_page(self) -> "TableState":
        if self.pagination.page_index == 0:
            return self
        return self.replace(pagination=dataclasses.replace(self.pagination, page_index=0))

    @property
    def row_ids(self) -> set[str]:
        return {row.id for row in self.rows}


def visible_rows(state: TableState) -> list[TableRow]:
    """Rows passing every column filter, in sort order (stable)."""
    rows = [
        row
        for row in state.rows
        if all(matches(row.get(column), spec, column) for column, spec in state.filter_specs.items())
    ]
    for key in reversed(state.sort_spec):
        rows.sort(key=_sort_key(key.column), reverse=key.descending)
    return rows


def page_count(state: TableState, rows: Iterable[TableRow] | None = None) -> int:
    total = len(list(rows)) if rows is not None else len(visible_rows(state))
    return max(1, math.ceil(total / max(1, state.pagination.page_size)))


def page_rows(state: TableState) -> list[TableRow]:
    rows = visible_rows(state)
    size = max(1, state.pagination.page_size)
    index = min(max(0, state.pagination.page_index), page_count(state, rows) - 1)
    return rows[index * size : (index + 1) * size]


def _sort_key(column: str):
    if column == "amount":
        return lambda row: (to_number(row.amount) is None, to_number(row.amount) or 0.0)
    if column == "date":

        def by_date(row: TableRow):
            parsed = parse_date(row.date)
            return (parsed is None, parsed or date.min, row.date)

        return by_date
    return lambda row: str(row.get(column)).lower()
