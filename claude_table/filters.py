"""Filter specs and the predicate deciding whether a cell is visible."""

from __future__ import annotations

import math
import operator as _op
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

OPERATORS = (">", "<", ">=", "<=", "==", "!=", "contains", "startsWith", "endsWith")
RANGE = "range"
DATE_COLUMN = "date"

_COMPARISONS = {">": _op.gt, "<": _op.lt, ">=": _op.ge, "<=": _op.le}
_EQUALITY = {"==": _op.eq, "!=": _op.ne}


@dataclass(frozen=True)
class FilterSpec:
    """Criteria stored for one column. ``range`` specs use min/max instead of value."""

    operator: str
    value: Any = None
    min_value: str | None = None
    max_value: str | None = None

    @classmethod
    def date_range(cls, min_value: str, max_value: str) -> "FilterSpec":
        return cls(operator=RANGE, min_value=min_value, max_value=max_value)

    def describe(self) -> str:
        if self.operator == RANGE:
            return f"between {self.min_value} and {self.max_value}"
        return f"{self.operator} {cell_text(self.value)}"


def to_number(value: Any) -> float | None:
    """Numeric coercion; None stands for "not a number"."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def is_numeric(value: Any) -> bool:
    return to_number(value) is not None


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def cell_text(value: Any) -> str:
    """String form of a cell as the model sees it in JSON (150.0 -> "150")."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return ""
    return str(value)


def matches(cell: Any, spec: FilterSpec | None, column: str | None = None) -> bool:
    if spec is None or not spec.operator:
        return True
    operator = spec.operator

    if operator == RANGE:
        return _in_date_range(cell, spec.min_value, spec.max_value)

    if column == DATE_COLUMN and (operator in _COMPARISONS or operator in _EQUALITY):
        cell_date, value_date = parse_date(cell), parse_date(spec.value)
        if cell_date is None or value_date is None:
            return False
        compare = _COMPARISONS.get(operator) or _EQUALITY[operator]
        return compare(cell_date, value_date)

    if operator in _COMPARISONS:
        a, b = to_number(cell), to_number(spec.value)
        if a is None or b is None:
            return False
        return _COMPARISONS[operator](a, b)

    if operator in _EQUALITY:
        if is_numeric(cell) and is_numeric(spec.value):
            return _EQUALITY[operator](to_number(cell), to_number(spec.value))
        return _EQUALITY[operator](cell_text(cell).lower(), cell_text(spec.value).lower())

    haystack, needle = cell_text(cell).lower(), cell_text(spec.value).lower()
    if operator == "contains":
        return needle in haystack
    if operator == "startsWith":
        return haystack.startswith(needle)
    if operator == "endsWith":
        return haystack.endswith(needle)
    return True


def _in_date_range(cell: Any, min_value: Any, max_value: Any) -> bool:
    cell_date, low, high = parse_date(cell), parse_date(min_value), parse_date(max_value)
    if cell_date is None or low is None or high is None:
        return False
    return low <= cell_date <= high
