"""ToolExecutor – apply decoded tool calls to table state.

Execution is pure: ``(ToolCall, TableState) -> ToolExecutionResult``. The input
state is never touched and every failure comes back as an unsuccessful result
carrying the unchanged state, so callers can retry or discard freely.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Iterable, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from claude_table.errors import (
    NoMatchError,
    ToolArgumentParseError,
    ToolError,
    ToolValidationError,
    UnknownToolError,
)
from claude_table.filters import DATE_COLUMN, OPERATORS, FilterSpec, cell_text, parse_date
from claude_table.messages import ToolCall
from claude_table.table import DATA_COLUMNS, SortKey, TableRow, TableState, normalize_column

log = logging.getLogger("claude-table")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_OPERATOR_LOOKUP = {op.lower(): op for op in OPERATORS}


@dataclass(frozen=True)
class ToolExecutionResult:
    success: bool
    message: str
    new_state: TableState
    error: Exception | None = None


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


def _valid_column(value: str) -> str:
    column = normalize_column(value)
    if column is None:
        raise ValueError(f'Invalid column "{value}". Valid columns are: {", ".join(DATA_COLUMNS)}')
    return column


def _scalar(value: Any) -> Any:
    if value is None:
        raise ValueError("Value parameter is required")
    if isinstance(value, (list, dict)):
        raise ValueError("Value must be a string or a number")
    return value


Column = Annotated[StrictStr, AfterValidator(_valid_column)]
Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class FilterTableArgs(_Args):
    column: Column
    operator: StrictStr
    value: Scalar

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        operator = _OPERATOR_LOOKUP.get(value.strip().lower())
        if operator is None:
            raise ValueError(f'Invalid operator "{value}". Valid operators are: {", ".join(OPERATORS)}')
        return operator

    @field_validator("value", mode="before")
    @classmethod
    def _value_present(cls, value: Any) -> Any:
        return _scalar(value)


class SortTableArgs(_Args):
    column: Column
    direction: StrictStr

    @field_validator("direction")
    @classmethod
    def _asc_or_desc(cls, value: str) -> str:
        if value not in ("asc", "desc"):
            raise ValueError('Direction must be "asc" or "desc"')
        return value


class AddRowArgs(_Args):
    name: StrictStr = Field(min_length=1)
    amount: float = Field(strict=True, allow_inf_nan=False)
    status: Literal["active", "inactive", "pending"]
    date: StrictStr
    category: StrictStr = Field(min_length=1)

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        if not _DATE_RE.match(value) or parse_date(value) is None:
            raise ValueError(f'Date must be a valid date in YYYY-MM-DD format, got "{value}"')
        return value


class DeleteRowArgs(_Args):
    rowId: Optional[StrictStr] = None
    name: Optional[StrictStr] = None
    column: Optional[StrictStr] = None
    value: Optional[Scalar] = None

    @field_validator("value", mode="before")
    @classmethod
    def _no_containers(cls, value: Any) -> Any:
        return value if value is None else _scalar(value)


def _validate(model: type[_Args], args: dict) -> Any:
    try:
        return model.model_validate(args)
    except ValidationError as exc:
        raise ToolValidationError(_describe(exc)) from exc


def _describe(exc: ValidationError) -> str:
    seen: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else ""
        if field in seen:
            continue
        if err["type"] == "value_error":
            message = str(err["ctx"]["error"])
        elif err["type"] == "missing":
            message = f"{field} parameter is required"
        else:
            message = f"{field}: {err['msg']}" if field else err["msg"]
        seen[field] = message
    return "; ".join(seen.values())


def parse_arguments(arguments: str) -> dict:
    try:
        args = json.loads(arguments or "{}")
    except (json.JSONDecodeError, ValueError) as exc:
        raise ToolArgumentParseError(f"Failed to parse tool arguments: {exc}") from exc
    if not isinstance(args, dict):
        raise ToolArgumentParseError(f"Failed to parse tool arguments: expected a JSON object, got {type(args).__name__}")
    return args


def new_row_id() -> str:
    return f"row-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ToolExecutor:
    """Validate and apply table tool calls.

    ``merge_date_ranges`` turns a ``>=`` and a ``<=`` filter applied in turn
    on the date column into one inclusive range filter instead of letting the
    second replace the first.
    """

    def __init__(self, *, merge_date_ranges: bool = True, id_factory: Callable[[], str] = new_row_id):
        self.merge_date_ranges = merge_date_ranges
        self._id_factory = id_factory
        self._handlers: dict[str, Callable[[dict, TableState], tuple[str, TableState]]] = {
            "filterTable": self._filter_table,
            "sortTable": self._sort_table,
            "addRow": self._add_row,
            "deleteRow": self._delete_row,
            "clearFilters": self._clear_filters,
            "clearSorting": self._clear_sorting,
        }

    def execute(self, tool_call: ToolCall, state: TableState) -> ToolExecutionResult:
        try:
            args = parse_arguments(tool_call.arguments)
            handler = self._handlers.get(tool_call.name)
            if handler is None:
                raise UnknownToolError(tool_call.name)
            message, new_state = handler(args, state)
        except ToolError as exc:
            log.info(f"Tool {tool_call.name} ({tool_call.id}) failed: {exc}")
            return ToolExecutionResult(success=False, message=str(exc), new_state=state, error=exc)
        except Exception as exc:
            log.exception(f"Unexpected error executing tool {tool_call.name} ({tool_call.id})")
            return ToolExecutionResult(
                success=False, message=f"Error executing tool: {exc}", new_state=state, error=exc
            )
        log.info(f"Tool {tool_call.name} ({tool_call.id}): {message}")
        return ToolExecutionResult(success=True, message=message, new_state=new_state)

    # -- handlers -------------------------------------------------------------

    def _filter_table(self, args: dict, state: TableState) -> tuple[str, TableState]:
        a = _validate(FilterTableArgs, args)
        spec = FilterSpec(operator=a.operator, value=a.value)
        merged = None
        if self.merge_date_ranges and a.column == DATE_COLUMN:
            merged = _merge_date_range(state.filter_specs.get(a.column), spec)
        filters = dict(state.filter_specs)
        filters[a.column] = merged or spec
        new_state = state.replace(filter_specs=filters).first_page()
        return f"Filtered by {a.column} {filters[a.column].describe()}", new_state

    def _sort_table(self, args: dict, state: TableState) -> tuple[str, TableState]:
        a = _validate(SortTableArgs, args)
        new_state = state.replace(sort_spec=(SortKey(a.column, a.direction == "desc"),)).first_page()
        return f"Sorted by {a.column} ({a.direction})", new_state

    def _add_row(self, args: dict, state: TableState) -> tuple[str, TableState]:
        a = _validate(AddRowArgs, args)
        existing = state.row_ids
        row_id = self._id_factory()
        while row_id in existing:
            row_id = self._id_factory()
        row = TableRow(id=row_id, name=a.name, amount=a.amount, status=a.status, date=a.date, category=a.category)
        return f"Added row {row_id}: {a.name}", state.replace(rows=state.rows + (row,))

    def _delete_row(self, args: dict, state: TableState) -> tuple[str, TableState]:
        a = _validate(DeleteRowArgs, args)

        if a.rowId:
            kept = tuple(row for row in state.rows if row.id != a.rowId)
            if len(kept) == len(state.rows):
                raise NoMatchError(f'No row found with id "{a.rowId}"')
            return f"Deleted row {a.rowId}", state.replace(rows=kept)

        if a.name:
            target = a.name.strip().lower()
            kept = tuple(row for row in state.rows if row.name.strip().lower() != target)
            deleted = len(state.rows) - len(kept)
            if not deleted:
                raise NoMatchError(f'No rows found with name "{a.name}"')
            return f'Deleted {deleted} row(s) named "{a.name}"', state.replace(rows=kept)

        if a.column and a.value is not None:
            column = normalize_column(a.column)
            if column is None:
                raise ToolValidationError(
                    f'Invalid column "{a.column}". Valid columns are: {", ".join(DATA_COLUMNS)}'
                )
            value = cell_text(a.value)
            kept = tuple(row for row in state.rows if not _cell_equals(row, column, value))
            deleted = len(state.rows) - len(kept)
            if not deleted:
                raise NoMatchError(f'No rows found where {column} = "{value}"')
            return f'Deleted {deleted} row(s) where {column} = "{value}"', state.replace(rows=kept)

        raise ToolValidationError("deleteRow requires rowId, name, or both column and value")

    def _clear_filters(self, args: dict, state: TableState) -> tuple[str, TableState]:
        return "Cleared all filters", state.replace(filter_specs={}).first_page()

    def _clear_sorting(self, args: dict, state: TableState) -> tuple[str, TableState]:
        return "Cleared sorting", state.replace(sort_spec=())


def _cell_equals(row: TableRow, column: str, value: str) -> bool:
    if column == DATE_COLUMN:
        return row.date == value
    return cell_text(row.get(column)).lower() == value.lower()


def _merge_date_range(existing: FilterSpec | None, incoming: FilterSpec) -> FilterSpec | None:
    if existing is None or {existing.operator, incoming.operator} != {">=", "<="}:
        return None
    low, high = (existing, incoming) if existing.operator == ">=" else (incoming, existing)
    low_date, high_date = parse_date(low.value), parse_date(high.value)
    if low_date is None or high_date is None or low_date > high_date:
        return None
    return FilterSpec.date_range(cell_text(low.value), cell_text(high.value))


_default_executor = ToolExecutor()


def execute_tool_call(tool_call: ToolCall, state: TableState) -> ToolExecutionResult:
    return _default_executor.execute(tool_call, state)


def apply_tool_calls(
    tool_calls: Iterable[ToolCall],
    state: TableState,
    executor: ToolExecutor | None = None,
) -> tuple[TableState, list[tuple[ToolCall, ToolExecutionResult]]]:
    """Fold tool calls over the state in emission order."""
    executor = executor or _default_executor
    results = []
    for tool_call in tool_calls:
        result = executor.execute(tool_call, state)
        state = result.new_state
        results.append((tool_call, result))
    return state, results
