"""Tool definitions advertised to the model, in Anthropic ``input_schema`` form."""

from __future__ import annotations

import copy

from claude_table.filters import OPERATORS
from claude_table.table import DATA_COLUMNS, STATUSES

_COLUMNS_HINT = ", ".join(DATA_COLUMNS)
_OPERATORS_HINT = ", ".join(OPERATORS)

TABLE_TOOLS: list[dict] = [
    {
        "name": "filterTable",
        "description": (
            "Filter the table rows based on column criteria. Filters on different columns combine; "
            f"a new filter on an already filtered column replaces it. Supports operators: {_OPERATORS_HINT}"
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "column": {"type": "string", "description": f"The column name to filter ({_COLUMNS_HINT})"},
                "operator": {
                    "type": "string",
                    "enum": list(OPERATORS),
                    "description": f"The comparison operator: {_OPERATORS_HINT}",
                },
                "value": {
                    "type": "string",
                    "description": "The value to compare against (dates as YYYY-MM-DD; converted to the column type)",
                },
            },
            "required": ["column", "operator", "value"],
        },
    },
    {
        "name": "sortTable",
        "description": "Sort the table by a column in ascending or descending order",
        "input_schema": {
            "type": "object",
            "properties": {
                "column": {"type": "string", "description": f"The column name to sort by ({_COLUMNS_HINT})"},
                "direction": {
                    "type": "string",
                    "enum": ["asc", "desc"],
                    "description": "Sort direction: asc for ascending, desc for descending",
                },
            },
            "required": ["column", "direction"],
        },
    },
    {
        "name": "addRow",
        "description": "Add a new row to the table",
        "input_schema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the item"},
                "amount": {"type": "number", "description": "Amount value"},
                "status": {"type": "string", "enum": list(STATUSES), "description": "Status of the item"},
                "date": {"type": "string", "description": "Date in YYYY-MM-DD format"},
                "category": {"type": "string", "description": "Category of the item"},
            },
            "required": ["name", "amount", "status", "date", "category"],
        },
    },
    {
        "name": "deleteRow",
        "description": (
            "Delete rows from the table. Give exactly one selector: rowId (one row), "
            "name (rows with that name), or column and value (every matching row)."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "rowId": {"type": "string", "description": "The ID of the row to delete"},
                "name": {"type": "string", "description": "Delete rows whose name matches (case-insensitive)"},
                "column": {"type": "string", "description": f"Column to match for bulk delete ({_COLUMNS_HINT})"},
                "value": {"type": "string", "description": "Value the column must equal for bulk delete"},
            },
            "required": [],
        },
    },
    {
        "name": "clearFilters",
        "description": "Clear all filters from the table",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "clearSorting",
        "description": "Clear all sorting from the table",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
]

TOOL_NAMES = tuple(tool["name"] for tool in TABLE_TOOLS)


def get_tools() -> list[dict]:
    """Return a copy of the table tool definitions."""
    return copy.deepcopy(TABLE_TOOLS)


SYSTEM_PROMPT = """
You are a helpful assistant managing a data table with columns: name, amount, status, date, category.

CRITICAL: Always provide a text response after using tools with a summary of the actions taken.

TOOLS:
- filterTable: Filter rows (operators: ==, !=, >, <, >=, <=, contains, startsWith, endsWith)
  * For date column: Use >, <, >=, <=, ==, != with dates in YYYY-MM-DD format (e.g., "2024-01-15")
  * Examples: "show items after 2024-01-01" -> filterTable(date > '2024-01-01')
- sortTable: Sort by column (asc/desc)
- addRow: Add new rows (date must be YYYY-MM-DD format)
- deleteRow: Delete rows by name, column/value, or rowId
  * Examples: "delete Widget A" -> deleteRow(name='Widget A')
  * "delete all inactive items" -> deleteRow(column='status', value='inactive')
- clearFilters/clearSorting: Reset filters/sorting

FILTER RULES:
1. Filters are ADDITIVE - new filters combine with existing ones automatically
2. Only apply NEW filters requested - don't re-apply existing ones
3. Only call clearFilters when user explicitly says "clear", "reset", "remove filters"
4. "keep only X" means filterTable(X), NOT clearFilters first

EXAMPLES:
- "keep only active" -> filterTable(status == 'active')
- Then "also sports" -> filterTable(category contains 'sport') ONLY
- "reset and show pending" -> clearFilters, then filterTable(status == 'pending')
- "show items from 2024" -> filterTable(date >= '2024-01-01')
- "show items from March 2024" -> filterTable(date >= '2024-03-01'), then filterTable(date <= '2024-03-31')

After executing tools, always respond with text like: "Filtered table to show only active items."
""".strip()
