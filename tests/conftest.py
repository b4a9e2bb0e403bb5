"""Pytest configuration and shared fixtures."""

import shutil
import tempfile

import pytest

from claude_table.table import TableRow, TableState


@pytest.fixture
def temp_log_dir():
    """Create a temporary directory for session logs."""
    log_dir = tempfile.mkdtemp(prefix="claude_table_test_")
    yield log_dir
    shutil.rmtree(log_dir, ignore_errors=True)


@pytest.fixture
def rows():
    """A small table covering every status, category overlap and both date spellings."""
    return [
        TableRow("row-1", "Widget A", 5.0, "active", "2024-01-15", "Electronics"),
        TableRow("row-2", "Gadget Pro", 20.0, "inactive", "2024-02-01", "Sports"),
        TableRow("row-3", "widget a", 150.0, "pending", "2024-03-10", "Home"),
        TableRow("row-4", "Tool Basic", 75.5, "Inactive", "2023-12-31", "Sports"),
        TableRow("row-5", "Item Beta", 1009.0, "active", "2024-02-29", "Books"),
    ]


@pytest.fixture
def state(rows):
    return TableState(rows=rows)
