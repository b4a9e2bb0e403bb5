"""claude-table: chat with an AI assistant that manipulates a data table.

The assistant answers over a streamed SSE response; table operations arrive as
tool calls that are validated and applied to an immutable table state.
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "__version__",
    "ChatSession",
    "ToolExecutor",
    "TableState",
    "TableRow",
    "decode_stream",
    "create_provider",
]

from claude_table.executor import ToolExecutor
from claude_table.provider import create_provider
from claude_table.session import ChatSession
from claude_table.stream import decode_stream
from claude_table.table import TableRow, TableState
