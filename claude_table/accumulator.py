"""ToolCallAccumulator – reassemble streamed tool-call arguments.

Argument fragments arrive addressed either by tool-call id or by content
block position. Accumulation never rejects anything: argument JSON is only
checked diagnostically on finalize, and the executor validates for real.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from claude_table.messages import ToolCall

log = logging.getLogger("claude-table")


@dataclass
class _PendingCall:
    id: str
    name: str
    arguments: str = ""


class ToolCallAccumulator:
    def __init__(self):
        self._by_id: dict[str, _PendingCall] = {}
        self._by_index: dict[int, _PendingCall] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def start(self, call_id: str, name: str, index: int | None = None, arguments: str = "") -> None:
        """Register a new call. Reusing an id replaces the earlier call."""
        if call_id in self._by_id:
            log.warning(f"Tool call id {call_id} reused in one turn; keeping the latest ({name})")
            stale = self._by_id.pop(call_id)
            for idx, pending in list(self._by_index.items()):
                if pending is stale:
                    del self._by_index[idx]
        call = _PendingCall(id=call_id, name=name, arguments=arguments)
        self._by_id[call_id] = call
        if index is None:
            index = max(self._by_index, default=-1) + 1
        self._by_index[index] = call

    def append(self, fragment: str, index: int | None = None, call_id: str | None = None) -> str | None:
        """Append an argument fragment and return the id of the call it went to.

        Targets by id, then by position; with neither (or no call registered
        there) the most recently started call receives the fragment.
        """
        target = None
        if call_id is not None:
            target = self._by_id.get(call_id)
        if target is None and index is not None:
            target = self._by_index.get(index)
        if target is None and self._by_id:
            target = next(reversed(self._by_id.values()))
            if index is not None:
                log.debug(f"No tool call at index {index}; appending to latest call {target.id}")
        if target is None:
            log.debug("Dropping tool argument fragment: no tool call started")
            return None
        target.arguments += fragment
        return target.id

    def finalize(self) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for pending in self._by_id.values():
            arguments = pending.arguments if pending.arguments.strip() else "{}"
            try:
                json.loads(arguments)
            except (json.JSONDecodeError, ValueError):
                log.warning(f"Tool call arguments may be incomplete: {pending.name} {arguments[:200]}")
            calls.append(ToolCall(id=pending.id, name=pending.name, arguments=arguments))
        return calls
