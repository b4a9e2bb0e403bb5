"""StreamDecoder – turn provider stream events into text, thinking and tool calls.

Two encodings are accepted side by side: the incremental content-block
lifecycle (``content_block_start`` / ``content_block_delta``) and one-shot
messages whose ``content`` array is already complete (``message`` and
``message_start``).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable

from claude_table.accumulator import ToolCallAccumulator
from claude_table.messages import ToolCall
from claude_table.sse import SSEReader
from claude_table.thinking import ThinkingTagSplitter

log = logging.getLogger("claude-table")


@dataclass
class StreamCallbacks:
    on_text_delta: Callable[[str], None] | None = None
    on_thinking_delta: Callable[[str], None] | None = None
    on_tool_call_start: Callable[[str, str], None] | None = None
    on_tool_call_delta: Callable[[str, str], None] | None = None


@dataclass
class DecodeResult:
    text: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    cancelled: bool = False


class StreamDecoder:
    """Accumulate decoded stream events for one request."""

    def __init__(self, callbacks: StreamCallbacks | None = None):
        self.callbacks = callbacks or StreamCallbacks()
        self.tool_calls = ToolCallAccumulator()
        self._splitter = ThinkingTagSplitter()
        self._text: list[str] = []
        self._thinking: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def thinking(self) -> str:
        return "".join(self._thinking)

    def feed_event(self, event: dict) -> None:
        event_type = event.get("type")
        if event_type == "content_block_start":
            self._on_block_start(event)
        elif event_type == "content_block_delta":
            self._on_block_delta(event)
        elif event_type == "message":
            self._on_content(event.get("content"))
        elif event_type == "message_start":
            self._on_content((event.get("message") or {}).get("content"))
        elif event_type == "error":
            error = event.get("error") or {}
            log.warning(f"Provider reported an error mid-stream: {error.get('type')}: {error.get('message')}")

    def finish(self) -> DecodeResult:
        tail = self._splitter.flush()
        self._emit_text(tail.visible_text)
        self._emit_thinking(tail.thinking_text)
        return DecodeResult(text=self.text, thinking=self.thinking, tool_calls=self.tool_calls.finalize())

    # -- event handlers -----------------------------------------------------

    def _on_block_start(self, event: dict) -> None:
        block = event.get("content_block") or {}
        block_type = block.get("type")
        if block_type == "tool_use":
            call_id, name = block.get("id"), block.get("name")
            if not call_id or not name:
                return
            self.tool_calls.start(call_id, name, index=_index(event))
            if self.callbacks.on_tool_call_start:
                self.callbacks.on_tool_call_start(call_id, name)
        elif block_type == "text":
            self._on_text(block.get("text"))
        elif block_type == "thinking":
            self._emit_thinking(block.get("thinking"))

    def _on_block_delta(self, event: dict) -> None:
        delta = event.get("delta") or {}
        delta_type = delta.get("type")
        if delta_type == "input_json_delta":
            fragment = delta.get("partial_json")
            if not fragment:
                return
            call_id = self.tool_calls.append(fragment, index=_index(event), call_id=event.get("tool_call_id"))
            if call_id and self.callbacks.on_tool_call_delta:
                self.callbacks.on_tool_call_delta(call_id, fragment)
        elif delta_type == "text_delta":
            self._on_text(delta.get("text"))
        elif delta_type == "thinking_delta":
            self._emit_thinking(delta.get("thinking"))

    def _on_content(self, content) -> None:
        if not isinstance(content, list):
            return
        for idx, block in enumerate(content):
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                self._on_text(block.get("text"))
            elif block_type == "thinking":
                self._emit_thinking(block.get("thinking"))
            elif block_type == "tool_use" and block.get("id") and block.get("name"):
                arguments = json.dumps(block.get("input") or {})
                self.tool_calls.start(block["id"], block["name"], index=idx, arguments=arguments)
                if self.callbacks.on_tool_call_start:
                    self.callbacks.on_tool_call_start(block["id"], block["name"])

    def _on_text(self, text: str | None) -> None:
        if not text:
            return
        result = self._splitter.split(text)
        self._emit_thinking(result.thinking_text)
        self._emit_text(result.visible_text)

    def _emit_text(self, text: str | None) -> None:
        if text:
            self._text.append(text)
            if self.callbacks.on_text_delta:
                self.callbacks.on_text_delta(text)

    def _emit_thinking(self, text: str | None) -> None:
        if text:
            self._thinking.append(text)
            if self.callbacks.on_thinking_delta:
                self.callbacks.on_thinking_delta(text)


def _index(event: dict) -> int | None:
    index = event.get("index")
    if isinstance(index, int) and not isinstance(index, bool):
        return index
    return None


async def decode_stream(
    chunks: AsyncIterable[bytes],
    *,
    cancel: asyncio.Event | None = None,
    callbacks: StreamCallbacks | None = None,
) -> DecodeResult:
    """Read, split and decode a provider byte stream one chunk at a time.

    ``cancel`` is checked before every read. The byte iterator is always
    closed on the way out, whether the stream ended, hit ``[DONE]``, was
    cancelled or raised.
    """
    reader = SSEReader()
    decoder = StreamDecoder(callbacks)
    iterator = chunks.__aiter__()
    cancelled = False
    try:
        while True:
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            for event in reader.feed_bytes(chunk):
                decoder.feed_event(event)
            if reader.done:
                break
    finally:
        reader.finish()
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

    if cancelled:
        log.debug("Stream decode cancelled")
        return DecodeResult(text=decoder.text, thinking=decoder.thinking, cancelled=True)
    if reader.skipped:
        log.info(f"Stream finished with {reader.skipped} malformed event(s) skipped")
    return decoder.finish()
