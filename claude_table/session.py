"""ChatSession – drive a conversation turn: stream, decode, execute tools, repeat."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from claude_table.config import INPUT_MAX_LENGTH
from claude_table.errors import RequestValidationError
from claude_table.executor import ToolExecutionResult, ToolExecutor, apply_tool_calls
from claude_table.messages import Message, ToolCall
from claude_table.provider import AIProvider
from claude_table.stream import DecodeResult, StreamCallbacks, decode_stream
from claude_table.table import TableState
from claude_table.tools import SYSTEM_PROMPT, TABLE_TOOLS

log = logging.getLogger("claude-table")


@dataclass
class TurnCallbacks(StreamCallbacks):
    on_tool_result: Callable[[ToolCall, ToolExecutionResult], None] | None = None


@dataclass
class TurnResult:
    state: TableState
    text: str = ""
    thinking: str = ""
    tool_results: list[tuple[ToolCall, ToolExecutionResult]] = field(default_factory=list)
    cancelled: bool = False


class ChatSession:
    """One conversation over one table.

    Only the most recent turn is live: sending a new message cancels the
    previous turn, and callbacks belonging to a superseded turn are dropped.
    """

    def __init__(
        self,
        provider: AIProvider,
        state: TableState | None = None,
        executor: ToolExecutor | None = None,
        tools: list[dict] | None = None,
        system_prompt: str | None = SYSTEM_PROMPT,
        max_rounds: int = 5,
    ):
        self.provider = provider
        self.state = state if state is not None else TableState()
        self.executor = executor or ToolExecutor()
        self.tools = TABLE_TOOLS if tools is None else tools
        self.system_prompt = system_prompt
        self.max_rounds = max_rounds
        self.messages: list[Message] = []
        self._generation = 0
        self._cancel: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._round_text = ""
        self._round_thinking = ""

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Abort the active turn, if any. Silent: the turn reports ``cancelled``.

        Text already streamed in the interrupted round is kept in the history
        as an assistant message, so the next request does not open with two
        user messages in a row.
        """
        if self.busy and self._round_text:
            self.messages.append(Message("assistant", self._round_text, thinking=self._round_thinking or None))
        self._round_text = self._round_thinking = ""
        if self._cancel is not None:
            self._cancel.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def send_message(self, text: str, callbacks: StreamCallbacks | None = None) -> TurnResult:
        text = text.strip()
        if not text:
            raise RequestValidationError("Message must not be empty")
        if len(text) > INPUT_MAX_LENGTH:
            raise RequestValidationError(f"Message exceeds {INPUT_MAX_LENGTH} characters")

        self.cancel()
        self._generation += 1
        generation = self._generation
        cancel = asyncio.Event()
        self._cancel = cancel

        turn = TurnResult(state=self.state)
        guarded = self._guard(generation, turn, callbacks or StreamCallbacks())
        self.messages.append(Message("user", text))
        log.info(f"Turn {generation} started ({len(self.messages)} message(s) in history)")

        task = asyncio.ensure_future(self._run_turn(turn, guarded, cancel))
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            if not cancel.is_set():
                raise
            turn.cancelled = True
        finally:
            if self._task is task:
                self._task = None

        log.info(
            f"Turn {generation} finished (cancelled={turn.cancelled}, tool_calls={len(turn.tool_results)}, "
            f"rows={len(self.state.rows)})"
        )
        return turn

    async def _run_turn(self, turn: TurnResult, callbacks: TurnCallbacks, cancel: asyncio.Event) -> None:
        for round_no in range(1, self.max_rounds + 1):
            self._round_text = self._round_thinking = ""
            async with self.provider.open_stream(self.messages, self.tools, self.system_prompt) as chunks:
                decoded = await decode_stream(chunks, cancel=cancel, callbacks=callbacks)

            if decoded.cancelled:
                # cancel() already recorded the partial reply
                turn.cancelled = True
                return

            self._record_reply(decoded)
            if not decoded.tool_calls:
                return

            self.state, results = apply_tool_calls(decoded.tool_calls, self.state, self.executor)
            turn.state = self.state
            for tool_call, result in results:
                turn.tool_results.append((tool_call, result))
                content = result.message if result.success else f"Error: {result.message}"
                self.messages.append(Message("tool", content, tool_call_id=tool_call.id))
                if callbacks.on_tool_result:
                    callbacks.on_tool_result(tool_call, result)
            log.debug(f"Round {round_no}: applied {len(results)} tool call(s)")

        log.warning(f"Stopped after {self.max_rounds} tool round(s) without a final reply")

    def _record_reply(self, decoded: DecodeResult) -> None:
        self._round_text = self._round_thinking = ""
        self.messages.append(
            Message(
                "assistant",
                decoded.text,
                tool_calls=list(decoded.tool_calls),
                thinking=decoded.thinking or None,
            )
        )

    def _guard(self, generation: int, turn: TurnResult, callbacks: StreamCallbacks) -> TurnCallbacks:
        def live() -> bool:
            return generation == self._generation

        def on_text(text: str) -> None:
            if live():
                turn.text += text
                self._round_text += text
                if callbacks.on_text_delta:
                    callbacks.on_text_delta(text)

        def on_thinking(text: str) -> None:
            if live():
                turn.thinking += text
                self._round_thinking += text
                if callbacks.on_thinking_delta:
                    callbacks.on_thinking_delta(text)

        def on_start(call_id: str, name: str) -> None:
            if live() and callbacks.on_tool_call_start:
                callbacks.on_tool_call_start(call_id, name)

        def on_delta(call_id: str, fragment: str) -> None:
            if live() and callbacks.on_tool_call_delta:
                callbacks.on_tool_call_delta(call_id, fragment)

        on_result = getattr(callbacks, "on_tool_result", None)

        def on_tool_result(tool_call: ToolCall, result: ToolExecutionResult) -> None:
            if live() and on_result:
                on_result(tool_call, result)

        return TurnCallbacks(
            on_text_delta=on_text,
            on_thinking_delta=on_thinking,
            on_tool_call_start=on_start,
            on_tool_call_delta=on_delta,
            on_tool_result=on_tool_result,
        )
