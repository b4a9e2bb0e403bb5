"""Tests for ChatSession: tool rounds, history, cancellation and supersession."""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from fakes import HANG, FakeProvider, sse, text_events, tool_events

from claude_table.errors import ProviderError, RequestValidationError
from claude_table.session import ChatSession, TurnCallbacks
from claude_table.table import visible_rows
from claude_table.tools import SYSTEM_PROMPT, TABLE_TOOLS


def test_tool_round_then_final_reply(state):
    provider = FakeProvider(
        [
            [
                sse(
                    *text_events("Let me filter.", index=0),
                    *tool_events("toolu_1", "filterTable", {"column": "status", "operator": "==", "value": "active"}, 1),
                    *tool_events("toolu_2", "deleteRow", {"name": "Nobody"}, 2),
                )
            ],
            [sse(*text_events(" Showing active items."))],
        ]
    )
    session = ChatSession(provider, state)
    results = []
    callbacks = TurnCallbacks(on_tool_result=lambda c, r: results.append((c.id, r.success)))

    turn = asyncio.run(session.send_message("  keep only active  ", callbacks))

    assert not turn.cancelled
    assert turn.text == "Let me filter. Showing active items."
    assert results == [("toolu_1", True), ("toolu_2", False)]
    assert [r.success for _, r in turn.tool_results] == [True, False]
    assert [r.id for r in visible_rows(session.state)] == ["row-1", "row-5"]
    assert turn.state is session.state

    roles = [m.role for m in session.messages]
    assert roles == ["user", "assistant", "tool", "tool", "assistant"]
    assert session.messages[0].content == "keep only active"
    assert session.messages[2].content == "Filtered by status == active"
    assert session.messages[3].content == 'Error: No rows found with name "Nobody"'
    assert session.messages[3].tool_call_id == "toolu_2"

    assert provider.opened == provider.released == 2
    first, second = provider.requests
    assert first["system"] == SYSTEM_PROMPT
    assert first["tools"] is TABLE_TOOLS
    assert [m["role"] for m in second["messages"]] == ["user", "assistant", "tool", "tool"]
    assert json.loads(second["messages"][1]["tool_calls"][0]["function"]["arguments"])["value"] == "active"
    print("  OK: tool results fed back, loop ends on plain reply")


def test_thinking_belongs_to_turn(state):
    provider = FakeProvider([[sse(*text_events("<thinking>check rows</thinking>Done."))]])
    session = ChatSession(provider, state)
    turn = asyncio.run(session.send_message("hi"))
    assert turn.thinking == "check rows"
    assert turn.text == "Done."
    assert session.messages[-1].thinking == "check rows"


def test_max_rounds_stops_loop(state):
    looping = [sse(*tool_events(f"t{i}", "clearSorting", {}, 0)) for i in range(5)]
    provider = FakeProvider([[chunk] for chunk in looping])
    session = ChatSession(provider, state, max_rounds=2)
    turn = asyncio.run(session.send_message("loop"))
    assert provider.opened == 2
    assert len(turn.tool_results) == 2


def test_input_validation(state):
    session = ChatSession(FakeProvider([]), state)
    with pytest.raises(RequestValidationError):
        asyncio.run(session.send_message("   "))
    with pytest.raises(RequestValidationError):
        asyncio.run(session.send_message("x" * 5001))
    assert session.messages == []


def test_cancel_mid_stream_is_silent(state):
    provider = FakeProvider([[sse(*text_events("partial")), HANG], [sse(*text_events("sure"))]])
    session = ChatSession(provider, state)

    async def run():
        seen = []
        task = asyncio.ensure_future(session.send_message("hi", TurnCallbacks(on_text_delta=seen.append)))
        while not seen:
            await asyncio.sleep(0.001)
        assert session.busy
        session.cancel()
        return await task

    turn = asyncio.run(run())
    assert turn.cancelled
    assert turn.text == "partial"
    assert turn.tool_results == []
    assert provider.released == 1, "stream released on cancellation"
    assert not session.busy
    assert [(m.role, m.content) for m in session.messages] == [("user", "hi"), ("assistant", "partial")]

    asyncio.run(session.send_message("again"))
    assert [m["role"] for m in provider.requests[1]["messages"]] == ["user", "assistant", "user"]
    assert provider.requests[1]["messages"][1]["content"] == "partial", "partial reply kept in history"
    print("  OK: cancellation returns a cancelled turn, no error")


def test_new_message_supersedes_previous_turn(state):
    provider = FakeProvider(
        [
            [sse(*text_events("old ")), HANG],
            [sse(*text_events("new"))],
        ]
    )
    session = ChatSession(provider, state)
    old_seen, new_seen = [], []

    async def run():
        old = asyncio.ensure_future(session.send_message("first", TurnCallbacks(on_text_delta=old_seen.append)))
        while not old_seen:
            await asyncio.sleep(0.001)
        new_turn = await session.send_message("second", TurnCallbacks(on_text_delta=new_seen.append))
        return await old, new_turn

    old_turn, new_turn = asyncio.run(run())
    assert old_turn.cancelled
    assert not new_turn.cancelled
    assert new_turn.text == "new"
    assert old_seen == ["old "], "superseded turn receives nothing further"
    assert new_seen == ["new"]
    assert provider.released == 2
    assert [(m.role, m.content) for m in session.messages] == [
        ("user", "first"),
        ("assistant", "old "),
        ("user", "second"),
        ("assistant", "new"),
    ]
    assert [m["role"] for m in provider.requests[1]["messages"]] == ["user", "assistant", "user"]


def test_stale_callbacks_are_dropped(state):
    provider = FakeProvider([[sse(*text_events("a"), *text_events("b", index=1))]])
    session = ChatSession(provider, state)
    seen = []

    def on_text(text):
        seen.append(text)
        session._generation += 1  # a newer turn has started

    turn = asyncio.run(session.send_message("hi", TurnCallbacks(on_text_delta=on_text)))
    assert seen == ["a"]
    assert turn.text == "a"


def test_provider_errors_propagate(state):
    class FailingProvider(FakeProvider):
        @asynccontextmanager
        async def open_stream(self, messages, tools, system=None):
            raise ProviderError("Claude API error: overloaded", "claude", 529)
            yield

    session = ChatSession(FailingProvider([]), state)
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(session.send_message("hi"))
    assert excinfo.value.status == 529
    assert not session.busy
