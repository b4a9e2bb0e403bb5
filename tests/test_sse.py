"""Tests for SSEReader: line buffering, [DONE] handling and malformed events."""

import json

import pytest

from claude_table.errors import MalformedStreamEvent
from claude_table.sse import SSEReader, parse_payload


def _feed(reader, *chunks):
    events = []
    for chunk in chunks:
        events.extend(reader.feed_bytes(chunk))
    return events


def test_complete_events():
    r = SSEReader()
    events = _feed(r, b'data: {"type":"a"}\n\ndata: {"type":"b"}\n\n')
    assert [e["type"] for e in events] == ["a", "b"]
    assert not r.done
    print("  OK: two events in one chunk")


def test_line_split_across_reads():
    r = SSEReader()
    payload = b'data: {"type":"content_block_delta","delta":{"text":"hello"}}\n'
    events = []
    for i in range(len(payload)):
        events.extend(r.feed_bytes(payload[i : i + 1]))
    assert len(events) == 1, f"Expected 1 event from byte-at-a-time feed, got {events}"
    assert events[0]["delta"]["text"] == "hello"
    print("  OK: byte-at-a-time reassembly")


def test_multibyte_utf8_split():
    r = SSEReader()
    line = ("data: " + json.dumps({"text": "héllo 你好"}, ensure_ascii=False) + "\n").encode("utf-8")
    cut = line.index("é".encode("utf-8")) + 1  # inside the 2-byte sequence
    events = _feed(r, line[:cut], line[cut:])
    assert events == [{"text": "héllo 你好"}]
    print("  OK: UTF-8 character split across reads decoded intact")


def test_non_data_lines_ignored():
    r = SSEReader()
    events = _feed(
        r,
        b"event: message_start\n",
        b": keep-alive comment\n",
        b"id: 7\n\n",
        b'data:{"type":"no-space"}\r\n',
    )
    assert events == [{"type": "no-space"}]
    assert r.skipped == 0
    print("  OK: event/comment/id lines ignored, CRLF and missing space tolerated")


def test_done_sentinel_stops():
    r = SSEReader()
    events = _feed(r, b'data: {"type":"a"}\ndata: [DONE]\ndata: {"type":"after"}\n')
    assert [e["type"] for e in events] == ["a"]
    assert r.done
    assert list(r.feed_bytes(b'data: {"type":"late"}\n')) == []
    print("  OK: [DONE] ends the logical stream")


def test_malformed_json_skipped():
    r = SSEReader()
    events = _feed(
        r,
        b'data: {"type":"first"}\n',
        b"data: {not json\n",
        b"data: [1, 2]\n",
        b'data: {"type":"second"}\n',
    )
    assert [e["type"] for e in events] == ["first", "second"]
    assert r.skipped == 2
    print("  OK: malformed and non-object payloads skipped")


def test_incomplete_trailing_line_discarded():
    r = SSEReader()
    events = _feed(r, b'data: {"type":"a"}\ndata: {"type":"partial"')
    assert [e["type"] for e in events] == ["a"]
    r.finish()
    assert _feed(r, b"\n") == []
    print("  OK: unterminated line at EOF dropped")


def test_parse_payload_errors():
    assert parse_payload('{"a": 1}') == {"a": 1}
    with pytest.raises(MalformedStreamEvent):
        parse_payload("{")
    with pytest.raises(MalformedStreamEvent):
        parse_payload('"just a string"')

