"""SSEReader – split raw SSE bytes into decoded ``data:`` payloads."""

from __future__ import annotations

import json
import logging
from typing import Iterator

from claude_table.errors import MalformedStreamEvent

log = logging.getLogger("claude-table")

DONE_SENTINEL = "[DONE]"


class SSEReader:
    """Parse raw SSE bytes into JSON event objects.

    Incomplete trailing lines are buffered until the next chunk arrives.
    Lines are split on the raw ``\\n`` byte before decoding, so a multi-byte
    UTF-8 character split across two reads is decoded intact.
    """

    def __init__(self):
        self._buf = b""
        self.done = False
        self.skipped = 0

    def feed_bytes(self, chunk: bytes) -> Iterator[dict]:
        """Yield every complete event contained in the buffer after ``chunk``."""
        if self.done:
            return
        self._buf += chunk
        while b"\n" in self._buf:
            line, self._buf = self._buf.split(b"\n", 1)
            payload = _data_payload(line.decode("utf-8", errors="replace"))
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                self._buf = b""
                return
            try:
                yield parse_payload(payload)
            except MalformedStreamEvent as exc:
                self.skipped += 1
                log.warning(f"Skipping malformed SSE event: {exc}")

    def finish(self) -> None:
        """Drop an unterminated trailing line at transport EOF."""
        if self._buf.strip():
            log.debug(f"Discarding incomplete SSE line at EOF ({len(self._buf)} bytes)")
        self._buf = b""


def _data_payload(line: str) -> str | None:
    line = line.rstrip("\r")
    if not line.startswith("data:"):
        return None
    payload = line[len("data:") :]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


def parse_payload(payload: str) -> dict:
    """Decode one ``data:`` payload, raising MalformedStreamEvent if unusable."""
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, ValueError) as exc:
        raise MalformedStreamEvent(f"{exc} in {payload[:80]!r}") from exc
    if not isinstance(data, dict):
        raise MalformedStreamEvent(f"expected a JSON object, got {type(data).__name__}")
    return data

