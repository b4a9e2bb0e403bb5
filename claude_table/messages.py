"""Conversation message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant", "tool", "system"]


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model. ``arguments`` is raw JSON."""

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        function = data.get("function") or {}
        return cls(
            id=str(data.get("id", "")),
            name=str(function.get("name", data.get("name", ""))),
            arguments=function.get("arguments", data.get("arguments", "{}")) or "{}",
        )


@dataclass
class Message:
    role: Role
    content: str | list[dict]
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    thinking: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            tool_calls=[ToolCall.from_dict(tc) for tc in data.get("tool_calls") or []],
            tool_call_id=data.get("tool_call_id"),
        )
