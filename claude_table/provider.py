"""AI providers – open a raw SSE byte stream for a conversation.

Providers hand back the upstream bytes untouched; decoding belongs to
:mod:`claude_table.stream` so every provider shares one decoder.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import anthropic
import httpx

from claude_table.config import DEFAULT_API_URL, DEFAULT_MAX_TOKENS, DEFAULT_MODEL, PROVIDERS, Settings
from claude_table.errors import ConfigurationError, ProviderError, StreamSetupError, TransportError
from claude_table.messages import Message

log = logging.getLogger("claude-table")


class AIProvider(ABC):
    """Capability interface every model vendor implements."""

    provider_id: str = ""

    @abstractmethod
    def open_stream(
        self, messages: list[Message], tools: list[dict], system: str | None = None
    ) -> "AsyncIterator[AsyncIterator[bytes]]":
        """Async context manager yielding the response body as SSE bytes.

        Leaving the context releases the HTTP response, including when the
        consumer is cancelled mid-read.
        """

    async def aclose(self) -> None:
        return None


class ClaudeProvider(AIProvider):
    provider_id = "claude"

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        base_url: str = DEFAULT_API_URL,
        stream: bool = True,
        max_retries: int = 2,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        if not api_key and client is None:
            raise ConfigurationError("Claude API key is required")
        self.model = model
        self.max_tokens = max_tokens
        self.stream = stream
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url, max_retries=max_retries)

    @asynccontextmanager
    async def open_stream(self, messages: list[Message], tools: list[dict], system: str | None = None):
        inline_system, claude_messages = format_messages_for_claude(messages)
        system_prompt = "\n\n".join(part for part in (system, inline_system) if part)

        params: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": claude_messages,
            "stream": self.stream,
        }
        if tools:
            params["tools"] = tools
        if system_prompt:
            params["system"] = system_prompt

        log.debug(f"→ Claude request (model={self.model}, messages={len(claude_messages)}, tools={len(tools)})")
        try:
            async with self._client.messages.with_streaming_response.create(**params) as response:
                body = _iter_body(response)
                try:
                    yield body
                finally:
                    await body.aclose()
        except anthropic.APIStatusError as exc:
            message = _error_message(exc)
            log.error(f"Claude API returned {exc.status_code}: {message}")
            raise ProviderError(message, self.provider_id, exc.status_code) from exc
        except anthropic.APIConnectionError as exc:
            log.error(f"Claude API unreachable: {exc}")
            raise TransportError(f"Cannot connect to the Claude API: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.close()


async def _iter_body(response) -> AsyncIterator[bytes]:
    content_type = response.headers.get("content-type", "")
    try:
        if "text/event-stream" in content_type:
            async for chunk in response.iter_bytes():
                yield chunk
            return

        # Non-streaming reply: hand it on as a single consolidated message event.
        raw = await response.read()
        if not raw.strip():
            raise StreamSetupError("No response body from Claude")
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, ValueError) as exc:
            raise StreamSetupError(f"Failed to parse response from Claude: {exc}") from exc
        yield f"data: {json.dumps(payload)}\n\n".encode("utf-8")
    except httpx.HTTPError as exc:
        raise TransportError(f"Connection to the Claude API was lost: {exc}") from exc


def _error_message(exc: anthropic.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"Claude API error: {error['message']}"
    text = str(exc.message)
    if len(text) > 500:
        text = text[:500] + "..."
    return f"Claude API error: {text}"


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def _content_to_string(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            item["text"] if isinstance(item, dict) and item.get("type") == "text" and item.get("text") else json.dumps(item)
            for item in content
        )
    return json.dumps(content)


def _tool_input(arguments: str) -> dict:
    try:
        parsed = json.loads(arguments or "{}")
    except (json.JSONDecodeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def format_messages_for_claude(messages: list[Message]) -> tuple[str | None, list[dict]]:
    """Map conversation messages onto the Anthropic Messages API shape.

    Returns ``(system_text, messages)``. Tool results become ``tool_result``
    blocks, grouped into one user turn when they follow each other.
    """
    system_parts: list[str] = []
    out: list[dict] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(_content_to_string(msg.content))
            continue

        if msg.role == "tool" and msg.tool_call_id:
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": _content_to_string(msg.content),
            }
            previous = out[-1] if out else None
            if (
                previous
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                out.append({"role": "user", "content": [block]})
            continue

        if msg.role == "assistant":
            text = _content_to_string(msg.content)
            if msg.tool_calls:
                blocks: list[dict] = []
                if text.strip():
                    blocks.append({"type": "text", "text": text})
                for tool_call in msg.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": tool_call.id,
                            "name": tool_call.name,
                            "input": _tool_input(tool_call.arguments),
                        }
                    )
                out.append({"role": "assistant", "content": blocks})
            elif text.strip():
                out.append({"role": "assistant", "content": text})
            continue

        out.append({"role": "user", "content": _content_to_string(msg.content)})

    return ("\n\n".join(system_parts) or None), out


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(settings: Settings, client: anthropic.AsyncAnthropic | None = None) -> AIProvider:
    """Select the provider named by ``settings.provider``."""
    provider = settings.provider
    if provider == "claude":
        if not settings.anthropic_api_key and client is None:
            raise ConfigurationError("ANTHROPIC_API_KEY is required for Claude provider")
        return ClaudeProvider(
            settings.anthropic_api_key,
            model=settings.model,
            max_tokens=settings.max_tokens,
            base_url=settings.api_url,
            stream=settings.stream,
            max_retries=settings.max_retries,
            client=client,
        )
    if provider in PROVIDERS:
        raise ConfigurationError(f"{provider} provider is not yet implemented")
    raise ConfigurationError(f"Invalid AI_PROVIDER value: {provider}. Must be one of: {', '.join(PROVIDERS)}")
