"""Chat relay – validate chat requests and stream the provider's SSE body back."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Annotated, Literal, Optional, Union

from aiohttp import web
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)

from claude_table.config import Settings
from claude_table.errors import (
    ClaudeTableError,
    ConfigurationError,
    ProviderError,
    RequestValidationError,
)
from claude_table.messages import Message
from claude_table.provider import AIProvider, create_provider
from claude_table.tools import SYSTEM_PROMPT, get_tools

log = logging.getLogger("claude-table")

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _ContentItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: StrictStr


class _FunctionIn(BaseModel):
    name: StrictStr
    arguments: StrictStr = "{}"


class _ToolCallIn(BaseModel):
    id: StrictStr
    type: Literal["function"] = "function"
    function: _FunctionIn


class ChatMessageIn(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: Union[StrictStr, list[_ContentItem]]
    tool_calls: Optional[list[_ToolCallIn]] = None
    tool_call_id: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _tool_result_has_id(self) -> "ChatMessageIn":
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require tool_call_id")
        return self


class ToolDefinitionIn(BaseModel):
    name: Annotated[StrictStr, StringConstraints(pattern=r"^[a-zA-Z0-9_-]{1,64}$")]
    description: StrictStr = Field(min_length=1)
    input_schema: dict

    @field_validator("input_schema")
    @classmethod
    def _object_schema(cls, value: dict) -> dict:
        if value.get("type") != "object":
            raise ValueError('input_schema.type must be "object"')
        return value


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(min_length=1)
    tools: Optional[list[ToolDefinitionIn]] = None


def parse_chat_request(body) -> tuple[list[Message], list[dict] | None]:
    """Validate a relay request body. Raises :class:`RequestValidationError`."""
    try:
        chat = ChatRequest.model_validate(body)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
            for err in exc.errors()
        )
        raise RequestValidationError(f"Invalid request: {details}") from exc
    messages = [Message.from_dict(m.model_dump(exclude_none=True)) for m in chat.messages]
    tools = [t.model_dump() for t in chat.tools] if chat.tools is not None else None
    return messages, tools


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _provider(ctx: dict) -> AIProvider:
    if ctx.get("provider") is None:
        ctx["provider"] = create_provider(ctx["settings"])
    return ctx["provider"]


def _status_for(exc: ClaudeTableError) -> int:
    if isinstance(exc, (ProviderError, RequestValidationError)):
        return exc.status
    if isinstance(exc, ConfigurationError):
        return 400
    return 500


def error_response(exc: ClaudeTableError) -> web.Response:
    body: dict = {"error": str(exc)}
    if isinstance(exc, ProviderError):
        body["provider"] = exc.provider
    return web.json_response(body, status=_status_for(exc))


async def _relay(request: web.Request, *, system: str | None, default_tools: list[dict]) -> web.StreamResponse:
    ctx: dict = request.app["relay_ctx"]
    req_id = f"req_{uuid.uuid4().hex[:12]}"
    t0 = time.monotonic()

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError):
        log.info(f"[{req_id}] rejected: invalid JSON body")
        return error_response(RequestValidationError("Invalid JSON in request body"))

    try:
        messages, tools = parse_chat_request(body)
        if tools is None:
            tools = default_tools
        provider = _provider(ctx)
        log.info(f"[{req_id}] → {request.path} (messages={len(messages)}, tools={len(tools)})")

        async with provider.open_stream(messages, tools, system) as chunks:
            resp = web.StreamResponse(status=200, headers=SSE_HEADERS)
            await resp.prepare(request)
            size = 0
            try:
                async for chunk in chunks:
                    await resp.write(chunk)
                    size += len(chunk)
            except ClaudeTableError as exc:
                # Headers are already sent: report the failure in-band.
                log.error(f"[{req_id}] upstream failed mid-stream: {exc}")
                event = {"type": "error", "error": {"type": type(exc).__name__, "message": str(exc)}}
                await resp.write(f"data: {json.dumps(event)}\n\n".encode("utf-8"))
            except ConnectionResetError:
                log.info(f"[{req_id}] client disconnected")
                return resp

        await resp.write_eof()
        duration_ms = int((time.monotonic() - t0) * 1000)
        log.info(f"[{req_id}] ← 200 stream done ({duration_ms}ms, {size} bytes)")
        return resp
    except ClaudeTableError as exc:
        log.warning(f"[{req_id}] ← {_status_for(exc)} {exc}")
        return error_response(exc)


async def chat_handler(request: web.Request) -> web.StreamResponse:
    return await _relay(request, system=None, default_tools=[])


async def toolcall_chat_handler(request: web.Request) -> web.StreamResponse:
    return await _relay(request, system=SYSTEM_PROMPT, default_tools=get_tools())


async def _close_provider(app: web.Application) -> None:
    provider = app["relay_ctx"].get("provider")
    if provider is not None:
        await provider.aclose()


def create_app(settings: Settings, provider: AIProvider | None = None) -> web.Application:
    """Build the relay application. ``provider`` defaults to one built from ``settings``."""
    app = web.Application()
    app["relay_ctx"] = {"settings": settings, "provider": provider}
    app.router.add_post("/api/v1/chat", chat_handler)
    app.router.add_post("/api/v1/toolcall-chat", toolcall_chat_handler)
    app.on_cleanup.append(_close_provider)
    return app


async def serve(settings: Settings, host: str = "127.0.0.1", port: int = 8080) -> web.AppRunner:
    """Start the relay on ``host:port`` and return the running ``AppRunner``."""
    app = create_app(settings)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
