"""CLI entry points for claude-table."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path

from claude_table import __version__
from claude_table.config import PROVIDERS, Settings
from claude_table.errors import ClaudeTableError
from claude_table.executor import ToolExecutor
from claude_table.filters import cell_text
from claude_table.messages import ToolCall
from claude_table.provider import create_provider
from claude_table.sample import generate_sample_rows
from claude_table.session import ChatSession, TurnCallbacks
from claude_table.table import DATA_COLUMNS, Pagination, TableState, page_count, page_rows, visible_rows

# Ensure print output is visible immediately (piped stdout is fully buffered)
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(line_buffering=True)

log = logging.getLogger("claude-table")

DIM = "\033[2m"
RESET = "\033[0m"

HELP_TEXT = """Commands:
  /table   show the current page
  /next    next page
  /prev    previous page
  /help    this help
  /exit    quit
Anything else is sent to the assistant. Ctrl+C cancels a running reply."""


# ---------------------------------------------------------------------------
# Table rendering
# ---------------------------------------------------------------------------


def render_table(state: TableState) -> str:
    rows = visible_rows(state)
    pages = page_count(state, rows)
    columns = ("id",) + DATA_COLUMNS
    cells = [[cell_text(row.get(col)) for col in columns] for row in page_rows(state)]
    widths = [max([len(col)] + [len(r[i]) for r in cells]) for i, col in enumerate(columns)]

    def fmt(values: list[str]) -> str:
        return "  ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    lines = [fmt(list(columns)), fmt(["-" * w for w in widths])]
    lines.extend(fmt(r) for r in cells)
    if not cells:
        lines.append("(no rows)")

    page = min(state.pagination.page_index, pages - 1) + 1
    footer = f"Page {page} of {pages} · {len(rows)} of {len(state.rows)} rows"
    if state.filter_specs:
        footer += " · filters: " + ", ".join(f"{col} {spec.describe()}" for col, spec in state.filter_specs.items())
    if state.sort_spec:
        footer += " · sort: " + ", ".join(f"{k.column} {'desc' if k.descending else 'asc'}" for k in state.sort_spec)
    lines.append(footer)
    return "\n".join(lines)


def turn_page(state: TableState, step: int) -> TableState:
    pages = page_count(state)
    index = min(max(0, state.pagination.page_index + step), pages - 1)
    return state.replace(pagination=dataclasses.replace(state.pagination, page_index=index))


# ---------------------------------------------------------------------------
# REPL
# ---------------------------------------------------------------------------


async def _ainput(prompt: str) -> str | None:
    """Read one line without blocking the loop. ``None`` on EOF."""
    loop = asyncio.get_running_loop()
    fut: asyncio.Future = loop.create_future()

    def _deliver(result, exc) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(result)

    def _read() -> None:
        try:
            line, exc = input(prompt), None
        except EOFError:
            line, exc = None, None
        except Exception as e:
            line, exc = None, e
        try:
            loop.call_soon_threadsafe(_deliver, line, exc)
        except RuntimeError:
            pass  # loop already closed

    # Daemon thread: a pending input() must not block interpreter exit.
    threading.Thread(target=_read, daemon=True).start()
    return await fut


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


async def run_turn(session: ChatSession, text: str, show_thinking: bool = False) -> None:
    in_thinking = False

    def on_text(delta: str) -> None:
        nonlocal in_thinking
        if in_thinking:
            _write(RESET + "\n")
            in_thinking = False
        _write(delta)

    def on_thinking(delta: str) -> None:
        nonlocal in_thinking
        if not show_thinking:
            return
        if not in_thinking:
            _write(DIM)
            in_thinking = True
        _write(delta)

    def on_tool_start(call_id: str, name: str) -> None:
        log.debug(f"tool call started: {name} ({call_id})")

    def on_tool_result(tool_call: ToolCall, result) -> None:
        mark = "✓" if result.success else "✗"
        _write(f"\n  {mark} {tool_call.name}: {result.message}\n")

    callbacks = TurnCallbacks(
        on_text_delta=on_text,
        on_thinking_delta=on_thinking,
        on_tool_call_start=on_tool_start,
        on_tool_result=on_tool_result,
    )

    # Ctrl+C cancels the reply, not the REPL
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    except (NotImplementedError, RuntimeError):
        pass

    _write("assistant> ")
    try:
        result = await session.send_message(text, callbacks)
    except ClaudeTableError as exc:
        log.error(f"Turn failed: {exc}")
        _write(f"\nError: {exc}\n")
        return
    finally:
        if in_thinking:
            _write(RESET)
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, OSError, RuntimeError):
            pass

    if result.cancelled:
        _write("\n(cancelled)\n")
    else:
        _write("\n")
    if result.tool_results:
        print()
        print(render_table(session.state))


def handle_command(session: ChatSession, line: str) -> bool:
    """Run a slash command. Returns False when the REPL should exit."""
    command = line.split()[0].lower()
    if command in ("/exit", "/quit"):
        return False
    if command == "/table":
        print(render_table(session.state))
    elif command in ("/next", "/prev"):
        session.state = turn_page(session.state, 1 if command == "/next" else -1)
        print(render_table(session.state))
    elif command == "/help":
        print(HELP_TEXT)
    else:
        print(f"Unknown command: {command} (try /help)")
    return True


def _setup_logging(log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = log_dir / f"session_{ts}.log"

    # Logs go to file, not terminal (keeps the REPL clean)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s", datefmt="%H:%M:%S"))
    log.addHandler(file_handler)
    log.setLevel(logging.DEBUG)
    # Suppress aiohttp access logs
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    return log_path


def build_settings(args: argparse.Namespace, environ=None) -> Settings:
    """Environment first, then explicit flags."""
    settings = Settings.from_env(environ)
    overrides = {
        "provider": args.provider,
        "model": args.model,
        "max_tokens": args.max_tokens,
        "api_url": args.api_url,
        "page_size": getattr(args, "page_size", None),
    }
    settings = dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    if getattr(args, "no_date_range_merge", False):
        settings = dataclasses.replace(settings, merge_date_ranges=False)
    return settings


async def async_main(args: argparse.Namespace) -> int:
    log_path = _setup_logging(Path(args.log_dir))

    try:
        settings = build_settings(args)
        provider = create_provider(settings)
    except ClaudeTableError as exc:
        print(f"Error: {exc}")
        return 1

    state = TableState(
        rows=generate_sample_rows(args.rows, seed=args.seed),
        pagination=Pagination(page_size=settings.page_size),
    )
    session = ChatSession(provider, state, ToolExecutor(merge_date_ranges=settings.merge_date_ranges))

    print(f"claude-table v{__version__} · {settings.provider} ({settings.model})")
    print(f"Log: {log_path}")
    print(render_table(session.state))
    print("Type /help for commands.")

    try:
        while True:
            line = await _ainput("\nyou> ")
            if line is None:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not handle_command(session, line):
                    break
                continue
            await run_turn(session, line, show_thinking=args.show_thinking)
    finally:
        await provider.aclose()
    return 0


async def async_serve(args: argparse.Namespace) -> int:
    from claude_table.server import serve

    _setup_logging(Path(args.log_dir))
    try:
        settings = build_settings(args)
    except ClaudeTableError as exc:
        print(f"Error: {exc}")
        return 1
    runner = await serve(settings, host=args.host, port=args.port)

    # Resolve actual port when started on port 0
    port = args.port
    for site in runner.sites:
        try:
            port = site._server.sockets[0].getsockname()[1]
        except (AttributeError, IndexError, OSError):
            pass
    print(f"claude-table relay v{__version__} listening on http://{args.host}:{port}")
    print("Press Ctrl+C to stop.")
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _add_provider_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", choices=PROVIDERS, default=None, help="AI provider (default: $AI_PROVIDER or claude)")
    parser.add_argument("--model", default=None, help="Model name (default: $CLAUDE_TABLE_MODEL or claude-sonnet-4-5)")
    parser.add_argument("--max-tokens", type=int, default=None, dest="max_tokens", help="Max tokens per reply")
    parser.add_argument("--api-url", default=None, dest="api_url", help="Provider base URL")
    parser.add_argument(
        "--log-dir", default="./.claude-table", dest="log_dir", help="Session log directory (default: ./.claude-table)"
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(
        prog="claude-table",
        description="Chat with an AI assistant that filters, sorts and edits a data table.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    _add_provider_flags(parser)
    parser.add_argument("--rows", type=int, default=75, help="Number of sample rows (default: 75)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the sample rows")
    parser.add_argument("--page-size", type=int, default=None, dest="page_size", help="Rows per page (default: 11)")
    parser.add_argument("--show-thinking", action="store_true", dest="show_thinking", help="Print model thinking")
    parser.add_argument(
        "--no-date-range-merge",
        action="store_true",
        dest="no_date_range_merge",
        help="Let a second date filter replace the first instead of merging into a range",
    )
    return parser.parse_args(argv)


def parse_serve_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="claude-table serve", description="Run the chat relay HTTP server.")
    _add_provider_flags(parser)
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8080, help="Port (default: 8080, 0 = auto)")
    return parser.parse_args(argv)


def main_entry(argv: list[str] | None = None) -> None:
    """Entry point for the claude-table CLI."""
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "serve":
        runner, args = async_serve, parse_serve_args(argv[1:])
    else:
        runner, args = async_main, parse_args(argv)
    try:
        code = asyncio.run(runner(args))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)
