"""Settings – environment defaults, overridden by CLI flags."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from claude_table.errors import ConfigurationError
from claude_table.table import DEFAULT_PAGE_SIZE

PROVIDERS = ("claude", "openai", "gemini")

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_API_URL = "https://api.anthropic.com"

INPUT_MAX_LENGTH = 5000


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f'{name} must be an integer, got "{value}"') from None


@dataclass
class Settings:
    anthropic_api_key: str | None = None
    provider: str = "claude"
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    api_url: str = DEFAULT_API_URL
    stream: bool = True
    max_retries: int = 2
    page_size: int = DEFAULT_PAGE_SIZE
    merge_date_ranges: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            provider=(env.get("AI_PROVIDER") or "claude").strip().lower(),
            model=env.get("CLAUDE_TABLE_MODEL") or DEFAULT_MODEL,
            max_tokens=_env_int(env, "CLAUDE_TABLE_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            api_url=env.get("CLAUDE_TABLE_API_URL") or env.get("ANTHROPIC_BASE_URL") or DEFAULT_API_URL,
            stream=_env_bool(env.get("CLAUDE_TABLE_STREAM"), True),
            max_retries=_env_int(env, "CLAUDE_TABLE_MAX_RETRIES", 2),
        )
