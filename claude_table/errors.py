"""Error taxonomy for claude-table.

Only transport, provider and stream-setup failures reach the user. Tool errors
are turned into failed tool results and fed back to the model.
"""

from __future__ import annotations


class ClaudeTableError(Exception):
    """Base class for all claude-table errors."""


class ConfigurationError(ClaudeTableError):
    """Missing API key or unsupported provider."""


class TransportError(ClaudeTableError):
    """Network or connection failure while talking to the provider."""


class StreamSetupError(ClaudeTableError):
    """The provider answered but there is no usable response body."""


class ProviderError(ClaudeTableError):
    """The provider rejected the request with an HTTP error."""

    def __init__(self, message: str, provider: str, status: int = 500):
        super().__init__(message)
        self.provider = provider
        self.status = status


class RequestValidationError(ClaudeTableError):
    """A relay request body failed validation."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


class MalformedStreamEvent(ClaudeTableError):
    """A single SSE data line that is not a JSON object. Skipped, never fatal."""


# ---------------------------------------------------------------------------
# Tool errors – recoverable within the conversation
# ---------------------------------------------------------------------------


class ToolError(ClaudeTableError):
    """Base class for errors reported back to the model as a failed tool result."""


class ToolArgumentParseError(ToolError):
    pass


class ToolValidationError(ToolError):
    pass


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class NoMatchError(ToolError):
    pass
