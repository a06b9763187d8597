"""Error taxonomy shared by the driver, executor, replay engine and backends."""


class AutobrowserError(Exception):
    """Base class for all autobrowser errors."""


class ToolNotFoundError(AutobrowserError):
    """The requested tool is not in the session catalog."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"tool not found: {tool_name}")


class BackendExecutionError(AutobrowserError):
    """The browser backend raised while executing a tool call."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)


class BackendUnavailableError(AutobrowserError):
    """The browser backend could not be started or connected to."""


class ModelServiceError(AutobrowserError):
    """The language-model service failed in a way that ends the session."""


class RateLimitedError(ModelServiceError):
    """The language-model service rejected the request with a rate limit."""


class LedgerFormatError(AutobrowserError):
    """A ledger file exists but cannot be parsed."""
