# pagespeed_mcp/errors.py
from typing import List, Optional


class PageSpeedMCPError(Exception):
    """Base class for every error raised by the server."""


class ConfigurationError(PageSpeedMCPError):
    """One or more environment values are missing or invalid. Fatal at startup."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Environment validation failed:\n" + "\n".join(problems))


class ValidationError(PageSpeedMCPError):
    """Tool arguments failed validation. Carries every violated constraint."""

    def __init__(self, tool_name: str, errors: List[str]):
        self.tool_name = tool_name
        self.errors = errors
        super().__init__(f"Invalid arguments for '{tool_name}':\n" + "\n".join(f"- {e}" for e in errors))


class UnsupportedOperationError(PageSpeedMCPError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class UpstreamError(PageSpeedMCPError):
    """An upstream API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UpstreamClientError(UpstreamError):
    """The upstream rejected the request (4xx). Never retried."""


class UpstreamTransientError(UpstreamError):
    """Timeout, transport failure or 5xx. Retried on the lab-analysis path."""
