from typing import Optional


class OpenAPIMCPError(Exception):
    """Base class for every error raised by openapi_mcp."""


class SpecificationError(OpenAPIMCPError):
    """The OpenAPI document could not be read."""


class TranslationError(OpenAPIMCPError):
    """An operation declares a schema that cannot become a tool input."""


class ValidationError(OpenAPIMCPError):
    """Tool input does not satisfy the operation's declared parameters."""


class UpstreamError(OpenAPIMCPError):
    """The backend answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        reason: str = "",
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason      = reason
        self.body        = body


class ProtocolError(OpenAPIMCPError):
    """A posted message names a missing or unknown session."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ToolInvocationError(OpenAPIMCPError):
    """A tool call failed; reported to the client as a tool error result."""
