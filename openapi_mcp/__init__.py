"""openapi_mcp - serve the operations of an OpenAPI document as MCP tools.

Modules:
    openapi: load a document and list its operations
    schema: operation parameters -> validated tool input fields
    proxy: tool arguments -> one HTTP request to the backend
    tools: tool factory and the MCP server hosting the tools
    store / transport / gateway: SSE sessions over HTTP
    cli: command line entry point
"""

__version__ = "1.0.0"

from .errors import (
    OpenAPIMCPError,
    ProtocolError,
    SpecificationError,
    ToolInvocationError,
    TranslationError,
    UpstreamError,
    ValidationError,
)
from .gateway import StreamingGateway
from .openapi import Operation, Parameter, load_operations
from .proxy import OperationProxy
from .schema import translate
from .store import TransportStore
from .tools import ToolDefinition, ToolServer, make_tool, make_tools
from .transport import SseTransport

__all__ = [
    "OpenAPIMCPError",
    "Operation",
    "OperationProxy",
    "Parameter",
    "ProtocolError",
    "SpecificationError",
    "SseTransport",
    "StreamingGateway",
    "ToolDefinition",
    "ToolInvocationError",
    "ToolServer",
    "TransportStore",
    "TranslationError",
    "UpstreamError",
    "ValidationError",
    "load_operations",
    "make_tool",
    "make_tools",
    "translate",
]
