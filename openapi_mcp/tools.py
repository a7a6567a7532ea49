"""Expose operations as MCP tools."""

import asyncio
import copy
import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

import httpx
import mcp.types as types
from mcp.server.lowlevel import NotificationOptions, Server

from . import __version__
from .errors import OpenAPIMCPError, ToolInvocationError
from .log import get_logger
from .openapi import Operation
from .proxy import DEFAULT_TIMEOUT, OperationProxy
from .schema import BODY_FIELD, FieldValidator, input_schema, translate, validate_input

logger = get_logger(__name__)

SERVER_NAME = "openapi-mcp"
LOG_LEVELS  = ("debug", "info", "notice", "warning", "error", "critical", "alert", "emergency")

Invoke = Callable[[Mapping[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    name:         str
    description:  str
    fields:       Mapping[str, FieldValidator]
    input_schema: Mapping[str, Any]
    invoke:       Invoke

    def __post_init__(self):
        # Read-only once built
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "input_schema", MappingProxyType(copy.deepcopy(dict(self.input_schema))))

    def to_mcp(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=copy.deepcopy(dict(self.input_schema)),
        )


# ------------------------------------------------------------------------------
#  TOOL FACTORY
# ------------------------------------------------------------------------------
def make_tool(
    operation: Operation,
    base_url:  str,
    timeout:   float = DEFAULT_TIMEOUT,
    client:    Optional[httpx.AsyncClient] = None,
) -> ToolDefinition:
    """Build the tool for one operation; TranslationError propagates."""
    fields = translate(operation)
    proxy = OperationProxy(
        base_url,
        operation,
        body_field=fields.get(BODY_FIELD),
        timeout=timeout,
        client=client,
    )
    return ToolDefinition(
        name=operation.operation_id,
        description=operation.description,
        fields=fields,
        input_schema=input_schema(fields),
        invoke=proxy,
    )


def make_tools(
    operations: Iterable[Operation],
    base_url:   str,
    timeout:    float = DEFAULT_TIMEOUT,
    client:     Optional[httpx.AsyncClient] = None,
) -> List[ToolDefinition]:
    # Translate everything first so a bad operation registers nothing
    return [make_tool(op, base_url, timeout=timeout, client=client) for op in operations]


# ------------------------------------------------------------------------------
#  MCP SERVER
# ------------------------------------------------------------------------------
class ToolServer:
    """MCP server hosting the registered tools over any number of transports."""

    def __init__(self, name: str = SERVER_NAME, version: str = __version__):
        self._server = Server(name, version=version)
        self._tools: Dict[str, ToolDefinition] = {}
        self._sessions: Set[asyncio.Task] = set()
        self._closed = False

        self._server.list_tools()(self._list_tools)
        # Inputs are checked by validate_input and the proxy, which name the failing location
        self._server.call_tool(validate_input=False)(self._call_tool)
        # Registering a level handler advertises the logging capability
        self._server.set_logging_level()(self._set_logging_level)
        self._client_log_level: types.LoggingLevel = "info"

    @property
    def server(self) -> Server:
        return self._server

    @property
    def tools(self) -> Dict[str, ToolDefinition]:
        return dict(self._tools)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.warning("Tool registered twice, keeping the last one", tool=tool.name)
        self._tools[tool.name] = tool

    def register_all(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def initialization_options(self):
        return self._server.create_initialization_options(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        )

    # -- handlers ---------------------------------------------------------------
    async def _list_tools(self) -> List[types.Tool]:
        return [tool.to_mcp() for tool in self._tools.values()]

    async def _set_logging_level(self, level: types.LoggingLevel) -> None:
        self._client_log_level = level

    async def _call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
        return await self.call_tool(name, arguments, notify=self._send_log_message)

    async def _send_log_message(self, message: str) -> None:
        try:
            session = self._server.request_context.session
        except LookupError:
            # Not inside an MCP request
            return
        if LOG_LEVELS.index(self._client_log_level) > LOG_LEVELS.index("info"):
            return
        await session.send_log_message(level="info", data=message)

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        notify: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> List[types.TextContent]:
        """Run a tool and frame its JSON result as a single text item.

        Every failure surfaces as ToolInvocationError, which the MCP server
        reports back as a tool result flagged ``isError``.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolInvocationError(f"Unknown tool: {name}")
        arguments = arguments or {}

        if notify is not None:
            try:
                await notify(f"calling {name} with params: {json.dumps(arguments, default=str)}")
            except Exception:
                logger.warning("Could not send progress notification", tool=name, exc_info=True)

        try:
            validate_input(tool.fields, arguments)
            result = await tool.invoke(arguments)
        except (OpenAPIMCPError, httpx.HTTPError, ValueError) as e:
            logger.error("Tool call failed", tool=name, error=str(e))
            raise ToolInvocationError(str(e)) from e

        return [types.TextContent(type="text", text=json.dumps(result))]

    # -- lifecycle --------------------------------------------------------------
    async def connect(self, transport: Any) -> None:
        """Serve MCP over the transport's streams until either side closes."""
        if self._closed:
            raise RuntimeError("ToolServer is closed")
        task = asyncio.create_task(
            self._run(transport),
            name=f"mcp-session-{transport.session_id}",
        )
        self._sessions.add(task)
        task.add_done_callback(self._sessions.discard)

    async def _run(self, transport: Any) -> None:
        logger.debug("MCP session started", session_id=transport.session_id)
        try:
            await self._server.run(
                transport.read_stream,
                transport.write_stream,
                self.initialization_options(),
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("MCP session failed", session_id=transport.session_id)
        finally:
            logger.debug("MCP session ended", session_id=transport.session_id)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = list(self._sessions)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("MCP server closed", sessions=len(tasks))
