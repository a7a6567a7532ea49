"""Server-Sent Events transport, one instance per client session.

The client opens the event stream with GET and receives an ``endpoint`` event
naming the URL to POST its JSON-RPC messages to. Server messages travel back
as ``message`` events on the same stream.
"""

from typing import Any, AsyncIterator, Callable, Dict, Optional
from uuid import uuid4

import anyio
import mcp.types as types
import pydantic
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from .log import get_logger

logger = get_logger(__name__)

# Server messages queued ahead of a slow event stream reader
WRITE_BUFFER_SIZE = 32


class SseTransport:
    """Bidirectional MCP channel over one SSE stream plus posted messages.

    ``read_stream`` / ``write_stream`` are the ends handed to the MCP server;
    ``on_close`` runs exactly once, when the transport closes for any reason.
    """

    def __init__(self, endpoint: str):
        self.session_id = uuid4().hex
        self.endpoint   = endpoint
        self.on_close: Optional[Callable[[], Any]] = None

        self._started = False
        self._closed  = False
        self._read_send, self.read_stream     = anyio.create_memory_object_stream(0)
        self.write_stream, self._write_receive = anyio.create_memory_object_stream(WRITE_BUFFER_SIZE)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def endpoint_url(self) -> str:
        separator = "&" if "?" in self.endpoint else "?"
        return f"{self.endpoint}{separator}sessionId={self.session_id}"

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError(f"Transport {self.session_id} is closed")
        if self._started:
            raise RuntimeError(f"Transport {self.session_id} already started")
        self._started = True

    async def events(self) -> AsyncIterator[Dict[str, str]]:
        """Yield the SSE events of this session until the transport closes."""
        if not self._started:
            raise RuntimeError(f"Transport {self.session_id} not started")
        yield {"event": "endpoint", "data": self.endpoint_url}
        try:
            async for session_message in self._write_receive:
                yield {
                    "event": "message",
                    "data":  session_message.message.model_dump_json(by_alias=True, exclude_none=True),
                }
        except (anyio.ClosedResourceError, anyio.EndOfStream):
            return

    async def handle_post_message(self, request: Request, payload: bytes) -> Response:
        """Feed one posted JSON-RPC message to the MCP server."""
        if self._closed:
            raise RuntimeError(f"Transport {self.session_id} is closed")
        try:
            message = types.JSONRPCMessage.model_validate_json(payload)
        except pydantic.ValidationError as e:
            logger.warning("Could not parse message", session_id=self.session_id, error=str(e))
            return PlainTextResponse("Could not parse message", status_code=400)

        metadata = ServerMessageMetadata(request_context=request)
        await self._read_send.send(SessionMessage(message, metadata=metadata))
        return PlainTextResponse("Accepted", status_code=200)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Ending both send sides stops the MCP server loop and the event stream
        self._read_send.close()
        self.write_stream.close()
        self._write_receive.close()
        logger.debug("Transport closed", session_id=self.session_id)
        if self.on_close is not None:
            self.on_close()
