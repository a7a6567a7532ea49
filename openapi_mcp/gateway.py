"""HTTP front of the MCP server: one SSE stream per session plus a message endpoint."""

import contextlib
from typing import AsyncIterator, Callable, Dict, Optional

from sse_starlette.sse import EventSourceResponse
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from .errors import ProtocolError
from .log import get_logger
from .store import TransportStore
from .tools import ToolServer
from .transport import SseTransport

logger = get_logger(__name__)

DEFAULT_STREAM_PATH  = "/mcp"
DEFAULT_MESSAGE_PATH = "/messages"


class StreamingGateway:
    """Owns the session lifecycle between HTTP clients and the ToolServer.

    Usage:
        gateway = StreamingGateway(tool_server, TransportStore())
        uvicorn.run(gateway.app)
        ...
        await gateway.shutdown()
    """

    def __init__(
        self,
        tool_server: ToolServer,
        transports: TransportStore,
        stream_path: str = DEFAULT_STREAM_PATH,
        message_path: str = DEFAULT_MESSAGE_PATH,
        transport_factory: Callable[[str], SseTransport] = SseTransport,
    ):
        self.tool_server  = tool_server
        self.transports   = transports
        self.stream_path  = stream_path
        self.message_path = message_path
        self._transport_factory = transport_factory
        self._shut_down = False
        self._app: Optional[Starlette] = None

    @property
    def app(self) -> Starlette:
        if self._app is None:
            self._app = self._create_app()
        return self._app

    def _create_app(self) -> Starlette:
        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            yield
            await self.shutdown()

        routes = [
            Route(self.stream_path, self.handle_stream, methods=["GET"]),
            Route(self.message_path, self.handle_message, methods=["POST"]),
        ]
        return Starlette(routes=routes, lifespan=lifespan)

    # ------------------------------------------------------------------------------
    #  STREAM ESTABLISHMENT
    # ------------------------------------------------------------------------------
    async def handle_stream(self, request: Request) -> Response:
        logger.info("Establishing SSE stream", path=request.url.path)
        transport = None
        try:
            transport = self._transport_factory(self.message_path)
            session_id = transport.session_id
            self.transports.store(session_id, transport)
            transport.on_close = lambda: self._on_transport_closed(session_id)

            await self.tool_server.connect(transport)
            await transport.start()
        except Exception:
            logger.exception("Error establishing SSE stream")
            if transport is not None:
                await transport.close()
            return PlainTextResponse("Error establishing SSE stream", status_code=500)

        logger.info("Established SSE stream", session_id=session_id)
        return EventSourceResponse(self._stream(transport))

    async def _stream(self, transport: SseTransport) -> AsyncIterator[Dict[str, str]]:
        # Headers are committed by now: failures can only be logged
        try:
            async for event in transport.events():
                yield event
        except Exception:
            logger.exception("SSE stream failed", session_id=transport.session_id)
        finally:
            await transport.close()

    def _on_transport_closed(self, session_id: str) -> None:
        logger.info("SSE transport closed", session_id=session_id)
        self.transports.remove(session_id)

    # ------------------------------------------------------------------------------
    #  MESSAGES
    # ------------------------------------------------------------------------------
    def _lookup(self, request: Request) -> SseTransport:
        session_id = request.query_params.get("sessionId")
        if not session_id:
            raise ProtocolError("Missing sessionId parameter", status_code=400)
        transport = self.transports.get(session_id)
        if transport is None:
            raise ProtocolError("Session not found", status_code=404)
        return transport

    async def handle_message(self, request: Request) -> Response:
        try:
            transport = self._lookup(request)
        except ProtocolError as e:
            logger.error(str(e), session_id=request.query_params.get("sessionId"))
            return PlainTextResponse(str(e), status_code=e.status_code)

        try:
            payload = await request.body()
            logger.debug("Processing message", session_id=transport.session_id, body=payload)
            return await transport.handle_post_message(request, payload)
        except Exception:
            logger.exception("Error handling request", session_id=transport.session_id)
            return PlainTextResponse("Error handling request", status_code=500)

    # ------------------------------------------------------------------------------
    #  SHUTDOWN
    # ------------------------------------------------------------------------------
    async def shutdown(self) -> None:
        """Close every session, then the MCP server. Safe to call repeatedly."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down server...", sessions=len(self.transports))
        await self.transports.clear()
        await self.tool_server.close()
        logger.info("Server shutdown complete")
