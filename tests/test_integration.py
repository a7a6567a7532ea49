"""End to end: a real MCP client over SSE against the gateway served by uvicorn."""

import asyncio
import json
import socket

import httpx
import pytest
import uvicorn
from mcp import ClientSession
from mcp.client.sse import sse_client

from openapi_mcp.cli import GatewayServer
from openapi_mcp.gateway import StreamingGateway
from openapi_mcp.store import TransportStore
from openapi_mcp.tools import ToolServer, make_tools


def get_unused_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def backend(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/pets/404":
        return httpx.Response(404)
    return httpx.Response(
        200,
        json={"id": request.url.path.rsplit("/", 1)[-1], "status": request.url.params["status"]},
    )


@pytest.fixture
async def running_gateway(get_pet):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as backend_client:
        tool_server = ToolServer()
        tool_server.register_all(make_tools([get_pet], "http://api.example.com", client=backend_client))
        gateway = StreamingGateway(tool_server, TransportStore())

        port = get_unused_port()
        config = uvicorn.Config(gateway.app, host="127.0.0.1", port=port, log_config=None, lifespan="off")
        server = GatewayServer(config, gateway)
        server_task = asyncio.create_task(server.serve())
        for _ in range(100):
            if server.started:
                break
            await asyncio.sleep(0.05)
        assert server.started, "uvicorn did not start"

        yield gateway, f"http://127.0.0.1:{port}"

        server.should_exit = True
        await asyncio.wait_for(server_task, timeout=10)


async def wait_for_no_sessions(gateway: StreamingGateway) -> None:
    for _ in range(50):
        if len(gateway.transports) == 0:
            return
        await asyncio.sleep(0.1)


@pytest.mark.asyncio
async def test_call_tool_over_sse(running_gateway):
    gateway, url = running_gateway

    async with sse_client(f"{url}/mcp") as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            assert len(gateway.transports) == 1

            listed = await session.list_tools()
            assert [t.name for t in listed.tools] == ["getPet"]

            result = await session.call_tool("getPet", {"petId": "123", "status": "available"})
            assert result.isError is False
            assert json.loads(result.content[0].text) == {"id": "123", "status": "available"}

            failed = await session.call_tool("getPet", {"petId": "404", "status": "x"})
            assert failed.isError is True
            assert "Failed to fetch from API server: Not Found" in failed.content[0].text

    await wait_for_no_sessions(gateway)
    assert len(gateway.transports) == 0


@pytest.mark.asyncio
async def test_sessions_are_independent(running_gateway):
    gateway, url = running_gateway

    async with sse_client(f"{url}/mcp") as (read_a, write_a), sse_client(f"{url}/mcp") as (read_b, write_b):
        async with ClientSession(read_a, write_a) as a, ClientSession(read_b, write_b) as b:
            await a.initialize()
            await b.initialize()
            assert len(gateway.transports) == 2

            result_a, result_b = await asyncio.gather(
                a.call_tool("getPet", {"petId": "1", "status": "a"}),
                b.call_tool("getPet", {"petId": "2", "status": "b"}),
            )

    assert json.loads(result_a.content[0].text) == {"id": "1", "status": "a"}
    assert json.loads(result_b.content[0].text) == {"id": "2", "status": "b"}


@pytest.mark.asyncio
async def test_post_without_session(running_gateway):
    _, url = running_gateway
    async with httpx.AsyncClient() as client:
        response = await client.post(f"{url}/messages", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})
    assert response.status_code == 400
    assert response.text == "Missing sessionId parameter"
