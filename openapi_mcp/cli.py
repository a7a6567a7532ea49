"""openapi-mcp command line.

Usage:
    openapi-mcp serve --spec petstore.yaml --target https://petstore3.swagger.io/api/v3
    openapi-mcp tools --spec petstore.yaml
"""

from typing import Annotated, List, Optional

import typer
import uvicorn

from . import __version__
from .config import ENV_PREFIX, Settings
from .errors import OpenAPIMCPError
from .gateway import DEFAULT_MESSAGE_PATH, DEFAULT_STREAM_PATH, StreamingGateway
from .log import configure_logging, get_logger
from .openapi import load_operations
from .proxy import DEFAULT_TIMEOUT
from .store import TransportStore
from .tools import ToolServer, make_tools

logger = get_logger(__name__)

app = typer.Typer(
    name="openapi-mcp",
    help="Start an MCP server from an OpenAPI specification",
    no_args_is_help=True,
)

SpecOption = Annotated[
    str,
    typer.Option("--spec", "-s", help="Path to OpenAPI specification file", envvar=f"{ENV_PREFIX}SPEC"),
]
MethodOption = Annotated[
    Optional[List[str]],
    typer.Option(
        "--method",
        "-m",
        help="Only expose operations with this HTTP method (repeatable)",
        envvar=f"{ENV_PREFIX}METHODS",
    ),
]


class GatewayServer(uvicorn.Server):
    """uvicorn server that ends every SSE session before its own shutdown.

    Open event streams would otherwise keep uvicorn waiting for connections
    that never finish.
    """

    def __init__(self, config: uvicorn.Config, gateway: StreamingGateway):
        super().__init__(config)
        self.gateway = gateway

    async def shutdown(self, sockets=None) -> None:
        await self.gateway.shutdown()
        await super().shutdown(sockets=sockets)


def build_gateway(settings: Settings) -> StreamingGateway:
    operations = load_operations(settings.spec, settings.methods or None)
    tool_server = ToolServer()
    tool_server.register_all(make_tools(operations, settings.target, timeout=settings.timeout))
    return StreamingGateway(
        tool_server,
        TransportStore(),
        stream_path=settings.stream_path,
        message_path=settings.message_path,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"openapi-mcp {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit"),
    ] = False,
) -> None:
    pass


@app.command()
def serve(
    spec: SpecOption,
    target: Annotated[
        str,
        typer.Option("--target", "-t", help="Target URL of the API service", envvar=f"{ENV_PREFIX}TARGET"),
    ] = "http://localhost:8080",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to run the MCP server on", envvar=f"{ENV_PREFIX}PORT"),
    ] = 3000,
    host: Annotated[
        str,
        typer.Option("--host", help="Interface to bind to", envvar=f"{ENV_PREFIX}HOST"),
    ] = "127.0.0.1",
    method: MethodOption = None,
    stream_path: Annotated[
        str,
        typer.Option("--stream-path", help="SSE endpoint", envvar=f"{ENV_PREFIX}STREAM_PATH"),
    ] = DEFAULT_STREAM_PATH,
    message_path: Annotated[
        str,
        typer.Option("--message-path", help="Message endpoint", envvar=f"{ENV_PREFIX}MESSAGE_PATH"),
    ] = DEFAULT_MESSAGE_PATH,
    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Backend request timeout in seconds", envvar=f"{ENV_PREFIX}TIMEOUT"),
    ] = DEFAULT_TIMEOUT,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level", envvar=f"{ENV_PREFIX}LOG_LEVEL"),
    ] = "INFO",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Log JSON lines", envvar=f"{ENV_PREFIX}JSON_LOGS"),
    ] = False,
) -> None:
    """Serve every operation of the specification as an MCP tool over SSE."""
    settings = Settings(
        spec=spec,
        target=target,
        host=host,
        port=port,
        stream_path=stream_path,
        message_path=message_path,
        timeout=timeout,
        methods=method or [],
        log_level=log_level,
        json_logs=json_logs,
    )
    configure_logging(settings.log_level, json_logs=settings.json_logs)

    try:
        gateway = build_gateway(settings)
    except OpenAPIMCPError as e:
        logger.error("Error starting MCP server", error=str(e))
        raise typer.Exit(code=1) from e

    logger.info(
        "MCP Server running",
        url=settings.url,
        spec=str(settings.spec),
        target=settings.target,
        tools=len(gateway.tool_server.tools),
    )
    config = uvicorn.Config(gateway.app, host=settings.host, port=settings.port, log_config=None)
    GatewayServer(config, gateway).run()


@app.command()
def tools(spec: SpecOption, method: MethodOption = None) -> None:
    """List the tools the specification would expose."""
    configure_logging("WARNING")
    try:
        definitions = make_tools(load_operations(spec, method or None), "http://localhost")
    except OpenAPIMCPError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    for tool in definitions:
        typer.echo(f"{tool.name}\t{tool.description}")


if __name__ == "__main__":
    app()
