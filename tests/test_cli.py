import json
import logging
from unittest.mock import patch

import pytest
import structlog
from typer.testing import CliRunner

from openapi_mcp import __version__
from openapi_mcp.cli import app, build_gateway
from openapi_mcp.config import Settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """The serve and tools commands reconfigure the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def spec_file(tmp_path, petstore_document):
    path = tmp_path / "petstore.json"
    path.write_text(json.dumps(petstore_document))
    return path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == f"openapi-mcp {__version__}"


def test_tools_lists_every_operation(spec_file):
    result = runner.invoke(app, ["tools", "--spec", str(spec_file)])
    assert result.exit_code == 0
    assert [line.split("\t")[0] for line in result.stdout.splitlines()] == [
        "getPet",
        "updatePet",
        "delete_pets_petId",
    ]


def test_tools_method_filter(spec_file):
    result = runner.invoke(app, ["tools", "--spec", str(spec_file), "--method", "get"])
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["getPet\tReturns a single pet"]


def test_tools_unsupported_format(tmp_path):
    path = tmp_path / "petstore.txt"
    path.write_text("{}")
    result = runner.invoke(app, ["tools", "--spec", str(path)])
    assert result.exit_code == 1


def test_serve_fails_on_bad_spec(tmp_path):
    result = runner.invoke(app, ["serve", "--spec", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_serve_runs_uvicorn(spec_file):
    with patch("openapi_mcp.cli.GatewayServer.run") as run:
        result = runner.invoke(
            app,
            ["serve", "--spec", str(spec_file), "--target", "http://backend", "--port", "4000", "-m", "get"],
        )
    assert result.exit_code == 0, result.output
    run.assert_called_once()


def test_serve_reads_environment(spec_file, monkeypatch):
    monkeypatch.setenv("OPENAPI_MCP_SPEC", str(spec_file))
    monkeypatch.setenv("OPENAPI_MCP_PORT", "4100")
    with patch("uvicorn.Config") as config, patch("openapi_mcp.cli.GatewayServer"):
        result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0, result.output
    assert config.call_args.kwargs["port"] == 4100


def test_build_gateway(spec_file):
    settings = Settings(spec=spec_file, target="http://backend/", methods=["get"], stream_path="/sse")
    gateway = build_gateway(settings)
    assert list(gateway.tool_server.tools) == ["getPet"]
    assert gateway.stream_path == "/sse"
    assert gateway.message_path == "/messages"


def test_settings_url():
    settings = Settings(spec="x.yaml", host="0.0.0.0", port=3001)
    assert settings.url == "http://0.0.0.0:3001/mcp"
