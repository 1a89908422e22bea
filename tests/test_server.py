import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from evolve_mcp import server as server_module
from evolve_mcp.server import _is_http_transport, _run_http, build_server, run_entrypoint


@patch("evolve_mcp.server.load_settings")
@patch("evolve_mcp.server.MCPServer")
@patch("evolve_mcp.server.register_tools")
@patch("evolve_mcp.server.configure_logging")
def test_build_server(mock_log, mock_register, mock_server_cls, mock_settings):
    settings = MagicMock()
    settings.server.instructions = "Instructions"
    settings.logging.file = "test.log"
    mock_settings.return_value = settings

    mock_instance = MagicMock()
    mock_server_cls.return_value = mock_instance

    server = build_server()

    mock_settings.assert_called_once()
    assert mock_server_cls.call_args[1]["name"] == "evolve-mcp"
    assert mock_server_cls.call_args[1]["instructions"] == "Instructions"
    mock_log.assert_called_once()
    mock_register.assert_called_once_with(mock_instance)
    assert server == mock_instance


def test_is_http_transport():
    assert _is_http_transport("http")
    assert not _is_http_transport("stdio")


@patch("evolve_mcp.server.load_settings")
@patch("evolve_mcp.server.configure_logging")
@patch("evolve_mcp.transport.http_server.create_http_app")
def test_run_http_configures_logging(mock_create_http_app, mock_log, mock_settings):
    settings = MagicMock()
    settings.server.host = "127.0.0.1"
    settings.server.port = 8000
    mock_settings.return_value = settings

    uvicorn_run = MagicMock()
    with patch.dict(sys.modules, {"uvicorn": SimpleNamespace(run=uvicorn_run)}):
        _run_http()

    mock_log.assert_called_once()
    mock_create_http_app.assert_called_once_with()
    uvicorn_run.assert_called_once_with(
        mock_create_http_app.return_value,
        host="127.0.0.1",
        port=8000,
        ws="none",
        log_config=None,
    )


@patch("evolve_mcp.server.load_settings")
@patch("evolve_mcp.server._run_http")
def test_run_entrypoint_http_branch(mock_run_http, mock_load_settings):
    settings = MagicMock()
    settings.server.transport_mode = "http"
    mock_load_settings.return_value = settings

    run_entrypoint()

    mock_run_http.assert_called_once_with()


@patch("evolve_mcp.server.load_settings")
@patch("evolve_mcp.server.get_server")
def test_run_entrypoint_stdio_branch(mock_get_server, mock_load_settings):
    settings = MagicMock()
    settings.server.transport_mode = "stdio"
    mock_load_settings.return_value = settings

    run_entrypoint()

    mock_get_server.return_value.run.assert_called_once_with()


@patch("evolve_mcp.server.build_server")
def test_get_server_builds_once(mock_build, monkeypatch):
    monkeypatch.setattr(server_module, "_server", None)

    first = server_module.get_server()
    second = server_module.get_server()

    assert first is second
    mock_build.assert_called_once_with()
