import asyncio
import json
from unittest.mock import MagicMock

import pytest
from mcp import types

from polydb import server as server_module
from polydb.exceptions.errors import READ_ONLY_MESSAGE
from polydb.logging import logger as logger_module
from polydb.tools.dispatcher import Dispatcher


def test_build_server_registers_handlers(spy):
    server = server_module.build_server(Dispatcher(spy))
    assert server.name == "polydb-mcp"
    assert types.ListToolsRequest in server.request_handlers
    assert types.CallToolRequest in server.request_handlers


def test_main_exits_on_configuration_error(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(logger_module, "_INITIALIZED", True)
    monkeypatch.delenv("POLYDB_CONFIG", raising=False)
    monkeypatch.setenv("DB_TYPE", "oracle")
    with pytest.raises(SystemExit) as exc:
        server_module.main()
    assert exc.value.code == 1


def _call(server, name, arguments):
    handler = server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name=name, arguments=arguments),
    )
    return asyncio.run(handler(request)).root


def test_call_tool_success_envelope(spy):
    result = _call(server_module.build_server(Dispatcher(spy)), "list_tables", {})
    assert result.isError is False
    assert json.loads(result.content[0].text) == {"tables": ["t"], "schema": "main"}


def test_call_tool_blocked_write_is_error(spy):
    result = _call(server_module.build_server(Dispatcher(spy)), "execute", {"statement": "DELETE FROM t"})
    assert result.isError is True
    assert result.content[0].text == f"Error: {READ_ONLY_MESSAGE}"
    assert spy.calls == []


def test_call_tool_schema_failure_uses_dispatcher_text(spy):
    result = _call(server_module.build_server(Dispatcher(spy)), "query", {})
    assert result.isError is True
    assert result.content[0].text.startswith("Error: Invalid arguments for query")


def test_main_exits_and_closes_adapter_when_serving_fails(monkeypatch, tmp_path, spy):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(logger_module, "_INITIALIZED", True)
    monkeypatch.delenv("POLYDB_CONFIG", raising=False)
    monkeypatch.setenv("DB_TYPE", "sqlite")
    adapter = MagicMock()
    monkeypatch.setattr(server_module, "create_dispatcher", lambda settings: (adapter, Dispatcher(spy)))

    def broken(dispatcher):
        raise RuntimeError("stdio transport unavailable")

    monkeypatch.setattr(server_module, "build_server", broken)
    with pytest.raises(SystemExit) as exc:
        server_module.main()
    assert exc.value.code == 1
    adapter.close.assert_called_once()
