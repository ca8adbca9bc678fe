import json
import socket

import pytest
from rich.console import Console
from typer.testing import CliRunner

import twirpy.cli.commands as commands
from twirpy.cli.shared.header_utils import parse_headers
from twirpy.cli.shared.import_utils import load_target
from twirpy.cli.shared.network_utils import find_port_conflict, format_address
from twirpy.client.transport import TransportResponse

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_cli(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(commands, "console", Console(width=200))


def test_routes_lists_service_methods() -> None:
    result = runner.invoke(commands.app, ["routes", "conftest:ECHO_SERVICE"])
    assert result.exit_code == 0, result.output
    assert "/twirp/twirp.test.Echo/Echo" in result.output
    assert "/twirp/twirp.test.Echo/SlowEcho" in result.output
    assert "twirp.test.Req" in result.output


def test_routes_rejects_bad_target() -> None:
    result = runner.invoke(commands.app, ["routes", "conftest:INTERNAL_DETAIL"])
    assert result.exit_code == 1
    result = runner.invoke(commands.app, ["routes", "no_colon_here"])
    assert result.exit_code == 1


def test_call_prints_reply(monkeypatch) -> None:
    sent = {}

    async def fake_post(url, headers, body, timeout):
        sent.update(url=url, headers=headers, body=body, timeout=timeout)
        return TransportResponse(200, {"content-type": "application/json"}, b'{"msg": "hello"}')

    monkeypatch.setattr(commands, "_post", fake_post)
    result = runner.invoke(
        commands.app,
        ["call", "http://localhost:8000/", "twirp.test.Echo/Echo", "--data", '{"msg": "hello"}', "-H", "X-Trace=1"],
    )
    assert result.exit_code == 0, result.output
    assert "hello" in result.output
    assert sent["url"] == "http://localhost:8000/twirp/twirp.test.Echo/Echo"
    assert sent["headers"]["x-trace"] == "1"
    assert sent["headers"]["content-type"] == "application/json"
    assert json.loads(sent["body"]) == {"msg": "hello"}
    assert sent["timeout"] == 30.0


def test_call_reports_twirp_error(monkeypatch) -> None:
    async def fake_post(url, headers, body, timeout):
        return TransportResponse(404, {"content-type": "application/json"}, b'{"code": "bad_route", "msg": "no handler", "meta": {}}')

    monkeypatch.setattr(commands, "_post", fake_post)
    result = runner.invoke(commands.app, ["call", "http://localhost:8000", "/foo.Bar/Baz", "--prefix", "/"])
    assert result.exit_code == 1
    assert "bad_route" in result.output
    assert "no handler" in result.output


def test_call_rejects_invalid_json() -> None:
    result = runner.invoke(commands.app, ["call", "http://localhost:8000", "a.B/C", "--data", "{nope"])
    assert result.exit_code == 1
    assert "Invalid request" in result.output


def test_config_init_then_show(tmp_path) -> None:
    result = runner.invoke(commands.app, ["config", "init"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".twirpy" / "config.json").exists()
    assert runner.invoke(commands.app, ["config", "init"]).exit_code == 1

    result = runner.invoke(commands.app, ["config", "show"])
    assert result.exit_code == 0
    assert '"path_prefix": "/twirp"' in result.output


def test_parse_headers() -> None:
    assert parse_headers(["X-A=1", "x-b: two"]) == {"x-a": "1", "x-b": "two"}
    with pytest.raises(ValueError):
        parse_headers(["novalue"])


def test_load_target() -> None:
    assert load_target("twirpy.errors:TwirpError.internal").__name__ == "internal"
    with pytest.raises(ValueError):
        load_target("twirpy.errors")


def test_find_port_conflict_reports_resolved_address() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
        held.bind(("127.0.0.1", 0))
        held.listen(1)
        port = held.getsockname()[1]
        assert find_port_conflict("127.0.0.1", port) == f"127.0.0.1:{port}"

        result = runner.invoke(commands.app, ["serve", "conftest:ECHO_SERVICE", "--port", str(port)])
        assert result.exit_code == 1
        assert "already in use" in result.output
        assert f"127.0.0.1:{port}" in result.output


def test_find_port_conflict_free_port_and_bad_host() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as spare:
        spare.bind(("127.0.0.1", 0))
        port = spare.getsockname()[1]
    assert find_port_conflict("127.0.0.1", port) is None
    with pytest.raises(ValueError):
        find_port_conflict("no-such-host.invalid", port)


def test_format_address_brackets_ipv6() -> None:
    assert format_address("::1", 8000) == "[::1]:8000"
    assert format_address("10.0.0.1", 8000) == "10.0.0.1:8000"
