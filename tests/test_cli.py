import json

from pathlib import Path

import pytest

from click.testing import CliRunner

from plugscope_core import config, logger
from plugscope_nvim.cli import cli_commands
from plugscope_nvim.errors import RpcConnectionError
from plugscope_nvim.session import Session
from plugscope_nvim.vim_plug import LOADED_PROBE_EXPR, PLUGS_EXPR, PLUGS_ORDER_EXPR

from .conftest import FakeClient


@pytest.fixture(autouse=True)
def fake_nvim(monkeypatch: pytest.MonkeyPatch, client: FakeClient) -> FakeClient:
    def _open(cls, conf):
        return cls(conf).initialize(client)

    monkeypatch.setattr(Session, "open", classmethod(_open))
    monkeypatch.setattr(logger, "setup_log_handler", lambda *args, **kwargs: None)
    return client


def test_cli_plugs(client: FakeClient):
    client.values[PLUGS_EXPR] = {
        "foo": {"uri": "https://x/foo"},
        "bar": {"uri": "https://x/bar"},
    }
    client.values[PLUGS_ORDER_EXPR] = ["bar", "foo"]

    runner = CliRunner()
    result = runner.invoke(cli_commands, ["plugs", "--address", "/tmp/nvim.sock"])
    assert result.exit_code == 0
    assert result.output == "bar\thttps://x/bar\nfoo\thttps://x/foo\n"
    # Session is closed on exit
    assert client.closed

    result = runner.invoke(cli_commands, ["plugs", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output) == [
        {"name": "bar", "uri": "https://x/bar"},
        {"name": "foo", "uri": "https://x/foo"},
    ]


def test_cli_plugs_error(client: FakeClient):
    runner = CliRunner()
    result = runner.invoke(cli_commands, ["plugs"])
    assert result.exit_code == 1
    assert "Can't retrieve g:plugs map" in result.output


def test_cli_connection_error(monkeypatch: pytest.MonkeyPatch):
    def _open(cls, conf):
        raise RpcConnectionError("No Nvim address configured")

    monkeypatch.setattr(Session, "open", classmethod(_open))

    runner = CliRunner()
    result = runner.invoke(cli_commands, ["plugs"])
    assert result.exit_code == 1
    assert "No Nvim address configured" in result.output

    # state command does not fail
    result = runner.invoke(cli_commands, ["state"])
    assert result.exit_code == 0
    assert result.output.strip() == "UNKNOWN"


@pytest.mark.parametrize("value,expected", [(1, "ALREADY_LOADED"), (0, "UNKNOWN")])
def test_cli_state(client: FakeClient, value, expected):
    client.values[LOADED_PROBE_EXPR] = value

    runner = CliRunner()
    result = runner.invoke(cli_commands, ["state"])
    assert result.exit_code == 0
    assert result.output.strip() == expected


def test_cli_config(tmp_path: Path):
    cfgfile = tmp_path / "plugscope.toml"
    cfgfile.write_text('[nvim]\naddress = "localhost:6666"\n')

    runner = CliRunner()
    result = runner.invoke(cli_commands, ["config", "--conf", str(cfgfile)])
    assert result.exit_code == 0
    conf = json.loads(result.output)
    assert conf["nvim"]["address"] == "localhost:6666"
    assert conf["logging"]["level"] == "INFO"
    assert config.ConfBuilder.get_service().conf.nvim.address == "localhost:6666"

    result = runner.invoke(cli_commands, ["config", "--schema"])
    assert result.exit_code == 0
    schema = json.loads(result.output)
    assert "nvim" in schema["properties"]


def test_cli_invalid_config(tmp_path: Path):
    cfgfile = tmp_path / "plugscope.toml"
    cfgfile.write_text('[nvim]\nconnect_timeout = -1.0\n')

    runner = CliRunner()
    result = runner.invoke(cli_commands, ["config", "--conf", str(cfgfile)])
    assert result.exit_code == 1
    assert "Configuration error" in result.output
