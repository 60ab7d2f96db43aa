"""
Tests for the command-line interface
"""

import json
import logging

import pytest
from click.testing import CliRunner

from cli import cli
from config import VERSION
from conftest import server_config_dict
from test_basic import EXAMPLE_CONFIG


@pytest.fixture(autouse=True)
def restore_logging():
    """Commands reconfigure root logging against the runner's temporary streams"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ["version"])

        assert result.exit_code == 0
        assert result.output.strip() == VERSION

    def test_validate_config(self):
        result = CliRunner().invoke(cli, ["validate-config", "--config", str(EXAMPLE_CONFIG)])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Sources: 1 (3 values)" in result.output
        assert "Bound paths: 2" in result.output

    def test_validate_invalid_config(self, tmp_path):
        data = server_config_dict()
        data["endpoints"][0]["name"] = "missing"
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        result = CliRunner().invoke(cli, ["validate-config", "-c", str(path)])

        assert result.exit_code == 1
        assert "non existing endpoint missing" in result.output

    def test_validate_missing_file(self, tmp_path):
        result = CliRunner().invoke(cli, ["validate-config", "-c", str(tmp_path / "none.json")])
        assert result.exit_code == 1

    @pytest.mark.parametrize("command", ["run", "validate-config"])
    def test_invalid_host_port_fails_cleanly(self, tmp_path, command):
        data = server_config_dict()
        data["host"] = "localhost:http"
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        result = CliRunner().invoke(cli, [command, "--config", str(path)])

        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)
        assert "invalid server host port: localhost:http" in result.output

    def test_get_unknown_endpoint(self):
        result = CliRunner().invoke(cli, ["get", "missing", "--config", str(EXAMPLE_CONFIG)])

        assert result.exit_code == 1
        assert "Failed to get endpoint missing" in result.output

    def test_config_info(self):
        result = CliRunner().invoke(cli, ["config-info"])

        assert result.exit_code == 0
        assert "User Agent:" in result.output
