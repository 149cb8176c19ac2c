"""Tests for settings layering and the exporter entrypoint."""

import argparse
import json
import os
import tempfile

import pytest
from pydantic import ValidationError

from chainx_exporter.base.config import ExporterSettings, add_args, load_settings
from chainx_exporter.entrypoints.exporter import build_parser, main


def _args(*argv: str) -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    add_args(parser)
    return parser.parse_args(list(argv))


@pytest.fixture
def config_file():
    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "config.json")
        with open(path, "w") as f:
            json.dump({"chainx-ws-url": "ws://10.0.0.1:8087", "height": 100, "workers": 8}, f)
        yield path


class TestSettings:

    def test_defaults(self):
        settings = load_settings(_args(), environ={})
        assert settings.rpc_url == "http://127.0.0.1:8086"
        assert settings.height is None
        assert settings.batch_size == 1

    def test_file_keys_and_ws_mapping(self, config_file):
        settings = load_settings(_args("--config", config_file), environ={})
        assert settings.rpc_url == "http://10.0.0.1:8087"
        assert settings.height == 100
        assert settings.workers == 8

    def test_precedence_file_cli_env(self, config_file):
        args = _args("--config", config_file, "--exporter.height", "200", "--exporter.workers", "4")
        settings = load_settings(args, environ={"CHAINX_EXPORTER__HEIGHT": "300"})
        assert settings.height == 300
        assert settings.workers == 4

    def test_wss_maps_to_https(self):
        assert ExporterSettings(rpc_url="wss://node.example").rpc_url == "https://node.example"

    def test_rejects_other_schemes(self):
        with pytest.raises(ValidationError):
            ExporterSettings(rpc_url="ftp://node.example")

    def test_rejects_zero_workers(self):
        with pytest.raises(ValidationError):
            load_settings(_args("--exporter.workers", "0"), environ={})


class TestEntrypoint:

    def test_parser_accepts_commands(self):
        args = build_parser().parse_args(["vote-weight", "--exporter.height", "5"])
        assert args.command == "vote-weight"
        assert getattr(args, "exporter.height") == 5

    def test_unknown_command_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["balances"])

    def test_missing_config_file_exits_2(self, monkeypatch):
        monkeypatch.setenv("CHAINX_EXPORTER_TEST_MODE", "true")
        with pytest.raises(SystemExit) as exc:
            main(["accounts", "--config", "/nonexistent/config.json"])
        assert exc.value.code == 2
