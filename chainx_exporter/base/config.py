"""Exporter settings.

Sources, lowest to highest precedence:
  defaults < JSON config file (--config) < --exporter.* flags < CHAINX_EXPORTER__* env
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import bittensor as bt
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "CHAINX_EXPORTER__"

# Keys accepted in the JSON config file, mapped onto settings fields.
FILE_KEYS = {
    "chainx-ws-url": "rpc_url",
    "chainx-rpc-url": "rpc_url",
    "rpc-url": "rpc_url",
    "height": "height",
    "data-dir": "data_dir",
}


class ExporterSettings(BaseModel):
    rpc_url: str = "http://127.0.0.1:8086"
    height: Optional[int] = Field(default=None, ge=0)
    data_dir: str = "data"
    shard_size: int = Field(default=100_000, ge=1)
    account_shard_size: int = Field(default=5_000, ge=1)
    workers: int = Field(default=50, ge=1)
    account_workers: int = Field(default=40, ge=1)
    batch_size: int = Field(default=1, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)

    @field_validator("rpc_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        # Nodes serve HTTP JSON-RPC next to their websocket endpoint.
        if value.startswith("ws://"):
            bt.logging.warning({"config": {"rpc_url": "websocket url given, using http"}})
            return "http://" + value[len("ws://"):]
        if value.startswith("wss://"):
            bt.logging.warning({"config": {"rpc_url": "websocket url given, using https"}})
            return "https://" + value[len("wss://"):]
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must be an http(s) url, got {value!r}")
        return value


SETTINGS_FIELDS = tuple(ExporterSettings.model_fields)


def add_args(parser: argparse.ArgumentParser) -> None:
    """Adds exporter arguments to the parser; every flag defaults to None so unset flags fall through."""
    parser.add_argument("--config", type=str, default=None, help="JSON config file.")
    parser.add_argument("--exporter.rpc_url", type=str, default=None, help="ChainX node JSON-RPC url.")
    parser.add_argument("--exporter.height", type=int, default=None, help="Target block height.")
    parser.add_argument("--exporter.data_dir", type=str, default=None, help="Artifact directory.")
    parser.add_argument("--exporter.shard_size", type=int, default=None, help="Heights per discovery shard.")
    parser.add_argument("--exporter.account_shard_size", type=int, default=None, help="Accounts per shard.")
    parser.add_argument("--exporter.workers", type=int, default=None, help="Workers per discovery shard.")
    parser.add_argument("--exporter.account_workers", type=int, default=None, help="Workers per account shard.")
    parser.add_argument("--exporter.batch_size", type=int, default=None, help="Keys per batched RPC round trip.")
    parser.add_argument("--exporter.timeout", type=float, default=None, help="RPC timeout in seconds.")
    parser.add_argument("--exporter.max_retries", type=int, default=None, help="RPC transport attempts.")


def _from_file(path: str) -> dict[str, Any]:
    with open(Path(path)) as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"config file {path} must hold a JSON object")
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = FILE_KEYS.get(key, key.replace("-", "_"))
        if name in SETTINGS_FIELDS:
            values[name] = value
    return values


def _from_args(args: argparse.Namespace) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in SETTINGS_FIELDS:
        value = getattr(args, f"exporter.{name}", None)
        if value is not None:
            values[name] = value
    return values


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in SETTINGS_FIELDS:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value not in (None, ""):
            values[name] = value
    return values


def load_settings(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
) -> ExporterSettings:
    """Layer defaults, config file, CLI flags and environment."""
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    config_path = getattr(args, "config", None) if args is not None else None
    if config_path:
        values.update(_from_file(config_path))
    if args is not None:
        values.update(_from_args(args))
    values.update(_from_env(environ))
    return ExporterSettings(**values)


__all__ = ["ENV_PREFIX", "ExporterSettings", "add_args", "load_settings"]
