"""Filesystem-based StateStore implementation.

Writes plain JSON (indent 2) to a local directory tree:
  {data_dir}/accounts/new-accounts/{start}-{end}.json
  {data_dir}/{height}/{category}/shards/{start}-{end}.json
  {data_dir}/{height}/{category}.json
  {data_dir}/unresolved/{category}.log
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from chainx_exporter.exporter.errors import CorruptArtifact


def _write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file in the target directory, then rename over."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.rename(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FilesystemStore:
    """Local filesystem StateStore implementation."""

    def __init__(self, data_dir: str | os.PathLike):
        self.base = Path(data_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> Path:
        path = (self.base / name).resolve()
        if self.base.resolve() not in path.parents:
            raise ValueError(f"artifact name escapes store: {name!r}")
        return path

    async def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    async def save(self, name: str, data: Any) -> None:
        _write_json_atomic(self.path(name), data)

    async def load(self, name: str) -> Any:
        path = self.path(name)
        try:
            with open(path) as f:
                return json.load(f)
        except (ValueError, UnicodeDecodeError) as e:
            raise CorruptArtifact(name, str(e)) from e

    async def append_unresolved(self, category: str, entries: Iterable[tuple[int, str]]) -> None:
        path = self.path(f"unresolved/{category}.log")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            for key, reason in entries:
                f.write(f"{key}\t{' '.join(reason.split())}\n")


__all__ = ["FilesystemStore"]
