"""Resume tracking by artifact presence.

A shard or snapshot is done exactly when its artifact exists. Names derive
only from (height, category, bounds), so a rerun with the same inputs finds
the same artifacts and skips them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

import bittensor as bt
from pydantic import BaseModel, ValidationError

from chainx_exporter.exporter.errors import CorruptArtifact, InvariantViolation
from chainx_exporter.exporter.models import Category, Shard
from chainx_exporter.exporter.store.interface import StateStore

M = TypeVar("M", bound=BaseModel)

# Discovery shards do not depend on the export height.
DISCOVERY_PREFIX = "accounts"


@dataclass(frozen=True)
class ArtifactKey:
    category: Category
    height: Optional[int] = None
    start: Optional[int] = None
    end: Optional[int] = None
    suffix: str = ""

    @property
    def name(self) -> str:
        prefix = DISCOVERY_PREFIX if self.height is None else str(self.height)
        if self.start is None:
            return f"{prefix}/{self.category.value}{self.suffix}.json"
        return f"{prefix}/{self.category.value}/shards/{self.start}-{self.end}.json"


def artifact_key(category: Category, shard: Shard, height: Optional[int] = None) -> ArtifactKey:
    return ArtifactKey(category=category, height=height, start=shard.start, end=shard.end)


def snapshot_key(category: Category, height: int, suffix: str = "") -> ArtifactKey:
    """Key of a height-bound whole-category artifact (``suffix`` names companions like ``-total``)."""
    return ArtifactKey(category=category, height=height, suffix=suffix)


class ResumeTracker:
    """Loads finished artifacts and commits new ones exactly once."""

    def __init__(self, store: StateStore):
        self.store = store

    async def load_done(self, key: ArtifactKey, model: type[M]) -> list[M] | None:
        """Records of a finished artifact, or None when it has not been written."""
        if not await self.store.exists(key.name):
            return None
        raw = await self.store.load(key.name)
        if not isinstance(raw, list):
            raise CorruptArtifact(key.name, "expected a list of records")
        try:
            records = [model.model_validate(item) for item in raw]
        except ValidationError as e:
            raise CorruptArtifact(key.name, str(e)) from e
        bt.logging.debug({"resume": {"artifact": key.name, "records": len(records)}})
        return records

    async def load_one(self, key: ArtifactKey, model: type[M]) -> M | None:
        if not await self.store.exists(key.name):
            return None
        raw = await self.store.load(key.name)
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise CorruptArtifact(key.name, str(e)) from e

    async def _save_once(self, key: ArtifactKey, data: object) -> None:
        if await self.store.exists(key.name):
            raise InvariantViolation(f"artifact already committed: {key.name}")
        await self.store.save(key.name, data)

    async def commit(self, key: ArtifactKey, records: Sequence[BaseModel]) -> None:
        await self._save_once(key, [r.model_dump(mode="json") for r in records])
        bt.logging.debug({"commit": {"artifact": key.name, "records": len(records)}})

    async def commit_one(self, key: ArtifactKey, value: BaseModel) -> None:
        await self._save_once(key, value.model_dump(mode="json"))


__all__ = ["ArtifactKey", "ResumeTracker", "artifact_key", "snapshot_key"]
