"""Shard workers: scan one key slice sequentially, one explicit result per key."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Generic, Iterable, NamedTuple, Protocol, Sequence, TypeVar

import bittensor as bt

from chainx_exporter.exporter.errors import DecodeError, InvariantViolation, TransientFetchError
from chainx_exporter.exporter.models import Category, KeySlice

R = TypeVar("R")


class UnresolvedKey(NamedTuple):
    key: int
    reason: str


@dataclass
class KeyResult(Generic[R]):
    """Outcome of one key: its records, or why it could not be fetched."""

    key: int
    records: list[R] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, key: int, records: list[R]) -> KeyResult[R]:
        return cls(key=key, records=records)

    @classmethod
    def failure(cls, key: int, reason: str) -> KeyResult[R]:
        return cls(key=key, error=reason)


@dataclass
class SliceResult(Generic[R]):
    key_slice: KeySlice
    records: list[R] = field(default_factory=list)
    unresolved: list[UnresolvedKey] = field(default_factory=list)


class Scanner(Protocol[R]):
    """Turns one key into zero or more records.

    Scanners may also provide ``fetch_many(keys) -> list[KeyResult]`` to
    fetch an ascending group of keys in one round trip.
    """

    category: Category

    async def fetch(self, key: int) -> list[R]:
        ...


class ShardWorker(Generic[R]):
    """Processes a key slice in ascending order."""

    def __init__(self, worker_id: str, scanner: Scanner[R], batch_size: int = 1):
        self.worker_id = worker_id
        self.scanner = scanner
        self.batch_size = max(1, batch_size)

    async def run(self, key_slice: KeySlice) -> SliceResult[R]:
        result: SliceResult[R] = SliceResult(key_slice=key_slice)
        async for outcome in self._outcomes(key_slice):
            if outcome.ok:
                result.records.extend(outcome.records)
                bt.logging.debug({"key_done": {"worker": self.worker_id, "key": outcome.key, "records": len(outcome.records)}})
            else:
                result.unresolved.append(UnresolvedKey(outcome.key, outcome.error or ""))
                bt.logging.warning({"key_unresolved": {
                    "worker": self.worker_id,
                    "category": self.scanner.category.value,
                    "key": outcome.key,
                    "reason": outcome.error,
                }})
        bt.logging.debug({"slice_done": {
            "worker": self.worker_id,
            "slice": f"{key_slice.start}-{key_slice.end}",
            "records": len(result.records),
            "unresolved": len(result.unresolved),
        }})
        return result

    async def _outcomes(self, key_slice: KeySlice) -> AsyncIterator[KeyResult[R]]:
        fetch_many = getattr(self.scanner, "fetch_many", None)
        if self.batch_size > 1 and fetch_many is not None:
            keys = key_slice.keys()
            for i in range(0, len(keys), self.batch_size):
                group = list(keys[i:i + self.batch_size])
                outcomes = await fetch_many(group)
                if [o.key for o in outcomes] != group:
                    raise InvariantViolation(
                        f"batch results out of order for keys {group[0]}-{group[-1]}",
                    )
                for outcome in outcomes:
                    yield outcome
        else:
            for key in key_slice.keys():
                yield await self._fetch_one(key)

    async def _fetch_one(self, key: int) -> KeyResult[R]:
        try:
            records = await self.scanner.fetch(key)
        except (TransientFetchError, DecodeError) as e:
            return KeyResult.failure(key, str(e))
        return KeyResult.success(key, records)


async def run_batch(jobs: Iterable[Awaitable[Any]]) -> list[Any]:
    """Run jobs concurrently; on the first failure cancel and await the rest, then re-raise."""
    tasks = [asyncio.ensure_future(job) for job in jobs]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def flatten_unresolved(results: Sequence[SliceResult[Any]]) -> list[UnresolvedKey]:
    return [u for r in results for u in r.unresolved]


__all__ = [
    "KeyResult",
    "Scanner",
    "ShardWorker",
    "SliceResult",
    "UnresolvedKey",
    "flatten_unresolved",
    "run_batch",
]
