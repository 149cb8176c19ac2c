"""Partition a key domain into shards and per-worker slices."""

from __future__ import annotations

from chainx_exporter.exporter.errors import InvariantViolation
from chainx_exporter.exporter.models import KeySlice, Shard


def split_even(start: int, end: int, parts: int) -> list[KeySlice]:
    """Split ``[start, end)`` into ``parts`` contiguous slices whose lengths differ by at most one."""
    length = end - start
    base, extra = divmod(length, parts)
    slices: list[KeySlice] = []
    cursor = start
    for i in range(parts):
        size = base + (1 if i < extra else 0)
        slices.append(KeySlice(start=cursor, end=cursor + size))
        cursor += size
    return slices


def plan_shards(total: int, shard_size: int, workers: int, *, offset: int = 0) -> list[Shard]:
    """Cover ``[offset, offset + total)`` with shards of ``shard_size`` keys.

    The last shard may be short. Each shard is split across
    ``min(workers, len(shard))`` workers.
    """
    if shard_size < 1:
        raise ValueError(f"shard_size must be positive, got {shard_size}")
    if workers < 1:
        raise ValueError(f"workers must be positive, got {workers}")
    if total < 0 or offset < 0:
        raise ValueError(f"invalid key domain: offset={offset} total={total}")

    shards: list[Shard] = []
    stop = offset + total
    for start in range(offset, stop, shard_size):
        end = min(start + shard_size, stop)
        parts = min(workers, end - start)
        shards.append(Shard(start=start, end=end, slices=tuple(split_even(start, end, parts))))
    return shards


def check_partition(shards: list[Shard], total: int, offset: int = 0) -> None:
    """Raise InvariantViolation unless the shards tile ``[offset, offset + total)`` exactly."""
    problems: list[str] = []
    cursor = offset
    for shard in shards:
        if shard.start != cursor:
            kind = "gap" if shard.start > cursor else "overlap"
            problems.append(f"{kind} at {cursor}: next shard starts at {shard.start}")
        inner = shard.start
        for key_slice in shard.slices:
            if key_slice.start != inner or len(key_slice) < 1:
                problems.append(f"slice {key_slice.start}-{key_slice.end} does not tile shard {shard.start}-{shard.end}")
            inner = key_slice.end
        if inner != shard.end:
            problems.append(f"slices of shard {shard.start}-{shard.end} end at {inner}")
        cursor = shard.end
    if cursor != offset + total:
        problems.append(f"shards end at {cursor}, domain ends at {offset + total}")
    if problems:
        raise InvariantViolation("key partition is not exact", problems)


__all__ = ["check_partition", "plan_shards", "split_even"]
