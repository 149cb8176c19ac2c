"""N-way merge of sorted record runs."""

from __future__ import annotations

import heapq
from typing import Any, Callable, Iterable, Iterator, TypeVar

from chainx_exporter.exporter.errors import InvariantViolation
from chainx_exporter.exporter.models import NewAccount

R = TypeVar("R")


def merge_sorted(runs: Iterable[Iterable[R]], key: Callable[[R], Any]) -> Iterator[R]:
    """Lazily merge runs that are each sorted by ``key``."""
    return heapq.merge(*runs, key=key)


def merge_unique(runs: Iterable[Iterable[R]], key: Callable[[R], Any]) -> list[R]:
    """Merge sorted runs; out-of-order or duplicate keys are an invariant violation."""
    merged: list[R] = []
    duplicates: list[Any] = []
    previous: Any = None
    for record in merge_sorted(runs, key):
        current = key(record)
        if merged:
            if current == previous:
                duplicates.append(current)
                continue
            if current < previous:
                raise InvariantViolation(
                    f"merge input not sorted: {current!r} after {previous!r}", [current, previous],
                )
        merged.append(record)
        previous = current
    if duplicates:
        raise InvariantViolation(f"{len(duplicates)} duplicate keys in merge", duplicates)
    return merged


def merge_discoveries(runs: Iterable[Iterable[NewAccount]]) -> list[NewAccount]:
    """Collapse height-ordered discovery runs to one entry per account.

    Runs are merged by height; each account keeps its earliest height and the
    result is ordered by account.
    """
    first_seen: dict[str, NewAccount] = {}
    for entry in merge_sorted(runs, key=lambda e: e.height):
        first_seen.setdefault(entry.account, entry)
    return sorted(first_seen.values(), key=lambda e: e.account)


__all__ = ["merge_discoveries", "merge_sorted", "merge_unique"]
