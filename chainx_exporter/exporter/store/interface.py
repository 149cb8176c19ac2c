"""StateStore protocol - where artifacts live.

Implementations: FilesystemStore. Names are relative, slash-separated and
deterministic (see ``exporter.resume``).
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable


@runtime_checkable
class StateStore(Protocol):
    """Abstract interface for reading/writing exported artifacts."""

    async def exists(self, name: str) -> bool:
        """True when a complete artifact is stored under ``name``."""
        ...

    async def save(self, name: str, data: Any) -> None:
        """Write JSON-ready ``data`` atomically under ``name``."""
        ...

    async def load(self, name: str) -> Any:
        """Read the artifact under ``name``; raises CorruptArtifact if unreadable."""
        ...

    async def append_unresolved(self, category: str, entries: Iterable[tuple[int, str]]) -> None:
        """Append ``(key, reason)`` pairs to the category's unresolved-keys log."""
        ...


__all__ = ["StateStore"]
