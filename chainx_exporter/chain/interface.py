"""Abstract ledger client interface.

Implementations:
- LedgerRpcClient: JSON-RPC over HTTP against a ChainX node
- in-memory fakes in tests
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from chainx_exporter.chain.types import (
    AssetInfo,
    IntentionInfo,
    NominationRecord,
    PseduIntentionInfo,
    PseduNominationRecord,
    TotalAssetInfo,
)
from chainx_exporter.exporter.errors import ExporterError

NodeNominations = list[tuple[str, NominationRecord]]


@runtime_checkable
class LedgerClient(Protocol):
    """Read-only access to ledger state at a given block."""

    async def block_hash(self, height: int) -> str | None:
        """Hash of the block at ``height``, or None if it does not exist."""
        ...

    async def storage(self, key: str, block_hash: str) -> bytes | None:
        """Raw storage value under a hex ``key``."""
        ...

    async def system_events(self, block_hash: str) -> bytes | None:
        ...

    async def session_index(self, block_hash: str) -> int | None:
        ...

    async def intentions(self, block_hash: str) -> list[IntentionInfo] | None:
        ...

    async def psedu_intentions(self, block_hash: str) -> list[PseduIntentionInfo] | None:
        ...

    async def nomination_records(self, account: str, block_hash: str) -> NodeNominations | None:
        ...

    async def nomination_records_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[NodeNominations | None | ExporterError]:
        ...

    async def psedu_nomination_records(
        self, account: str, block_hash: str,
    ) -> list[PseduNominationRecord] | None:
        ...

    async def psedu_nomination_records_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[list[PseduNominationRecord] | None | ExporterError]:
        ...

    async def account_assets(self, account: str, block_hash: str) -> list[AssetInfo] | None:
        ...

    async def account_assets_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[list[AssetInfo] | None | ExporterError]:
        ...

    async def assets(self, block_hash: str) -> list[TotalAssetInfo] | None:
        ...

    async def close(self) -> None:
        ...


__all__ = ["LedgerClient", "NodeNominations"]
