"""Per-category scanners: turn one key into zero or more records.

Discovery scans block heights; the account categories scan indexes into the
sorted account list produced by discovery.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, Sequence, TypeVar

from chainx_exporter.chain.events import decode_events, new_accounts
from chainx_exporter.chain.interface import LedgerClient, NodeNominations
from chainx_exporter.chain.types import AssetInfo, PseduNominationRecord
from chainx_exporter.exporter.errors import DecodeError, ExporterError, TransientFetchError
from chainx_exporter.exporter.models import (
    DEPOSIT_ASSETS,
    AccountAssets,
    AccountDepositWeight,
    AccountVoteWeight,
    Category,
    DepositWeight,
    NewAccount,
    NodeVoteWeight,
)
from chainx_exporter.exporter.weights import account_deposit_weight, account_vote_weight
from chainx_exporter.exporter.worker import KeyResult

R = TypeVar("R")


class NewAccountScanner:
    """Height -> accounts created by ``XAssets.NewAccount`` in that block."""

    category = Category.NEW_ACCOUNTS

    def __init__(self, client: LedgerClient):
        self.client = client

    async def fetch(self, height: int) -> list[NewAccount]:
        block_hash = await self.client.block_hash(height)
        if block_hash is None:
            raise TransientFetchError(f"no block hash for height {height}")
        raw = await self.client.system_events(block_hash)
        if raw is None:
            return []
        try:
            records = decode_events(raw)
        except DecodeError as e:
            raise DecodeError(f"events at height {height}: {e}") from e
        return [NewAccount(height=height, account=a) for a in new_accounts(records)]


class _AccountScanner(Generic[R]):
    """Shared plumbing for scanners keyed by account index."""

    category: Category

    def __init__(self, client: LedgerClient, accounts: Sequence[str], block_hash: str, height: int):
        self.client = client
        self.accounts = accounts
        self.block_hash = block_hash
        self.height = height

    async def _fetch_raw(self, account: str) -> Any:
        raise NotImplementedError

    async def _fetch_raw_many(self, accounts: list[str]) -> list[Any]:
        raise NotImplementedError

    def _build(self, account: str, raw: Any) -> Optional[R]:
        raise NotImplementedError

    def _records(self, account: str, raw: Any) -> list[R]:
        if raw is None:
            return []
        record = self._build(account, raw)
        return [] if record is None else [record]

    async def fetch(self, index: int) -> list[R]:
        account = self.accounts[index]
        try:
            return self._records(account, await self._fetch_raw(account))
        except DecodeError as e:
            raise DecodeError(f"{account}: {e}") from e
        except TransientFetchError as e:
            raise TransientFetchError(f"{account}: {e}") from e

    async def fetch_many(self, indexes: list[int]) -> list[KeyResult[R]]:
        accounts = [self.accounts[i] for i in indexes]
        raws = await self._fetch_raw_many(accounts)
        if len(raws) != len(indexes):
            raise DecodeError(f"batch returned {len(raws)} results for {len(indexes)} accounts")
        results: list[KeyResult[R]] = []
        for index, account, raw in zip(indexes, accounts, raws):
            if isinstance(raw, ExporterError):
                results.append(KeyResult.failure(index, f"{account}: {raw}"))
                continue
            try:
                results.append(KeyResult.success(index, self._records(account, raw)))
            except DecodeError as e:
                results.append(KeyResult.failure(index, f"{account}: {e}"))
        return results


class VoteWeightScanner(_AccountScanner[AccountVoteWeight]):
    """Account index -> nominations per node, weights accrued to the export height."""

    category = Category.VOTE_WEIGHT

    async def _fetch_raw(self, account: str) -> Any:
        return await self.client.nomination_records(account, self.block_hash)

    async def _fetch_raw_many(self, accounts: list[str]) -> list[Any]:
        return await self.client.nomination_records_many(accounts, self.block_hash)

    def _build(self, account: str, raw: NodeNominations) -> Optional[AccountVoteWeight]:
        if not raw:
            return None
        nodes = [
            NodeVoteWeight(
                account=node,
                nomination=record.nomination,
                weight=account_vote_weight(record, self.height),
                revocations=record.revocations,
            )
            for node, record in raw
        ]
        return AccountVoteWeight(account=account, nodes=nodes)


class DepositWeightScanner(_AccountScanner[AccountDepositWeight]):
    """Account index -> BTC / L-BTC / SDOT deposit balances and weights."""

    category = Category.DEPOSIT_WEIGHT

    async def _fetch_raw(self, account: str) -> Any:
        return await self.client.psedu_nomination_records(account, self.block_hash)

    async def _fetch_raw_many(self, accounts: list[str]) -> list[Any]:
        return await self.client.psedu_nomination_records_many(accounts, self.block_hash)

    def _build(self, account: str, raw: list[PseduNominationRecord]) -> Optional[AccountDepositWeight]:
        fields: dict[str, DepositWeight] = {}
        for record in raw:
            field = DEPOSIT_ASSETS.get(record.id)
            if field is None:
                raise DecodeError(f"unknown deposit asset {record.id!r}")
            fields[field] = DepositWeight(
                balance=record.balance,
                weight=account_deposit_weight(record, self.height),
            )
        if not any(w.weight for w in fields.values()):
            return None
        return AccountDepositWeight(account=account, **fields)


class AssetsScanner(_AccountScanner[AccountAssets]):
    """Account index -> balances per asset and asset type."""

    category = Category.ASSETS

    async def _fetch_raw(self, account: str) -> Any:
        return await self.client.account_assets(account, self.block_hash)

    async def _fetch_raw_many(self, accounts: list[str]) -> list[Any]:
        return await self.client.account_assets_many(accounts, self.block_hash)

    def _build(self, account: str, raw: list[AssetInfo]) -> Optional[AccountAssets]:
        if not raw:
            return None
        return AccountAssets(account=account, assets=raw)


__all__ = [
    "AssetsScanner",
    "DepositWeightScanner",
    "NewAccountScanner",
    "VoteWeightScanner",
]
