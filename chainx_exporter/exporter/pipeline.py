"""Export pipeline: plan -> scan shards concurrently -> merge -> verify -> persist.

Each category is exported in shards. A shard's workers run concurrently and
the shard artifact is committed only once all of them finish, so an
interrupted run resumes at the first shard without an artifact. Snapshots and
chain totals are committed once and reused on later runs.
"""

from __future__ import annotations

from operator import attrgetter
from typing import Any, Callable, Sequence

import bittensor as bt

from chainx_exporter.base.config import ExporterSettings
from chainx_exporter.chain.interface import LedgerClient
from chainx_exporter.chain.types import IntentionInfo, TotalAssetInfo
from chainx_exporter.exporter.errors import ExporterError
from chainx_exporter.exporter.merge import merge_discoveries, merge_sorted, merge_unique
from chainx_exporter.exporter.models import (
    DEPOSIT_ASSETS,
    AccountAssets,
    AccountDepositWeight,
    AccountVoteWeight,
    Category,
    DepositWeight,
    GlobalTotal,
    NewAccount,
    NodeVoteWeight,
    SessionIndex,
    Shard,
    Snapshot,
    TotalDepositWeight,
)
from chainx_exporter.exporter.planner import check_partition, plan_shards
from chainx_exporter.exporter.resume import ResumeTracker, artifact_key, snapshot_key
from chainx_exporter.exporter.scanners import (
    AssetsScanner,
    DepositWeightScanner,
    NewAccountScanner,
    VoteWeightScanner,
)
from chainx_exporter.exporter.store.interface import StateStore
from chainx_exporter.exporter.verifier import (
    STAKED_LABEL,
    Verifier,
    account_asset_labels,
    account_vote_labels,
    deposit_labels,
    fold_totals,
    node_vote_labels,
    total_asset_labels,
)
from chainx_exporter.exporter.weights import node_deposit_weight, node_vote_weight
from chainx_exporter.exporter.worker import ShardWorker, flatten_unresolved, run_batch

_by_account = attrgetter("account")
_by_height = attrgetter("height")

# Chain listings persisted next to the snapshots, and the totals folded from them.
CHAIN_SUFFIX = "-chain"
TOTAL_SUFFIX = "-total"


def _merge_by_height(runs: list[list[NewAccount]]) -> list[NewAccount]:
    return list(merge_sorted(runs, key=_by_height))


def _merge_by_account(runs: list[list[Any]]) -> list[Any]:
    return merge_unique(runs, key=_by_account)


class StateExporter:
    """Exports per-account ledger state at one block height."""

    def __init__(
        self,
        client: LedgerClient,
        store: StateStore,
        height: int,
        *,
        shard_size: int = 100_000,
        account_shard_size: int = 5_000,
        workers: int = 50,
        account_workers: int = 40,
        batch_size: int = 1,
    ):
        if height < 0:
            raise ValueError(f"height must be non-negative, got {height}")
        self.client = client
        self.store = store
        self.height = height
        self.shard_size = shard_size
        self.account_shard_size = account_shard_size
        self.workers = workers
        self.account_workers = account_workers
        self.batch_size = batch_size
        self.tracker = ResumeTracker(store)
        self.verifier = Verifier()
        self._block_hash: str | None = None

    @classmethod
    def from_settings(cls, client: LedgerClient, store: StateStore, settings: ExporterSettings) -> StateExporter:
        if settings.height is None:
            raise ExporterError("an export height is required (--exporter.height)")
        return cls(
            client,
            store,
            settings.height,
            shard_size=settings.shard_size,
            account_shard_size=settings.account_shard_size,
            workers=settings.workers,
            account_workers=settings.account_workers,
            batch_size=settings.batch_size,
        )

    async def block_hash(self) -> str:
        if self._block_hash is None:
            block_hash = await self.client.block_hash(self.height)
            if block_hash is None:
                raise ExporterError(f"block {self.height} not found on the ledger")
            self._block_hash = block_hash
            bt.logging.info({"target_block": {"height": self.height, "hash": block_hash}})
        return self._block_hash

    # -- Sharded scanning --

    async def _scan_shard(
        self,
        category: Category,
        scanner: Any,
        model: type,
        shard: Shard,
        merge_shard: Callable[[list[list[Any]]], list[Any]],
        height: int | None,
    ) -> list[Any]:
        key = artifact_key(category, shard, height)
        done = await self.tracker.load_done(key, model)
        if done is not None:
            bt.logging.info({"shard_resumed": {"artifact": key.name, "records": len(done)}})
            return done

        workers = [
            ShardWorker(f"{category.value}:{shard.start}:{i}", scanner, self.batch_size)
            for i in range(len(shard.slices))
        ]
        results = await run_batch(w.run(s) for w, s in zip(workers, shard.slices))
        records = merge_shard([r.records for r in results])
        unresolved = flatten_unresolved(results)
        if unresolved:
            await self.store.append_unresolved(category.value, unresolved)
        await self.tracker.commit(key, records)
        bt.logging.info({"shard_done": {
            "artifact": key.name,
            "records": len(records),
            "unresolved": len(unresolved),
        }})
        return records

    async def _scan(
        self,
        category: Category,
        scanner: Any,
        model: type,
        *,
        total: int,
        shard_size: int,
        workers: int,
        merge_shard: Callable[[list[list[Any]]], list[Any]],
        height: int | None,
    ) -> list[list[Any]]:
        shards = plan_shards(total, shard_size, workers)
        check_partition(shards, total)
        bt.logging.info({"scan_start": {"category": category.value, "keys": total, "shards": len(shards)}})
        runs = []
        for shard in shards:
            runs.append(await self._scan_shard(category, scanner, model, shard, merge_shard, height))
        return runs

    # -- Accounts --

    async def export_accounts(self) -> Snapshot[NewAccount]:
        """Every account created up to and including the export height."""
        key = snapshot_key(Category.NEW_ACCOUNTS, self.height)
        records = await self.tracker.load_done(key, NewAccount)
        if records is None:
            runs = await self._scan(
                Category.NEW_ACCOUNTS,
                NewAccountScanner(self.client),
                NewAccount,
                total=self.height + 1,
                shard_size=self.shard_size,
                workers=self.workers,
                merge_shard=_merge_by_height,
                height=None,
            )
            records = merge_discoveries(runs)
            await self.tracker.commit(key, records)
            bt.logging.info({"snapshot_done": {"artifact": key.name, "accounts": len(records)}})
        return Snapshot[NewAccount](height=self.height, category=Category.NEW_ACCOUNTS, records=records)

    async def accounts(self) -> list[str]:
        snapshot = await self.export_accounts()
        return [r.account for r in snapshot.records]

    async def _export_account_category(
        self, category: Category, scanner_cls: type, model: type,
    ) -> list[Any]:
        key = snapshot_key(category, self.height)
        records = await self.tracker.load_done(key, model)
        if records is not None:
            return records
        accounts = await self.accounts()
        scanner = scanner_cls(self.client, accounts, await self.block_hash(), self.height)
        runs = await self._scan(
            category,
            scanner,
            model,
            total=len(accounts),
            shard_size=self.account_shard_size,
            workers=self.account_workers,
            merge_shard=_merge_by_account,
            height=self.height,
        )
        records = merge_unique(runs, key=_by_account)
        await self.verify_category(category, records)
        await self.tracker.commit(key, records)
        bt.logging.info({"snapshot_done": {"artifact": key.name, "records": len(records)}})
        return records

    # -- Chain listings --

    async def vote_weight_nodes(self) -> list[NodeVoteWeight]:
        """Validator nodes with non-zero total vote weight at the export height."""
        key = snapshot_key(Category.VOTE_WEIGHT, self.height, CHAIN_SUFFIX)
        nodes = await self.tracker.load_done(key, NodeVoteWeight)
        if nodes is None:
            intentions = await self.client.intentions(await self.block_hash())
            if intentions is None:
                raise ExporterError(f"no intentions at height {self.height}")
            nodes = sorted(
                (
                    NodeVoteWeight(
                        account=i.account,
                        nomination=i.total_nomination,
                        weight=node_vote_weight(i, self.height),
                    )
                    for i in intentions
                ),
                key=_by_account,
            )
            nodes = [n for n in nodes if n.weight != 0]
            await self.tracker.commit(key, nodes)
        return nodes

    async def deposit_pools(self) -> TotalDepositWeight:
        key = snapshot_key(Category.DEPOSIT_WEIGHT, self.height, CHAIN_SUFFIX)
        pools = await self.tracker.load_one(key, TotalDepositWeight)
        if pools is None:
            intentions = await self.client.psedu_intentions(await self.block_hash())
            if intentions is None:
                raise ExporterError(f"no deposit pools at height {self.height}")
            fields: dict[str, DepositWeight] = {}
            for intention in intentions:
                field = DEPOSIT_ASSETS.get(intention.id)
                if field is None:
                    bt.logging.warning({"deposit_pools": {"ignored_asset": intention.id}})
                    continue
                fields[field] = DepositWeight(
                    balance=intention.circulation,
                    weight=node_deposit_weight(intention, self.height),
                )
            pools = TotalDepositWeight(**fields)
            await self.tracker.commit_one(key, pools)
        return pools

    async def asset_listing(self) -> list[TotalAssetInfo]:
        key = snapshot_key(Category.ASSETS, self.height, CHAIN_SUFFIX)
        assets = await self.tracker.load_done(key, TotalAssetInfo)
        if assets is None:
            assets = await self.client.assets(await self.block_hash())
            if assets is None:
                raise ExporterError(f"no asset listing at height {self.height}")
            await self.tracker.commit(key, assets)
        return assets

    async def global_total(self, category: Category) -> GlobalTotal:
        """Chain-side totals of a category, folded from its chain listing."""
        key = snapshot_key(category, self.height, TOTAL_SUFFIX)
        total = await self.tracker.load_one(key, GlobalTotal)
        if total is None:
            if category is Category.VOTE_WEIGHT:
                totals = fold_totals(await self.vote_weight_nodes(), node_vote_labels)
            elif category is Category.DEPOSIT_WEIGHT:
                totals = fold_totals([await self.deposit_pools()], deposit_labels)
            elif category is Category.ASSETS:
                totals = fold_totals(await self.asset_listing(), total_asset_labels)
            else:
                raise ValueError(f"no chain totals for {category.value}")
            total = GlobalTotal(height=self.height, category=category, totals=totals)
            await self.tracker.commit_one(key, total)
        return total

    # -- Verification --

    async def verify_category(self, category: Category, records: Sequence[Any]) -> None:
        expected = (await self.global_total(category)).totals
        if category is Category.VOTE_WEIGHT:
            actual = fold_totals(records, account_vote_labels)
            self.verifier.verify(category.value, expected, actual)
            staked = (await self.global_total(Category.ASSETS)).totals.get(STAKED_LABEL, 0)
            self.verifier.verify(
                f"{category.value}/staking",
                {"nomination:total": staked},
                {"nomination:total": actual.get("nomination:total", 0)},
            )
        elif category is Category.DEPOSIT_WEIGHT:
            self.verifier.verify(category.value, expected, fold_totals(records, deposit_labels))
        elif category is Category.ASSETS:
            self.verifier.verify(category.value, expected, fold_totals(records, account_asset_labels))
        else:
            raise ValueError(f"{category.value} has no verification")

    async def verify(self) -> None:
        """Re-verify every persisted account snapshot."""
        for category, model in (
            (Category.VOTE_WEIGHT, AccountVoteWeight),
            (Category.DEPOSIT_WEIGHT, AccountDepositWeight),
            (Category.ASSETS, AccountAssets),
        ):
            key = snapshot_key(category, self.height)
            records = await self.tracker.load_done(key, model)
            if records is None:
                raise ExporterError(f"missing snapshot {key.name}; export {category.value} first")
            await self.verify_category(category, records)

    # -- Categories --

    async def export_vote_weight(self) -> Snapshot[AccountVoteWeight]:
        records = await self._export_account_category(Category.VOTE_WEIGHT, VoteWeightScanner, AccountVoteWeight)
        return Snapshot[AccountVoteWeight](height=self.height, category=Category.VOTE_WEIGHT, records=records)

    async def export_deposit_weight(self) -> Snapshot[AccountDepositWeight]:
        records = await self._export_account_category(
            Category.DEPOSIT_WEIGHT, DepositWeightScanner, AccountDepositWeight,
        )
        return Snapshot[AccountDepositWeight](height=self.height, category=Category.DEPOSIT_WEIGHT, records=records)

    async def export_assets(self) -> Snapshot[AccountAssets]:
        records = await self._export_account_category(Category.ASSETS, AssetsScanner, AccountAssets)
        return Snapshot[AccountAssets](height=self.height, category=Category.ASSETS, records=records)

    async def export_intentions(self) -> list[IntentionInfo]:
        key = snapshot_key(Category.INTENTIONS, self.height)
        intentions = await self.tracker.load_done(key, IntentionInfo)
        if intentions is None:
            intentions = await self.client.intentions(await self.block_hash())
            if intentions is None:
                raise ExporterError(f"no intentions at height {self.height}")
            intentions = sorted(intentions, key=_by_account)
            await self.tracker.commit(key, intentions)
            bt.logging.info({"snapshot_done": {"artifact": key.name, "intentions": len(intentions)}})
        return intentions

    async def export_session_index(self) -> SessionIndex:
        key = snapshot_key(Category.SESSION_INDEX, self.height)
        value = await self.tracker.load_one(key, SessionIndex)
        if value is None:
            index = await self.client.session_index(await self.block_hash())
            if index is None:
                raise ExporterError(f"no session index at height {self.height}")
            value = SessionIndex(height=self.height, session_index=index)
            await self.tracker.commit_one(key, value)
            bt.logging.info({"session_index": {"height": self.height, "index": index}})
        return value

    async def export_all(self) -> None:
        await self.export_accounts()
        await self.export_intentions()
        await self.export_session_index()
        await self.export_assets()
        await self.export_vote_weight()
        await self.export_deposit_weight()


__all__ = ["StateExporter"]
