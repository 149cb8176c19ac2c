"""Pydantic models for exported state.

Three layers:
- planning: KeySlice / Shard, the partition of a key domain
- records: per-account rows emitted by scanners and persisted in shards
- totals: Snapshot and GlobalTotal, the merged output and its reference sums
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from chainx_exporter.chain.types import AccountId, AssetInfo, Revocation, Weight


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class Category(str, Enum):
    """Exported state categories; the value names artifacts on disk."""

    NEW_ACCOUNTS = "new-accounts"
    VOTE_WEIGHT = "vote-weight"
    DEPOSIT_WEIGHT = "deposit-weight"
    ASSETS = "assets"
    INTENTIONS = "intentions"
    SESSION_INDEX = "session-index"


# Cross-chain deposit assets and the record field each one lands in.
DEPOSIT_ASSETS: dict[str, str] = {
    "BTC": "xbtc",
    "L-BTC": "lbtc",
    "SDOT": "sdot",
}


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


class KeySlice(BaseModel):
    """Contiguous half-open key range ``[start, end)`` handled by one worker."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    def __len__(self) -> int:
        return self.end - self.start

    def keys(self) -> range:
        return range(self.start, self.end)


class Shard(BaseModel):
    """Unit of durable progress: its artifact is written only when every slice finishes."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)
    slices: tuple[KeySlice, ...] = ()

    def __len__(self) -> int:
        return self.end - self.start


class Checkpoint(BaseModel):
    """Weight known at ``height``; later weights accrue linearly from here."""

    model_config = ConfigDict(frozen=True)

    weight: Weight
    height: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class NewAccount(BaseModel):
    height: int = Field(ge=0)
    account: AccountId


class NodeVoteWeight(BaseModel):
    """Nomination held on one node, with its weight at the export height."""

    account: AccountId
    nomination: int = Field(ge=0)
    weight: Weight
    revocations: list[Revocation] = Field(default_factory=list)


class AccountVoteWeight(BaseModel):
    account: AccountId
    nodes: list[NodeVoteWeight] = Field(default_factory=list)


class DepositWeight(BaseModel):
    balance: int = Field(default=0, ge=0)
    weight: Weight = 0


class TotalDepositWeight(BaseModel):
    """Deposit pools of the three cross-chain assets."""

    xbtc: DepositWeight = Field(default_factory=DepositWeight)
    lbtc: DepositWeight = Field(default_factory=DepositWeight)
    sdot: DepositWeight = Field(default_factory=DepositWeight)


class AccountDepositWeight(BaseModel):
    account: AccountId
    xbtc: DepositWeight = Field(default_factory=DepositWeight)
    lbtc: DepositWeight = Field(default_factory=DepositWeight)
    sdot: DepositWeight = Field(default_factory=DepositWeight)


class AccountAssets(BaseModel):
    account: AccountId
    assets: list[AssetInfo] = Field(default_factory=list)


class SessionIndex(BaseModel):
    height: int
    session_index: int


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


class GlobalTotal(BaseModel):
    """Chain-reported aggregates at ``height``, keyed by verification label."""

    height: int
    category: Category
    totals: dict[str, Weight] = Field(default_factory=dict)


R = TypeVar("R", bound=BaseModel)


class Snapshot(BaseModel, Generic[R]):
    """Complete sorted, de-duplicated record set of a category at ``height``."""

    height: int
    category: Category
    records: list[R] = Field(default_factory=list)


__all__ = [
    "AccountAssets",
    "AccountDepositWeight",
    "AccountVoteWeight",
    "Category",
    "Checkpoint",
    "DEPOSIT_ASSETS",
    "DepositWeight",
    "GlobalTotal",
    "KeySlice",
    "NewAccount",
    "NodeVoteWeight",
    "SessionIndex",
    "Shard",
    "Snapshot",
    "TotalDepositWeight",
]
