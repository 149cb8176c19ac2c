"""Historical state export for ChainX.

Exports per-account ledger state at a fixed block height:
- new accounts, discovered by scanning block events
- vote weight per validator node nomination
- cross-chain deposit weight (BTC, L-BTC, SDOT)
- asset balances per asset type

Every category is scanned in resumable shards, merged into a sorted snapshot
and verified against totals reported by the chain.
"""

from .errors import (
    CorruptArtifact,
    DecodeError,
    ExporterError,
    InvalidHeight,
    InvariantViolation,
    LedgerUnavailable,
    TransientFetchError,
    WeightOverflow,
)
from .models import (
    AccountAssets,
    AccountDepositWeight,
    AccountVoteWeight,
    Category,
    Checkpoint,
    GlobalTotal,
    NewAccount,
    Snapshot,
)

__all__ = [
    "AccountAssets",
    "AccountDepositWeight",
    "AccountVoteWeight",
    "Category",
    "Checkpoint",
    "CorruptArtifact",
    "DecodeError",
    "ExporterError",
    "GlobalTotal",
    "InvalidHeight",
    "InvariantViolation",
    "LedgerUnavailable",
    "NewAccount",
    "Snapshot",
    "TransientFetchError",
    "WeightOverflow",
]
