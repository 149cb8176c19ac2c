"""Verification of merged snapshots against chain-reported totals.

Every category is folded into ``{label: sum}`` dicts, one from the per-account
snapshot and one from an independent chain listing, and the two are compared
label by label. Any difference is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, TypeVar

import bittensor as bt

from chainx_exporter.chain.types import AssetType, TotalAssetInfo
from chainx_exporter.exporter.errors import InvariantViolation
from chainx_exporter.exporter.models import (
    DEPOSIT_ASSETS,
    AccountAssets,
    AccountVoteWeight,
    NodeVoteWeight,
)

R = TypeVar("R")
Entries = Iterator[tuple[str, int]]

NATIVE_ASSET = "PCX"
STAKED_LABEL = f"{NATIVE_ASSET}/{AssetType.RESERVED_STAKING.value}"


@dataclass(frozen=True)
class Mismatch:
    label: str
    expected: int
    actual: int

    @property
    def difference(self) -> int:
        return self.actual - self.expected


@dataclass
class VerificationResult:
    """Outcome of comparing one category's totals."""

    category: str
    mismatches: list[Mismatch] = field(default_factory=list)
    checked: int = 0

    @property
    def valid(self) -> bool:
        return not self.mismatches

    def __bool__(self) -> bool:
        return self.valid


def fold_totals(records: Iterable[R], extract: Callable[[R], Iterable[tuple[str, int]]]) -> dict[str, int]:
    """Sum ``extract(record)`` entries per label, in a fresh dict."""
    totals: dict[str, int] = {}
    for record in records:
        for label, value in extract(record):
            totals[label] = totals.get(label, 0) + value
    return totals


def compare_totals(category: str, expected: dict[str, int], actual: dict[str, int]) -> VerificationResult:
    """Compare over the union of labels; a missing label counts as zero."""
    result = VerificationResult(category=category)
    for label in sorted(expected.keys() | actual.keys()):
        want = expected.get(label, 0)
        got = actual.get(label, 0)
        result.checked += 1
        if want != got:
            result.mismatches.append(Mismatch(label=label, expected=want, actual=got))
    return result


# ---------------------------------------------------------------------------
# Label extractors
# ---------------------------------------------------------------------------


def node_vote_labels(node: NodeVoteWeight) -> Entries:
    yield f"nomination:{node.account}", node.nomination
    yield f"weight:{node.account}", node.weight
    yield "nomination:total", node.nomination
    yield "weight:total", node.weight


def account_vote_labels(record: AccountVoteWeight) -> Entries:
    for node in record.nodes:
        yield from node_vote_labels(node)


def deposit_labels(record) -> Entries:
    """Labels for anything with ``xbtc``/``lbtc``/``sdot`` deposit fields."""
    for asset, attr in DEPOSIT_ASSETS.items():
        deposit = getattr(record, attr)
        yield f"balance:{asset}", deposit.balance
        yield f"weight:{asset}", deposit.weight


def total_asset_labels(asset: TotalAssetInfo) -> Entries:
    for asset_type, balance in asset.details.items():
        yield f"{asset.name}/{asset_type.value}", balance


def account_asset_labels(record: AccountAssets) -> Entries:
    for asset in record.assets:
        for asset_type, balance in asset.details.items():
            yield f"{asset.name}/{asset_type.value}", balance


class Verifier:
    """Runs comparisons, logs every mismatch and fails loudly."""

    def verify(self, category: str, expected: dict[str, int], actual: dict[str, int]) -> VerificationResult:
        result = compare_totals(category, expected, actual)
        if not result:
            for mismatch in result.mismatches:
                bt.logging.error({"verify_mismatch": {
                    "category": category,
                    "label": mismatch.label,
                    "expected": str(mismatch.expected),
                    "actual": str(mismatch.actual),
                    "difference": str(mismatch.difference),
                }})
            raise InvariantViolation(
                f"{category}: {len(result.mismatches)} of {result.checked} totals differ",
                result.mismatches,
            )
        bt.logging.info({"verify_ok": {"category": category, "labels": result.checked}})
        return result


__all__ = [
    "Mismatch",
    "NATIVE_ASSET",
    "STAKED_LABEL",
    "VerificationResult",
    "Verifier",
    "account_asset_labels",
    "account_vote_labels",
    "compare_totals",
    "deposit_labels",
    "fold_totals",
    "node_vote_labels",
    "total_asset_labels",
]
