"""Linear weight accrual.

A weight is a checkpoint ``(weight, height)`` plus an amount that accrues one
unit per block: ``weight + amount * (target - height)``. Everything here uses
unbounded ints and is checked against the u128 range that the chain stores.
"""

from __future__ import annotations

from chainx_exporter.chain.types import (
    U128_MAX,
    IntentionInfo,
    NominationRecord,
    PseduIntentionInfo,
    PseduNominationRecord,
    format_weight,
    parse_weight,
)
from chainx_exporter.exporter.errors import InvalidHeight, WeightOverflow
from chainx_exporter.exporter.models import Checkpoint


def accrue(checkpoint: Checkpoint, amount: int, target_height: int) -> int:
    """Weight of ``amount`` held since ``checkpoint``, evaluated at ``target_height``."""
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if target_height < checkpoint.height:
        raise InvalidHeight(
            f"target height {target_height} precedes checkpoint height {checkpoint.height}"
        )
    weight = checkpoint.weight + amount * (target_height - checkpoint.height)
    if weight > U128_MAX:
        raise WeightOverflow(f"weight {weight} exceeds u128 at height {target_height}")
    return weight


def node_vote_weight(intention: IntentionInfo, height: int) -> int:
    """Total vote weight of a validator node."""
    checkpoint = Checkpoint(
        weight=intention.last_total_vote_weight,
        height=intention.last_total_vote_weight_update,
    )
    return accrue(checkpoint, intention.total_nomination, height)


def account_vote_weight(record: NominationRecord, height: int) -> int:
    """Vote weight of one account's nomination on one node."""
    checkpoint = Checkpoint(weight=record.last_vote_weight, height=record.last_vote_weight_update)
    return accrue(checkpoint, record.nomination, height)


def node_deposit_weight(intention: PseduIntentionInfo, height: int) -> int:
    checkpoint = Checkpoint(
        weight=intention.last_total_deposit_weight,
        height=intention.last_total_deposit_weight_update,
    )
    return accrue(checkpoint, intention.circulation, height)


def account_deposit_weight(record: PseduNominationRecord, height: int) -> int:
    checkpoint = Checkpoint(
        weight=record.last_total_deposit_weight,
        height=record.last_total_deposit_weight_update,
    )
    return accrue(checkpoint, record.balance, height)


__all__ = [
    "U128_MAX",
    "account_deposit_weight",
    "account_vote_weight",
    "accrue",
    "format_weight",
    "node_deposit_weight",
    "node_vote_weight",
    "parse_weight",
]
