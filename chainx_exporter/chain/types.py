"""Pydantic models for ChainX JSON-RPC responses.

The node serializes struct fields in camelCase, 32-byte ids as ``0x`` hex
strings, and u128 vote/deposit weights as decimal strings (V1 methods) or
plain integers (legacy methods). Both weight forms are accepted here.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Generic, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
)
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

U128_MAX = 2**128 - 1


def parse_weight(value: Any) -> int:
    """Parse a weight from a decimal string or int; floats are rejected."""
    if isinstance(value, bool):
        raise ValueError("weight must be an integer, got bool")
    if isinstance(value, int):
        weight = value
    elif isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"weight must be a decimal string, got {value!r}")
        weight = int(text)
    else:
        raise ValueError(f"weight must be an int or decimal string, got {type(value).__name__}")
    if weight < 0 or weight > U128_MAX:
        raise ValueError(f"weight {weight} outside u128 range")
    return weight


def format_weight(weight: int) -> str:
    return str(parse_weight(weight))


def _normalize_account(value: str) -> str:
    text = value.lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if len(text) != 66:
        raise ValueError(f"account id must be 32 bytes, got {value!r}")
    try:
        bytes.fromhex(text[2:])
    except ValueError as e:
        raise ValueError(f"account id is not hex: {value!r}") from e
    return text


Weight = Annotated[
    int,
    BeforeValidator(parse_weight),
    PlainSerializer(format_weight, return_type=str, when_used="json"),
]
AccountId = Annotated[str, AfterValidator(_normalize_account)]


class AssetType(str, Enum):
    """Balance buckets of an asset, in on-chain variant order."""

    FREE = "Free"
    RESERVED_STAKING = "ReservedStaking"
    RESERVED_STAKING_REVOCATION = "ReservedStakingRevocation"
    RESERVED_WITHDRAWAL = "ReservedWithdrawal"
    RESERVED_DEX_SPOT = "ReservedDexSpot"
    RESERVED_DEX_FUTURE = "ReservedDexFuture"
    RESERVED_CURRENCY = "ReservedCurrency"
    RESERVED_XRC20 = "ReservedXRC20"
    GAS_PAYMENT = "GasPayment"


class Chain(str, Enum):
    CHAINX = "ChainX"
    BITCOIN = "Bitcoin"
    ETHEREUM = "Ethereum"


class _RpcModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------


class Revocation(_RpcModel):
    block_number: int
    value: int


class IntentionInfo(_RpcModel):
    """A validator candidate as returned by ``chainx_getIntentions[V1]``."""

    account: AccountId
    name: str = ""
    is_validator: bool = False
    self_vote: int = 0
    jackpot: int = 0
    jackpot_account: str = ""
    url: str = ""
    is_active: bool = False
    about: str = ""
    session_key: str = ""
    is_trustee: list[Chain] = Field(default_factory=list)
    total_nomination: int
    last_total_vote_weight: Weight
    last_total_vote_weight_update: int


class NominationRecord(_RpcModel):
    nomination: int
    last_vote_weight: Weight
    last_vote_weight_update: int
    revocations: list[Revocation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cross-chain deposits
# ---------------------------------------------------------------------------


class PseduIntentionInfo(_RpcModel):
    """Deposit pool of a cross-chain asset (``chainx_getPseduIntentions[V1]``)."""

    id: str
    circulation: int
    price: int = 0
    discount: int = 0
    power: int = 0
    jackpot: int = 0
    jackpot_account: str = ""
    last_total_deposit_weight: Weight
    last_total_deposit_weight_update: int


class PseduNominationRecord(_RpcModel):
    id: str
    balance: int
    next_claim: int = 0
    last_total_deposit_weight: Weight
    last_total_deposit_weight_update: int


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetInfo(_RpcModel):
    name: str
    details: dict[AssetType, int] = Field(default_factory=dict)


class TotalAssetInfo(_RpcModel):
    name: str
    token_name: str = ""
    chain: Chain = Chain.CHAINX
    precision: int = 0
    desc: str = ""
    online: bool = True
    details: dict[AssetType, int] = Field(default_factory=dict)
    limit_props: dict[str, bool] = Field(default_factory=dict)


T = TypeVar("T")


class PageData(_RpcModel, Generic[T]):
    page_total: int
    page_index: int
    page_size: int
    data: list[T] = Field(default_factory=list)


__all__ = [
    "AccountId",
    "AssetInfo",
    "AssetType",
    "Chain",
    "IntentionInfo",
    "NominationRecord",
    "PageData",
    "PseduIntentionInfo",
    "PseduNominationRecord",
    "Revocation",
    "TotalAssetInfo",
    "U128_MAX",
    "Weight",
    "format_weight",
    "parse_weight",
]
