"""Decoder for the ChainX ``System Events`` storage value.

The value is a SCALE ``Vec<EventRecord>``; each record is a phase, an event
tagged by ``(module_index, variant_index)`` and a list of topic hashes. Event
payloads are decoded through ``EVENT_TABLE`` so that every event in a block
must be understood for the block to decode. Multisig execution events embed
a runtime call, decoded the same way through ``CALL_TABLE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from chainx_exporter.chain.scale import ScaleReader
from chainx_exporter.chain.types import AssetType, Chain
from chainx_exporter.exporter.errors import DecodeError

Codec = Callable[[ScaleReader], Any]


@dataclass(frozen=True)
class ChainEvent:
    module: str
    variant: str
    args: tuple


@dataclass(frozen=True)
class EventRecord:
    extrinsic_index: Optional[int]  # None during block finalization
    event: ChainEvent
    topics: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Field codecs
# ---------------------------------------------------------------------------

U16 = ScaleReader.u16
U32 = ScaleReader.u32
U64 = ScaleReader.u64
U128 = ScaleReader.u128
BOOL = ScaleReader.bool
ACCOUNT = ScaleReader.account
HASH = ScaleReader.hash
COMPACT = ScaleReader.compact


def TEXT(reader: ScaleReader) -> str:
    return reader.bytes().decode("utf-8", errors="replace")


def BYTES(reader: ScaleReader) -> str:
    return "0x" + reader.bytes().hex()


def fixed(size: int) -> Codec:
    return lambda reader: "0x" + reader.read(size).hex()


ETH_ADDRESS = fixed(20)


def vec(item: Codec) -> Codec:
    return lambda reader: reader.vec(item)


def option(item: Codec) -> Codec:
    return lambda reader: reader.option(item)


def struct(*fields: Codec) -> Codec:
    return lambda reader: tuple(field(reader) for field in fields)


def pair(first: Codec, second: Codec) -> Codec:
    return struct(first, second)


def variant(*names: str) -> Codec:
    return lambda reader: reader.variant(names)


def tagged(*cases: tuple[str, Codec]) -> Codec:
    """Enum whose variants carry one payload each; decodes to ``(name, value)``."""
    def decode(reader: ScaleReader) -> tuple[str, Any]:
        index = reader.u8()
        if index >= len(cases):
            raise DecodeError(f"enum index {index} out of range ({len(cases)} variants)")
        name, codec = cases[index]
        return name, codec(reader)
    return decode


def btree_map(key: Codec, value: Codec) -> Codec:
    """Map encoded with a u32 length instead of the usual compact one."""
    def decode(reader: ScaleReader) -> dict:
        return dict(pair(key, value)(reader) for _ in range(reader.u32()))
    return decode


def INDICES_ADDRESS(reader: ScaleReader) -> Any:
    """``Address<AccountId, u32>``: an account id (0xff) or a variable-width index."""
    tag = reader.u8()
    if tag == 0xFF:
        return reader.account()
    if tag <= 0xEF:
        return tag
    if tag == 0xFC:
        return reader.u16()
    if tag == 0xFD:
        return reader.u32()
    if tag == 0xFE:
        return reader.u64()
    raise DecodeError(f"invalid address tag {tag:#x}")


ASSET_TYPE = variant(*(t.value for t in AssetType))
CHAIN = variant(*(c.value for c in Chain))
APPLICATION_STATE = variant(
    "Applying", "Processing", "NormalFinish", "RootFinish", "NormalCancel", "RootCancel",
)
ORDER_STATUS = variant(
    "ZeroFill", "ParitialFill", "Filled", "ParitialFillAndCanceled", "Canceled",
)
ORDER_TYPE = variant("Limit", "Market")
SIDE = variant("Buy", "Sell")

_TX_STATES = (
    "NotApplying", "Applying", "Signing", "Broadcasting",
    "Processing", "Confirming", "Confirmed", "Unknown",
)


def TX_STATE(reader: ScaleReader) -> Any:
    name = reader.variant(_TX_STATES)
    if name == "Confirming":
        return (name, reader.u32(), reader.u32())
    return name


def SIGNED_BALANCE(reader: ScaleReader) -> int:
    sign = reader.variant(("Positive", "Negative"))
    amount = reader.u64()
    return amount if sign == "Positive" else -amount


# Bitcoin bridge types (light-bitcoin keys).
BTC_ADDRESS = struct(variant("P2PKH", "P2SH"), variant("Mainnet", "Testnet"), fixed(20))
BTC_PUBLIC = tagged(("Normal", fixed(65)), ("Compressed", fixed(33)))
BTC_TRUSTEE_PROPS = struct(BYTES, BTC_PUBLIC, BTC_PUBLIC)
BTC_TRUSTEE_ADDR = struct(BTC_ADDRESS, BYTES)
BTC_TRUSTEE_SESSION = struct(vec(ACCOUNT), BTC_TRUSTEE_ADDR, BTC_TRUSTEE_ADDR)

ASSET = struct(TEXT, TEXT, CHAIN, U16, TEXT)
ASSET_LIMIT = variant(
    "CanMove", "CanTransfer", "CanDeposit", "CanWithdraw", "CanDestroyWithdrawal", "CanDestroyFree",
)


@dataclass(frozen=True)
class ChainCall:
    """A runtime call embedded in an event (multisig proposals)."""

    module: str
    function: str
    args: tuple


def CALL(reader: ScaleReader) -> ChainCall:
    module_index = reader.u8()
    call_index = reader.u8()
    entry = CALL_TABLE.get((module_index, call_index))
    if entry is None:
        raise DecodeError(f"unknown call discriminant ({module_index}, {call_index})")
    module, name, fields = entry
    return ChainCall(module=module, function=name, args=tuple(codec(reader) for codec in fields))


# ---------------------------------------------------------------------------
# Discriminant tables
# ---------------------------------------------------------------------------

Entry = tuple[str, str, tuple[Codec, ...]]

# (module_index, variant_index) -> (module, variant, field codecs).
EVENT_TABLE: dict[tuple[int, int], Entry] = {}
CALL_TABLE: dict[tuple[int, int], Entry] = {}


def _fill(table: dict, index: int, module: str, variants: list[tuple[str, tuple[Codec, ...]]]) -> None:
    for variant_index, (name, fields) in enumerate(variants):
        table[(index, variant_index)] = (module, name, fields)


def _register(index: int, module: str, variants: list[tuple[str, tuple[Codec, ...]]]) -> None:
    _fill(EVENT_TABLE, index, module, variants)


def _register_call(index: int, module: str, calls: list[tuple[str, tuple[Codec, ...]]]) -> None:
    _fill(CALL_TABLE, index, module, calls)


_register(0, "System", [
    ("ExtrinsicSuccess", ()),
    ("ExtrinsicFailed", ()),
])
_register(1, "Indices", [
    ("NewAccountIndex", (ACCOUNT, U32)),
])
_register(2, "XSession", [
    ("NewSession", (U64,)),
])
_register(3, "XGrandpa", [
    ("NewAuthorities", (vec(pair(HASH, U64)),)),
])
_register(4, "XFeeManager", [
    ("FeeForJackpot", (ACCOUNT, U64)),
    ("FeeForProducer", (ACCOUNT, U64)),
    ("FeeForCouncil", (ACCOUNT, U64)),
])
_register(5, "XAssets", [
    ("Move", (TEXT, ACCOUNT, ASSET_TYPE, ACCOUNT, ASSET_TYPE, U64)),
    ("Issue", (TEXT, ACCOUNT, U64)),
    ("Destory", (TEXT, ACCOUNT, U64)),
    ("Set", (TEXT, ACCOUNT, ASSET_TYPE, U64)),
    ("Register", (TEXT, BOOL)),
    ("Revoke", (TEXT,)),
    ("NewAccount", (ACCOUNT,)),
    ("Change", (TEXT, ACCOUNT, ASSET_TYPE, SIGNED_BALANCE)),
])
_register(6, "XRecords", [
    ("Deposit", (ACCOUNT, TEXT, U64)),
    ("WithdrawalApply", (U32, ACCOUNT, CHAIN, TEXT, U64, BYTES, BYTES)),
    ("WithdrawalFinish", (U32, APPLICATION_STATE)),
])
_register(7, "XStaking", [
    ("Reward", (U64, U64)),
    ("MissedBlocksOfOfflineValidatorPerSession", (vec(pair(ACCOUNT, U32)),)),
    ("EnforceValidatorsInactive", (vec(ACCOUNT),)),
    ("Rotation", (vec(pair(ACCOUNT, U64)),)),
    ("Unnominate", (U64,)),
    ("Nominate", (ACCOUNT, ACCOUNT, U64)),
    ("Claim", (U64, U64, U64)),
    ("Refresh", (ACCOUNT, option(BYTES), option(BOOL), option(HASH), option(BYTES))),
    ("Unfreeze", (ACCOUNT, ACCOUNT)),
    ("SessionReward", (U64, U64, U64, U64)),
    ("ClaimV1", (U128, U128, U64)),
    ("RemoveZombieIntentions", (vec(ACCOUNT),)),
])
_register(8, "XTokens", [
    ("DepositorReward", (ACCOUNT, TEXT, U64)),
    ("DepositorClaim", (ACCOUNT, TEXT, U64, U64, U64)),
    ("DepositorClaimV1", (ACCOUNT, TEXT, U128, U128, U64)),
])
_register(9, "XSpot", [
    ("UpdateOrder", (ACCOUNT, U64, U64, U64, ORDER_STATUS, U64, vec(U64))),
    ("PutOrder", (ACCOUNT, U64, U32, ORDER_TYPE, U64, SIDE, U64, U64)),
    ("FillOrder", (U64, U32, U64, ACCOUNT, ACCOUNT, U64, U64, U64, U64)),
    ("UpdateOrderPair", (U32, pair(TEXT, TEXT), U32, U32, BOOL)),
    ("PriceVolatility", (U32,)),
])
_register(10, "XBitcoin", [
    ("InsertHeader", (U32, HASH, U32, HASH, HASH, U32, U32, U32, HASH)),
    ("InsertTx", (HASH, HASH, TX_STATE)),
    ("Deposit", (ACCOUNT, CHAIN, TEXT, U64, BYTES, BYTES, BYTES, TX_STATE)),
    ("DepositPending", (ACCOUNT, CHAIN, TEXT, U64, BYTES)),
    ("Withdrawal", (U32, BYTES, TX_STATE)),
    ("CreateWithdrawalProposal", (ACCOUNT, vec(U32))),
    ("SignWithdrawalProposal", (ACCOUNT, BOOL)),
    ("WithdrawalFatalErr", (BYTES, BYTES)),
    ("DropWithdrawalProposal", (U32, U32, vec(U32))),
])
_register(11, "XSdot", [
    ("Claimed", (ACCOUNT, ETH_ADDRESS, U64)),
])
_register(12, "XBridgeFeatures", [
    ("SetBitcoinTrusteeProps", (ACCOUNT, BTC_TRUSTEE_PROPS)),
    ("BitcoinNewTrustees", (U32, BTC_TRUSTEE_SESSION)),
    ("BitcoinBinding", (ACCOUNT, option(ACCOUNT), BTC_ADDRESS, option(ACCOUNT))),
    ("EthereumBinding", (ACCOUNT, option(ACCOUNT), ETH_ADDRESS, option(ACCOUNT))),
])
_register(13, "XMultisig", [
    ("DeployMultiSig", (ACCOUNT, ACCOUNT, U32, U32)),
    ("ExecMultiSig", (ACCOUNT, ACCOUNT, HASH, CALL)),
    ("Confirm", (ACCOUNT, HASH, U32, U64)),
    ("RemoveMultiSigIdFor", (ACCOUNT, HASH)),
])
_register(14, "XFisher", [
    ("SlashDoubleSigner", (U64, U64, U64, ACCOUNT, U64)),
])
_register(15, "XBridgeCommon", [
    ("ChannelBinding", (TEXT, ACCOUNT, ACCOUNT)),
])
_register(16, "XBitcoinLockup", [
    ("Lock", (ACCOUNT, U64, HASH, U32, BYTES)),
    ("Unlock", (HASH, U32, HASH, U32)),
    ("UnlockedFromRoot", (HASH, U32)),
])

# Runtime calls, indexed by their position in the runtime's Call enum. Modules
# without dispatchable calls (Indices, Timestamp, Session, FinalityTracker,
# Grandpa, XSystem, XFeeManager, XBridgeOfSDOT, XFisher) are left out.
_register_call(2, "Consensus", [
    ("report_misbehavior", (BYTES,)),
    ("note_offline", ()),
    ("remark", (BYTES,)),
    ("set_heap_pages", (U64,)),
    ("set_code", (BYTES,)),
    ("set_max_extrinsics_count", (U32,)),
    ("set_storage", (vec(pair(BYTES, BYTES)),)),
    ("kill_storage", (vec(BYTES),)),
])
_register_call(8, "XAssets", [
    ("register_asset", (ASSET, BOOL, BOOL)),
    ("revoke_asset", (TEXT,)),
    ("set_balance", (INDICES_ADDRESS, TEXT, btree_map(ASSET_TYPE, U64))),
    ("transfer", (INDICES_ADDRESS, TEXT, U64, TEXT)),
    ("modify_asset_info", (TEXT, option(TEXT), option(TEXT))),
    ("set_asset_limit_props", (TEXT, btree_map(ASSET_LIMIT, BOOL))),
    ("modify_asset_limit", (TEXT, ASSET_LIMIT, BOOL)),
    ("force_transfer", (ACCOUNT, ACCOUNT, TEXT, U64, TEXT)),
])
_register_call(9, "XAssetsRecords", [
    ("deposit_from_root", (ACCOUNT, TEXT, U64)),
    ("withdrawal_from_root", (ACCOUNT, TEXT, U64)),
    ("fix_withdrawal_state", (U32, APPLICATION_STATE)),
    ("fix_withdrawal_state_list", (vec(pair(U32, APPLICATION_STATE)),)),
])
_register_call(10, "XAssetsProcess", [
    ("withdraw", (TEXT, U64, BYTES, TEXT)),
    ("revoke_withdraw", (U32,)),
    ("modify_token_black_list", (TEXT,)),
])
_register_call(11, "XStaking", [
    ("nominate", (INDICES_ADDRESS, U64, TEXT)),
    ("renominate", (INDICES_ADDRESS, INDICES_ADDRESS, U64, TEXT)),
    ("unnominate", (INDICES_ADDRESS, U64, TEXT)),
    ("claim", (INDICES_ADDRESS,)),
    ("unfreeze", (INDICES_ADDRESS, U32)),
    ("refresh", (option(BYTES), option(BOOL), option(HASH), option(BYTES))),
    ("register", (TEXT,)),
    ("set_sessions_per_era", (COMPACT,)),
    ("set_bonding_duration", (COMPACT,)),
    ("set_validator_count", (COMPACT,)),
    ("set_missed_blocks_severity", (COMPACT,)),
    ("set_maximum_intention_count", (COMPACT,)),
    ("set_minimum_penalty", (U64,)),
    ("set_distribution_ratio", (pair(U32, U32),)),
    ("set_minimum_candidate_threshold", (pair(U64, U64),)),
    ("set_upper_bond_factor", (U32,)),
    ("set_nomination_record", (
        ACCOUNT, ACCOUNT, option(U64), option(U64), option(U64), option(pair(vec(U64), vec(U64))),
    )),
    ("set_intention_profs", (ACCOUNT, option(U64), option(U64), option(U64))),
    ("set_nomination_record_v1", (
        ACCOUNT, ACCOUNT, option(U64), option(U128), option(U64), option(pair(vec(U64), vec(U64))),
    )),
    ("set_intention_profs_v1", (ACCOUNT, option(U64), option(U128), option(U64))),
    ("remove_zombie_intentions", (vec(ACCOUNT),)),
    ("set_global_distribution_ratio", (struct(U32, U32, U32),)),
])
_register_call(12, "XTokens", [
    ("claim", (TEXT,)),
    ("set_token_discount", (TEXT, U32)),
    ("set_deposit_reward", (U64,)),
    ("set_claim_restriction", (TEXT, pair(U32, U64))),
    ("set_deposit_record", (ACCOUNT, TEXT, option(U64), option(U64))),
    ("set_deposit_record_v1", (ACCOUNT, TEXT, option(U128), option(U64))),
    ("set_psedu_intention_profs", (TEXT, option(U64), option(U64))),
    ("set_psedu_intention_profs_v1", (TEXT, option(U128), option(U64))),
    ("set_airdrop_distribution_ratio", (TEXT, U32)),
    ("remove_airdrop_asset", (TEXT,)),
    ("set_fixed_cross_chain_asset_power_map", (TEXT, U32)),
    ("remove_cross_chain_asset", (TEXT,)),
])
_register_call(13, "XSpot", [
    ("put_order", (U32, ORDER_TYPE, SIDE, U64, U64)),
    ("cancel_order", (U32, U64)),
    ("set_cancel_order", (ACCOUNT, U32, U64)),
    ("set_handicap", (U32, U64, U64)),
    ("refund_locked", (ACCOUNT, TEXT)),
])
_register_call(14, "XBridgeOfBTC", [
    ("push_header", (BYTES,)),
    ("push_transaction", (BYTES,)),
    ("create_withdraw_tx", (vec(U32), BYTES)),
    ("sign_withdraw_tx", (option(BYTES),)),
    ("fix_withdrawal_state_by_trustees", (U32, APPLICATION_STATE)),
    ("set_btc_withdrawal_fee_by_trustees", (U64,)),
    ("remove_tx_and_proposal", (option(HASH), BOOL)),
    ("set_btc_withdrawal_fee", (U64,)),
    ("set_btc_deposit_limit", (U64,)),
    ("set_btc_deposit_limit_by_trustees", (U64,)),
    ("remove_pending", (BTC_ADDRESS, option(ACCOUNT))),
    ("remove_pending_by_trustees", (BTC_ADDRESS, option(ACCOUNT))),
    ("set_best_index", (HASH,)),
    ("set_header_confirmed_state", (HASH, BOOL)),
    ("handle_transaction", (HASH,)),
    ("set_tx_mark", (vec(pair(HASH, BOOL)),)),
])
_register_call(16, "XBridgeFeatures", [
    ("setup_bitcoin_trustee", (BYTES, fixed(33), fixed(33))),
    ("transition_trustee_session", (CHAIN, vec(ACCOUNT))),
    ("transition_trustee_session_by_root", (CHAIN, vec(ACCOUNT))),
    ("set_trustee_info_config", (CHAIN, pair(U32, U32))),
])
_register_call(17, "XMultiSig", [
    ("execute", (ACCOUNT, CALL)),
    ("confirm", (ACCOUNT, HASH)),
    ("remove_multi_sig_for", (ACCOUNT, HASH)),
    ("transition", (vec(pair(ACCOUNT, BOOL)), U32)),
])
_register_call(19, "XBridgeOfBTCLockup", [
    ("push_transaction", (BYTES,)),
    ("release_lock", (vec(pair(HASH, U32)),)),
    ("set_locked_coin_limit", (pair(U64, U64),)),
    ("create_lock", (BYTES,)),
])


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _decode_event(reader: ScaleReader) -> ChainEvent:
    module_index = reader.u8()
    variant_index = reader.u8()
    entry = EVENT_TABLE.get((module_index, variant_index))
    if entry is None:
        raise DecodeError(f"unknown event discriminant ({module_index}, {variant_index})")
    module, name, fields = entry
    return ChainEvent(module=module, variant=name, args=tuple(codec(reader) for codec in fields))


def _decode_record(reader: ScaleReader) -> EventRecord:
    phase = reader.u8()
    if phase == 0:
        extrinsic_index: Optional[int] = reader.u32()
    elif phase == 1:
        extrinsic_index = None
    else:
        raise DecodeError(f"invalid event phase {phase}")
    event = _decode_event(reader)
    topics = tuple(reader.vec(ScaleReader.hash))
    return EventRecord(extrinsic_index=extrinsic_index, event=event, topics=topics)


def decode_events(raw: bytes) -> list[EventRecord]:
    """Decode a full ``Vec<EventRecord>``; any leftover byte is an error."""
    reader = ScaleReader(raw)
    records = reader.vec(_decode_record)
    reader.finish()
    return records


def new_accounts(records: list[EventRecord]) -> list[str]:
    """Accounts created by ``XAssets.NewAccount`` events, in event order."""
    return [
        r.event.args[0]
        for r in records
        if r.event.module == "XAssets" and r.event.variant == "NewAccount"
    ]


__all__ = [
    "CALL_TABLE",
    "ChainCall",
    "ChainEvent",
    "EVENT_TABLE",
    "EventRecord",
    "decode_events",
    "new_accounts",
]
