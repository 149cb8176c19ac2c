"""ChainX ledger access: JSON-RPC client, response models and event decoding."""

from .events import ChainEvent, EventRecord, decode_events, new_accounts
from .interface import LedgerClient
from .rpc import LedgerRpcClient

__all__ = [
    "ChainEvent",
    "EventRecord",
    "LedgerClient",
    "LedgerRpcClient",
    "decode_events",
    "new_accounts",
]
