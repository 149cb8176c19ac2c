"""Shared fixtures: an in-memory ledger with a small, self-consistent chain state.

Export height 9. Accounts A..D are created by ``XAssets.NewAccount`` events;
A shows up again at height 8 and must keep its first height (2).

Vote weight at 9:  A->N1 100+10*4=140, B->N1 20+5*2=30, C->N2 0+7*6=42
                   N1 110+15*4=170,     N2 0+7*6=42
Deposit at 9:      A BTC 3 (0+3*5=15),  D SDOT 2 (10+2*1=12)
Assets:            PCX Free 150 / ReservedStaking 22, BTC Free 3
"""

import tempfile

import pytest

from chainx_exporter.chain.types import (
    AssetInfo,
    IntentionInfo,
    NominationRecord,
    PseduIntentionInfo,
    PseduNominationRecord,
    TotalAssetInfo,
)
from chainx_exporter.exporter.errors import TransientFetchError
from chainx_exporter.exporter.store.filesystem import FilesystemStore

TIP = 9


def acct(n: int) -> str:
    return "0x" + f"{n:064x}"


A, B, C, D = acct(0xA), acct(0xB), acct(0xC), acct(0xD)
N1, N2 = acct(0x101), acct(0x102)


def encode_new_accounts(accounts: list[str]) -> bytes:
    """SCALE ``Vec<EventRecord>`` holding one XAssets.NewAccount per account."""
    out = bytearray([len(accounts) << 2])
    for i, account in enumerate(accounts):
        out += b"\x00" + i.to_bytes(4, "little")  # ApplyExtrinsic(i)
        out += bytes([5, 6]) + bytes.fromhex(account[2:])
        out += b"\x00"  # no topics
    return bytes(out)


def block_hash(height: int) -> str:
    return "0x" + f"{height:064x}"


class FakeLedgerClient:
    """In-memory LedgerClient; ``failures`` maps a key (height or account) to the error it raises."""

    def __init__(self):
        self.tip = TIP
        self.events: dict[int, bytes] = {
            2: encode_new_accounts([A]),
            5: encode_new_accounts([C, B]),
            7: encode_new_accounts([D]),
            8: encode_new_accounts([A]),
        }
        self.nominations = {
            A: [(N1, NominationRecord(nomination=10, last_vote_weight="100", last_vote_weight_update=5))],
            B: [(N1, NominationRecord(nomination=5, last_vote_weight="20", last_vote_weight_update=7))],
            C: [(N2, NominationRecord(nomination=7, last_vote_weight="0", last_vote_weight_update=3))],
        }
        self.deposits = {
            A: [PseduNominationRecord(id="BTC", balance=3, last_total_deposit_weight="0", last_total_deposit_weight_update=4)],
            D: [PseduNominationRecord(id="SDOT", balance=2, last_total_deposit_weight="10", last_total_deposit_weight_update=8)],
        }
        self.account_asset_map = {
            A: [AssetInfo(name="PCX", details={"Free": 100, "ReservedStaking": 10})],
            B: [AssetInfo(name="PCX", details={"Free": 50, "ReservedStaking": 5})],
            C: [AssetInfo(name="PCX", details={"ReservedStaking": 7})],
            D: [AssetInfo(name="BTC", details={"Free": 3})],
        }
        self.intention_list = [
            IntentionInfo(account=N2, total_nomination=7, last_total_vote_weight="0", last_total_vote_weight_update=3),
            IntentionInfo(account=N1, total_nomination=15, last_total_vote_weight="110", last_total_vote_weight_update=5),
        ]
        self.pools = [
            PseduIntentionInfo(id="BTC", circulation=3, last_total_deposit_weight="0", last_total_deposit_weight_update=4),
            PseduIntentionInfo(id="L-BTC", circulation=0, last_total_deposit_weight="0", last_total_deposit_weight_update=0),
            PseduIntentionInfo(id="SDOT", circulation=2, last_total_deposit_weight="10", last_total_deposit_weight_update=8),
        ]
        self.asset_totals = [
            TotalAssetInfo(name="PCX", details={"Free": 150, "ReservedStaking": 22}),
            TotalAssetInfo(name="BTC", chain="Bitcoin", details={"Free": 3}),
        ]
        self.session = 42
        self.failures: dict = {}
        self.calls: list[tuple[str, object]] = []

    def _touch(self, method: str, key: object) -> None:
        self.calls.append((method, key))
        error = self.failures.get(key)
        if error is not None:
            raise error

    async def block_hash(self, height):
        self._touch("block_hash", height)
        return block_hash(height) if 0 <= height <= self.tip else None

    async def storage(self, key, block_hash):
        return None

    async def system_events(self, hash_):
        return self.events.get(int(hash_, 16))

    async def session_index(self, block_hash):
        return self.session

    async def intentions(self, block_hash):
        return list(self.intention_list)

    async def psedu_intentions(self, block_hash):
        return list(self.pools)

    async def nomination_records(self, account, block_hash):
        self._touch("nomination_records", account)
        return self.nominations.get(account)

    async def _many(self, fetch, accounts, block_hash):
        results = []
        for account in accounts:
            try:
                results.append(await fetch(account, block_hash))
            except TransientFetchError as e:
                results.append(e)
        return results

    async def nomination_records_many(self, accounts, block_hash):
        return await self._many(self.nomination_records, accounts, block_hash)

    async def psedu_nomination_records(self, account, block_hash):
        self._touch("psedu_nomination_records", account)
        return self.deposits.get(account)

    async def psedu_nomination_records_many(self, accounts, block_hash):
        return await self._many(self.psedu_nomination_records, accounts, block_hash)

    async def account_assets(self, account, block_hash):
        self._touch("account_assets", account)
        return self.account_asset_map.get(account)

    async def account_assets_many(self, accounts, block_hash):
        return await self._many(self.account_assets, accounts, block_hash)

    async def assets(self, block_hash):
        return list(self.asset_totals)

    async def close(self):
        pass


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def store(tmp_dir):
    return FilesystemStore(data_dir=tmp_dir)


@pytest.fixture
def ledger():
    return FakeLedgerClient()
