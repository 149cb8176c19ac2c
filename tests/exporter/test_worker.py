"""Tests for shard workers and batch execution."""

import asyncio

import pytest

from conftest import A, B, FakeLedgerClient, block_hash
from chainx_exporter.exporter.errors import DecodeError, LedgerUnavailable, TransientFetchError
from chainx_exporter.exporter.models import Category, KeySlice
from chainx_exporter.exporter.scanners import VoteWeightScanner
from chainx_exporter.exporter.worker import KeyResult, ShardWorker, run_batch


class ListScanner:
    """Scanner over integer keys; ``errors`` maps a key to the exception it raises."""

    category = Category.NEW_ACCOUNTS

    def __init__(self, errors=None):
        self.errors = errors or {}
        self.seen = []

    async def fetch(self, key):
        self.seen.append(key)
        if key in self.errors:
            raise self.errors[key]
        return [f"record-{key}"]


class BatchScanner(ListScanner):

    def __init__(self, errors=None):
        super().__init__(errors)
        self.batches = []

    async def fetch_many(self, keys):
        self.batches.append(list(keys))
        results = []
        for key in keys:
            if key in self.errors:
                results.append(KeyResult.failure(key, str(self.errors[key])))
            else:
                results.append(KeyResult.success(key, [f"record-{key}"]))
        return results


class TestShardWorker:

    @pytest.mark.asyncio
    async def test_one_decode_failure_in_five(self):
        scanner = ListScanner({3: DecodeError("bad bytes")})
        result = await ShardWorker("w0", scanner).run(KeySlice(start=0, end=5))
        assert len(result.records) == 4
        assert [u.key for u in result.unresolved] == [3]
        assert "bad bytes" in result.unresolved[0].reason

    @pytest.mark.asyncio
    async def test_keys_in_ascending_order(self):
        scanner = ListScanner({12: TransientFetchError("timeout")})
        result = await ShardWorker("w0", scanner).run(KeySlice(start=10, end=15))
        assert scanner.seen == [10, 11, 12, 13, 14]
        assert result.records == ["record-10", "record-11", "record-13", "record-14"]

    @pytest.mark.asyncio
    async def test_ledger_unavailable_propagates(self):
        scanner = ListScanner({2: LedgerUnavailable("down")})
        with pytest.raises(LedgerUnavailable):
            await ShardWorker("w0", scanner).run(KeySlice(start=0, end=5))
        assert scanner.seen == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_batched_fetch(self):
        scanner = BatchScanner({4: TransientFetchError("missing")})
        result = await ShardWorker("w0", scanner, batch_size=3).run(KeySlice(start=0, end=7))
        assert scanner.batches == [[0, 1, 2], [3, 4, 5], [6]]
        assert len(result.records) == 6
        assert [u.key for u in result.unresolved] == [4]

    @pytest.mark.asyncio
    async def test_batch_size_one_uses_single_fetch(self):
        scanner = BatchScanner()
        await ShardWorker("w0", scanner).run(KeySlice(start=0, end=3))
        assert scanner.batches == []
        assert scanner.seen == [0, 1, 2]


class TestRunBatch:

    @pytest.mark.asyncio
    async def test_results_in_job_order(self):
        async def job(i):
            await asyncio.sleep(0.01 * (3 - i))
            return i

        assert await run_batch(job(i) for i in range(3)) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def failing():
            await asyncio.sleep(0)
            raise LedgerUnavailable("down")

        with pytest.raises(LedgerUnavailable):
            await run_batch([slow(), failing()])
        assert cancelled.is_set()


class TestAccountFailures:

    @pytest.mark.parametrize("batch_size", [1, 2])
    @pytest.mark.asyncio
    async def test_unresolved_reason_names_the_account(self, batch_size):
        ledger = FakeLedgerClient()
        ledger.failures[B] = TransientFetchError("busy")
        scanner = VoteWeightScanner(ledger, [A, B], block_hash(9), 9)

        result = await ShardWorker("w0", scanner, batch_size=batch_size).run(KeySlice(start=0, end=2))

        assert [r.account for r in result.records] == [A]
        assert [(u.key, u.reason) for u in result.unresolved] == [(1, f"{B}: busy")]
