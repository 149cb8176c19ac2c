"""Tests for totals folding and verification."""

import pytest

from chainx_exporter.chain.types import AssetInfo, TotalAssetInfo
from chainx_exporter.exporter.errors import InvariantViolation
from chainx_exporter.exporter.models import (
    AccountAssets,
    AccountDepositWeight,
    AccountVoteWeight,
    DepositWeight,
    NodeVoteWeight,
    TotalDepositWeight,
)
from chainx_exporter.exporter.verifier import (
    Verifier,
    account_asset_labels,
    account_vote_labels,
    compare_totals,
    deposit_labels,
    fold_totals,
    node_vote_labels,
    total_asset_labels,
)


def _account(n: int) -> str:
    return "0x" + f"{n:064x}"


NODE = _account(0x100)


def _assets(free_a: int) -> list[AccountAssets]:
    return [
        AccountAssets(account=_account(1), assets=[AssetInfo(name="PCX", details={"Free": free_a})]),
        AccountAssets(account=_account(2), assets=[AssetInfo(name="PCX", details={"Free": 5, "ReservedStaking": 2})]),
    ]


TOTALS = [TotalAssetInfo(name="PCX", details={"Free": 15, "ReservedStaking": 2})]


class TestFoldAndCompare:

    def test_account_balances_match_global_total(self):
        expected = fold_totals(TOTALS, total_asset_labels)
        actual = fold_totals(_assets(10), account_asset_labels)
        result = compare_totals("assets", expected, actual)
        assert result
        assert result.checked == 2

    def test_corrupted_balance_reports_mismatch(self):
        expected = fold_totals(TOTALS, total_asset_labels)
        actual = fold_totals(_assets(11), account_asset_labels)
        result = compare_totals("assets", expected, actual)
        assert not result
        assert [(m.label, m.difference) for m in result.mismatches] == [("PCX/Free", 1)]

    def test_missing_label_counts_as_zero(self):
        result = compare_totals("x", {"a": 0, "b": 3}, {"c": 0})
        assert [(m.label, m.expected, m.actual) for m in result.mismatches] == [("b", 3, 0)]

    def test_fold_is_fresh_per_call(self):
        first = fold_totals(_assets(10), account_asset_labels)
        second = fold_totals(_assets(10), account_asset_labels)
        assert first == second
        assert first is not second

    def test_vote_labels(self):
        node = NodeVoteWeight(account=NODE, nomination=15, weight=170)
        records = [
            AccountVoteWeight(account=_account(1), nodes=[NodeVoteWeight(account=NODE, nomination=10, weight=140)]),
            AccountVoteWeight(account=_account(2), nodes=[NodeVoteWeight(account=NODE, nomination=5, weight=30)]),
        ]
        assert fold_totals(records, account_vote_labels) == fold_totals([node], node_vote_labels)

    def test_deposit_labels(self):
        pools = TotalDepositWeight(xbtc=DepositWeight(balance=3, weight=15))
        record = AccountDepositWeight(account=_account(1), xbtc=DepositWeight(balance=3, weight=15))
        assert fold_totals([pools], deposit_labels) == fold_totals([record], deposit_labels)
        assert fold_totals([record], deposit_labels)["weight:BTC"] == 15


class TestVerifier:

    def test_raises_with_all_mismatches(self):
        with pytest.raises(InvariantViolation) as exc:
            Verifier().verify("assets", {"a": 1, "b": 2}, {"a": 2, "b": 1})
        assert [m.label for m in exc.value.details] == ["a", "b"]

    def test_passes(self):
        result = Verifier().verify("assets", {"a": 1}, {"a": 1})
        assert result.valid
