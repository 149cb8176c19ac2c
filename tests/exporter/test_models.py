"""Tests for record models and their JSON form."""

import pytest
from pydantic import ValidationError

from chainx_exporter.chain.types import AssetInfo, AssetType, IntentionInfo
from chainx_exporter.exporter.models import (
    AccountAssets,
    AccountVoteWeight,
    Checkpoint,
    NewAccount,
    NodeVoteWeight,
)

ACCOUNT = "0x" + "AB" * 32


class TestAccountIds:

    def test_normalized_to_lowercase(self):
        assert NewAccount(height=1, account=ACCOUNT).account == ACCOUNT.lower()

    def test_prefix_added(self):
        assert NewAccount(height=1, account="cd" * 32).account == "0x" + "cd" * 32

    @pytest.mark.parametrize("bad", ["0x1234", "0x" + "zz" * 32, ""])
    def test_rejects_bad_ids(self, bad):
        with pytest.raises(ValidationError):
            NewAccount(height=1, account=bad)


class TestWeightSerialization:

    def test_weights_dump_as_decimal_strings(self):
        record = AccountVoteWeight(
            account=ACCOUNT,
            nodes=[NodeVoteWeight(account=ACCOUNT, nomination=1, weight=2**100)],
        )
        dumped = record.model_dump(mode="json")
        assert dumped["nodes"][0]["weight"] == str(2**100)
        assert dumped["nodes"][0]["nomination"] == 1
        assert AccountVoteWeight.model_validate(dumped) == record

    def test_python_dump_keeps_ints(self):
        assert Checkpoint(weight="5", height=1).model_dump() == {"weight": 5, "height": 1}

    def test_float_weight_rejected(self):
        with pytest.raises(ValidationError):
            Checkpoint(weight=1.0, height=1)

    def test_field_order_preserved(self):
        dumped = NewAccount(height=3, account=ACCOUNT).model_dump(mode="json")
        assert list(dumped) == ["height", "account"]


class TestRpcModels:

    def test_intention_from_camel_case(self):
        info = IntentionInfo.model_validate({
            "account": ACCOUNT,
            "name": "node",
            "isValidator": True,
            "totalNomination": 10,
            "lastTotalVoteWeight": "123456789012345678901234567890",
            "lastTotalVoteWeightUpdate": 77,
            "isTrustee": ["Bitcoin"],
        })
        assert info.is_validator is True
        assert info.last_total_vote_weight == 123456789012345678901234567890

    def test_legacy_integer_weight_accepted(self):
        info = IntentionInfo.model_validate({
            "account": ACCOUNT,
            "totalNomination": 10,
            "lastTotalVoteWeight": 99,
            "lastTotalVoteWeightUpdate": 1,
        })
        assert info.last_total_vote_weight == 99

    def test_asset_details_keyed_by_asset_type(self):
        record = AccountAssets(account=ACCOUNT, assets=[AssetInfo(name="PCX", details={"ReservedStaking": 4})])
        assert record.assets[0].details == {AssetType.RESERVED_STAKING: 4}
        assert record.model_dump(mode="json")["assets"][0]["details"] == {"ReservedStaking": 4}
