"""Tests for the System Events decoder."""

import pytest

from chainx_exporter.chain.events import decode_events, new_accounts
from chainx_exporter.chain.scale import ScaleReader
from chainx_exporter.exporter.errors import DecodeError

ALICE = "0x" + "11" * 32
BOB = "0x" + "22" * 32


def _record(event: bytes, extrinsic: int | None = 0) -> bytes:
    phase = b"\x01" if extrinsic is None else b"\x00" + extrinsic.to_bytes(4, "little")
    return phase + event + b"\x00"


def _vec(items: list[bytes]) -> bytes:
    return bytes([len(items) << 2]) + b"".join(items)


SUCCESS = bytes([0, 0])
NEW_ALICE = bytes([5, 6]) + bytes.fromhex(ALICE[2:])
MOVE = (
    bytes([5, 0])
    + bytes([3 << 2]) + b"PCX"
    + bytes.fromhex(ALICE[2:]) + b"\x00"
    + bytes.fromhex(BOB[2:]) + b"\x01"
    + (250).to_bytes(8, "little")
)


class TestScaleReader:

    def test_compact_modes(self):
        assert ScaleReader(b"\xfc").compact() == 63
        assert ScaleReader(b"\x15\x01").compact() == 69
        assert ScaleReader(b"\x02\x00\x01\x00").compact() == 16384
        assert ScaleReader(b"\x03\x00\x00\x00\x40").compact() == 1 << 30

    def test_short_input(self):
        with pytest.raises(DecodeError):
            ScaleReader(b"\x01\x02").u32()

    def test_invalid_option_tag(self):
        with pytest.raises(DecodeError):
            ScaleReader(b"\x02").option(ScaleReader.u8)


class TestDecodeEvents:

    def test_mixed_block(self):
        records = decode_events(_vec([
            _record(SUCCESS, 0),
            _record(MOVE, 1),
            _record(NEW_ALICE, None),
        ]))

        assert [(r.event.module, r.event.variant) for r in records] == [
            ("System", "ExtrinsicSuccess"),
            ("XAssets", "Move"),
            ("XAssets", "NewAccount"),
        ]
        assert records[1].extrinsic_index == 1
        assert records[1].event.args == ("PCX", ALICE, "Free", BOB, "ReservedStaking", 250)
        assert records[2].extrinsic_index is None

    def test_empty_block(self):
        assert decode_events(b"\x00") == []

    def test_unknown_discriminant_fails(self):
        with pytest.raises(DecodeError, match="unknown event"):
            decode_events(_vec([_record(bytes([200, 0]))]))

    def test_bitcoin_binding_keeps_new_account(self):
        binding = (
            bytes([12, 2]) + bytes.fromhex(ALICE[2:]) + b"\x00"
            + b"\x00\x00" + b"\x33" * 20
            + b"\x00"
        )
        records = decode_events(_vec([_record(NEW_ALICE), _record(binding)]))

        assert new_accounts(records) == [ALICE]
        assert records[1].event.variant == "BitcoinBinding"
        assert records[1].event.args == (ALICE, None, ("P2PKH", "Mainnet", "0x" + "33" * 20), None)

    def test_trustee_props(self):
        props = (
            bytes([12, 0]) + bytes.fromhex(ALICE[2:])
            + bytes([2 << 2]) + b"hi"
            + b"\x01" + b"\x02" * 33
            + b"\x00" + b"\x04" * 65
        )
        (record,) = decode_events(_vec([_record(props)]))
        about, hot, cold = record.event.args[1]
        assert about == "0x6869"
        assert hot == ("Compressed", "0x" + "02" * 33)
        assert cold == ("Normal", "0x" + "04" * 65)

    def test_multisig_execution_decodes_nested_call(self):
        nominate = bytes([11, 0]) + b"\xff" + bytes.fromhex(BOB[2:]) + (5).to_bytes(8, "little") + b"\x00"
        execute = bytes([17, 0]) + bytes.fromhex(ALICE[2:]) + nominate
        event = bytes([13, 1]) + bytes.fromhex(ALICE[2:]) + bytes.fromhex(BOB[2:]) + b"\x77" * 32 + execute

        (record,) = decode_events(_vec([_record(event)]))
        call = record.event.args[3]
        assert (call.module, call.function) == ("XMultiSig", "execute")
        inner = call.args[1]
        assert (inner.module, inner.function) == ("XStaking", "nominate")
        assert inner.args == (BOB, 5, "")

    def test_unknown_call_fails(self):
        event = bytes([13, 1]) + bytes.fromhex(ALICE[2:]) * 2 + b"\x77" * 32 + bytes([0, 0])
        with pytest.raises(DecodeError, match="unknown call"):
            decode_events(_vec([_record(event)]))

    def test_trailing_bytes_fail(self):
        with pytest.raises(DecodeError, match="trailing"):
            decode_events(_vec([_record(SUCCESS)]) + b"\x00")

    def test_truncated_payload_fails(self):
        with pytest.raises(DecodeError):
            decode_events(_vec([_record(NEW_ALICE)])[:-10])


class TestNewAccounts:

    def test_only_new_account_events(self):
        records = decode_events(_vec([
            _record(MOVE, 0),
            _record(NEW_ALICE, 0),
            _record(bytes([5, 6]) + bytes.fromhex(BOB[2:]), 1),
        ]))
        assert new_accounts(records) == [ALICE, BOB]
