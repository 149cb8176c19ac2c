"""Minimal SCALE byte reader.

Covers what the event decoder needs: fixed-width little-endian integers,
compact integers, booleans, options, vectors, length-prefixed byte strings
and 32-byte ids.
"""

from __future__ import annotations

from typing import Callable, Sequence, TypeVar

from chainx_exporter.exporter.errors import DecodeError

T = TypeVar("T")


class ScaleReader:
    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, n: int) -> bytes:
        if n < 0 or self._pos + n > len(self._data):
            raise DecodeError(
                f"unexpected end of input: need {n} bytes at offset {self._pos}, "
                f"have {self.remaining}"
            )
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def _uint(self, width: int) -> int:
        return int.from_bytes(self.read(width), "little")

    def u8(self) -> int:
        return self._uint(1)

    def u16(self) -> int:
        return self._uint(2)

    def u32(self) -> int:
        return self._uint(4)

    def u64(self) -> int:
        return self._uint(8)

    def u128(self) -> int:
        return self._uint(16)

    def bool(self) -> bool:
        value = self.u8()
        if value > 1:
            raise DecodeError(f"invalid bool byte {value}")
        return value == 1

    def compact(self) -> int:
        first = self.u8()
        mode = first & 0b11
        if mode == 0:
            return first >> 2
        if mode == 1:
            return (first | self.u8() << 8) >> 2
        if mode == 2:
            rest = int.from_bytes(self.read(3), "little")
            return (first | rest << 8) >> 2
        # big-integer mode: upper six bits hold the byte length minus four
        return int.from_bytes(self.read((first >> 2) + 4), "little")

    def bytes(self) -> bytes:
        return self.read(self.compact())

    def hash(self) -> str:
        return "0x" + self.read(32).hex()

    # AccountId and H256 share the 32-byte layout.
    account = hash

    def option(self, item: Callable[[ScaleReader], T]) -> T | None:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return item(self)
        raise DecodeError(f"invalid option tag {tag}")

    def vec(self, item: Callable[[ScaleReader], T]) -> list[T]:
        return [item(self) for _ in range(self.compact())]

    def variant(self, names: Sequence[str]) -> str:
        """Read a data-less enum and return its variant name."""
        index = self.u8()
        if index >= len(names):
            raise DecodeError(f"enum index {index} out of range ({len(names)} variants)")
        return names[index]

    def finish(self) -> None:
        if self.remaining:
            raise DecodeError(f"{self.remaining} trailing bytes after decode")


__all__ = ["ScaleReader"]
