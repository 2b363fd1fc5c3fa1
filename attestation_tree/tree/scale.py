from __future__ import annotations

MAX_U8 = (1 << 8) - 1
MAX_U128 = (1 << 128) - 1
MAX_U256 = (1 << 256) - 1

_SINGLE_BYTE_LIMIT = 1 << 6
_TWO_BYTE_LIMIT = 1 << 14
_FOUR_BYTE_LIMIT = 1 << 30
_BIG_INT_MAX_BYTES = 4 + 63


class ScaleDecodeError(ValueError):
    pass


class ScaleTruncatedError(ScaleDecodeError):
    pass


def encode_compact(value: int) -> bytes:
    if value < 0:
        raise ValueError("compact integers must be non-negative")
    if value < _SINGLE_BYTE_LIMIT:
        return bytes([value << 2])
    if value < _TWO_BYTE_LIMIT:
        return ((value << 2) | 0b01).to_bytes(2, "little")
    if value < _FOUR_BYTE_LIMIT:
        return ((value << 2) | 0b10).to_bytes(4, "little")
    length = max(4, (value.bit_length() + 7) // 8)
    if length > _BIG_INT_MAX_BYTES:
        raise ValueError("integer too large for compact encoding")
    return bytes([((length - 4) << 2) | 0b11]) + value.to_bytes(length, "little")


def encode_bytes(value: bytes) -> bytes:
    return encode_compact(len(value)) + bytes(value)


def encode_u8(value: int) -> bytes:
    return value.to_bytes(1, "little")


def encode_u128(value: int) -> bytes:
    return value.to_bytes(16, "little")


def encode_u256(value: int) -> bytes:
    return value.to_bytes(32, "little")


class ScaleReader:
    """Cursor over SCALE-encoded bytes.

    Every read either consumes exactly the bytes it needs or raises; callers
    check ``is_exhausted`` to reject trailing input.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0

    def read(self, length: int) -> bytes:
        if length < 0:
            raise ScaleDecodeError("negative read length")
        if length > self.remaining:
            raise ScaleTruncatedError(f"needed {length} bytes, {self.remaining} remaining")
        chunk = self._data[self._offset : self._offset + length]
        self._offset += length
        return chunk

    def read_fixed(self, length: int) -> bytes:
        return self.read(length)

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u128(self) -> int:
        return int.from_bytes(self.read(16), "little")

    def read_u256(self) -> int:
        return int.from_bytes(self.read(32), "little")

    def read_compact(self) -> int:
        first = self.read_u8()
        mode = first & 0b11
        if mode == 0b00:
            return first >> 2
        if mode == 0b01:
            value = int.from_bytes(bytes([first]) + self.read(1), "little") >> 2
            if value < _SINGLE_BYTE_LIMIT:
                raise ScaleDecodeError("non-canonical compact integer")
            return value
        if mode == 0b10:
            value = int.from_bytes(bytes([first]) + self.read(3), "little") >> 2
            if value < _TWO_BYTE_LIMIT:
                raise ScaleDecodeError("non-canonical compact integer")
            return value
        length = (first >> 2) + 4
        raw = self.read(length)
        if raw[-1] == 0:
            raise ScaleDecodeError("non-canonical compact integer")
        value = int.from_bytes(raw, "little")
        if value < _FOUR_BYTE_LIMIT:
            raise ScaleDecodeError("non-canonical compact integer")
        return value

    def read_bytes(self) -> bytes:
        length = self.read_compact()
        return self.read(length)

    def read_vec(self, read_item) -> list:
        count = self.read_compact()
        return [read_item(self) for _ in range(count)]
