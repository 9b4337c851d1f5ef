"""
Bounds-checked little-endian reader used by all decoders.
"""

import struct
from typing import BinaryIO

from .errors import ShortRead

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")


class ByteCursor:
    """
    Sequential reader over an immutable byte buffer.
    Every read checks the remaining length and raises ShortRead rather than
    letting struct.error or IndexError escape.
    """

    __slots__ = ("data", "pos")

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.pos = offset

    def __len__(self) -> int:
        return len(self.data)

    def tell(self) -> int:
        return self.pos

    def seek(self, offset: int) -> "ByteCursor":
        if offset < 0 or offset > len(self.data):
            raise ShortRead(f"Seek outside buffer of {len(self.data)} bytes", offset)
        self.pos = offset
        return self

    def skip(self, count: int) -> "ByteCursor":
        return self.seek(self.pos + count)

    def remaining(self) -> int:
        return max(0, len(self.data) - self.pos)

    def _unpack(self, fmt: struct.Struct) -> int:
        if self.pos + fmt.size > len(self.data):
            raise ShortRead(f"Need {fmt.size} bytes, {self.remaining()} left", self.pos)
        value = fmt.unpack_from(self.data, self.pos)[0]
        self.pos += fmt.size
        return value

    def u8(self) -> int:
        return self._unpack(_U8)

    def u16(self) -> int:
        return self._unpack(_U16)

    def u32(self) -> int:
        return self._unpack(_U32)

    def u64(self) -> int:
        return self._unpack(_U64)

    def i64(self) -> int:
        return self._unpack(_I64)

    def read(self, count: int) -> bytes:
        if count < 0 or self.pos + count > len(self.data):
            raise ShortRead(f"Need {count} bytes, {self.remaining()} left", self.pos)
        chunk = bytes(self.data[self.pos : self.pos + count])
        self.pos += count
        return chunk

    def peek(self, count: int) -> bytes:
        """Return up to count bytes without advancing."""
        return bytes(self.data[self.pos : self.pos + count])


def unpack_at(fmt: str, data: bytes, offset: int) -> tuple:
    """struct.unpack_from that reports ShortRead instead of struct.error."""
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        raise ShortRead(f"Need {size} bytes at 0x{offset:X}, buffer is {len(data)} bytes", offset)
    return struct.unpack_from(fmt, data, offset)


def read_exact(stream: BinaryIO, count: int) -> bytes:
    """Read count bytes from stream; fewer are returned only at end of stream."""
    chunks = []
    left = count
    while left > 0:
        chunk = stream.read(left)
        if not chunk:
            break
        chunks.append(chunk)
        left -= len(chunk)
    return b"".join(chunks)
