import io
import struct

import pytest

from ntfs_forensic.cursor import ByteCursor, read_exact, unpack_at
from ntfs_forensic.errors import DecodeError, ShortRead


def test_sequential_reads():
    data = struct.pack("<BHIQq", 7, 0x1234, 0xDEADBEEF, 2**40, -2)
    c = ByteCursor(data)
    assert c.u8() == 7
    assert c.u16() == 0x1234
    assert c.u32() == 0xDEADBEEF
    assert c.u64() == 2**40
    assert c.i64() == -2
    assert c.remaining() == 0


def test_read_past_end_raises_short_read():
    c = ByteCursor(b"\x01\x02\x03")
    c.u16()
    with pytest.raises(ShortRead) as exc:
        c.u16()
    assert exc.value.offset == 2
    # position unchanged after a failed read
    assert c.tell() == 2


def test_short_read_is_a_decode_error():
    with pytest.raises(DecodeError):
        ByteCursor(b"").u8()


def test_seek_and_skip():
    c = ByteCursor(bytes(range(16)))
    assert c.seek(4).u8() == 4
    assert c.skip(3).u8() == 8
    with pytest.raises(ShortRead):
        c.seek(17)
    with pytest.raises(ShortRead):
        c.skip(-20)


def test_read_and_peek():
    c = ByteCursor(b"FILE0123", 0)
    assert c.peek(4) == b"FILE"
    assert c.read(4) == b"FILE"
    assert c.read(4) == b"0123"
    with pytest.raises(ShortRead):
        c.read(1)


def test_unpack_at_bounds():
    data = b"\x00" * 6
    assert unpack_at("<HI", data, 0) == (0, 0)
    with pytest.raises(ShortRead):
        unpack_at("<I", data, 4)
    with pytest.raises(ShortRead):
        unpack_at("<I", data, -1)


class TrickleStream(io.RawIOBase):
    """Returns at most 3 bytes per read call."""

    def __init__(self, data):
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def read(self, n=-1):
        return self._data.read(min(n, 3))


def test_read_exact_collects_partial_reads():
    assert read_exact(TrickleStream(b"abcdefgh"), 7) == b"abcdefg"
    assert read_exact(TrickleStream(b"abc"), 10) == b"abc"
