import io
import struct

import pytest

from ntfs_builders import SAMPLE_TIME, usn_record_v2, usn_record_v3
from ntfs_forensic.errors import (
    InvalidFilename,
    InvalidTimestamp,
    InvalidUsn,
    RecordLengthOverflow,
    TruncatedRecord,
    UnsupportedVersion,
)
from ntfs_forensic.flags import FileAttributeFlags, UsnReasonFlag
from ntfs_forensic.reference import FileReference
from ntfs_forensic.usn import JournalIterator, UsnJournalEntry, decode_record, iter_usn_records


def test_decode_v2_sample(usn_sample):
    record = decode_record(usn_sample)
    assert record.record_length == 96
    assert (record.major_version, record.minor_version) == (2, 0)
    assert record.file_reference == 0x0007000000013A61
    assert record.parent_reference == 0x0002000000013A5E
    assert record.file_ref() == FileReference(0x13A61, 7)
    assert record.parent_ref() == FileReference(0x13A5E, 2)
    assert record.usn == 20342374400
    assert record.reason == UsnReasonFlag.USN_REASON_DATA_EXTEND
    assert record.reason_string() == "DATA_EXTEND"
    assert not record.is_close()
    assert record.file_attributes == 8224
    assert record.file_attributes & FileAttributeFlags.FILE_ATTRIBUTE_ARCHIVE
    assert record.file_name_length == 32
    assert record.file_name_offset == 60
    assert record.file_name == "BTDevManager.log"
    assert record.timestamp == SAMPLE_TIME
    assert record.timestamp.tzinfo is not None


def test_decode_at_offset(usn_sample):
    record = decode_record(b"\x00" * 16 + usn_sample, 16)
    assert record.offset == 16
    assert record.file_name == "BTDevManager.log"


def test_decode_v3():
    file_id = (0xABCD << 64) | 0x0003000000000042
    raw = usn_record_v3("new.txt", file_reference=file_id, parent_reference=0x0005000000000005, usn=4096)
    record = decode_record(raw)
    assert record.major_version == 3
    assert record.file_reference == file_id
    assert record.file_ref() == FileReference(0x42, 3)
    assert record.parent_ref() == FileReference(5, 5)
    assert record.reason == UsnReasonFlag.USN_REASON_FILE_CREATE
    assert record.file_name == "new.txt"


def test_unsupported_version():
    with pytest.raises(UnsupportedVersion):
        decode_record(usn_record_v2("a.txt", major=4))


def test_header_shorter_than_eight_bytes():
    with pytest.raises(TruncatedRecord):
        decode_record(b"\x60\x00\x00\x00\x02")


def test_record_longer_than_buffer(usn_sample):
    with pytest.raises(TruncatedRecord):
        decode_record(usn_sample[:80])


def test_record_length_below_header_size():
    raw = bytearray(usn_record_v2("a.txt"))
    struct.pack_into("<I", raw, 0, 40)
    with pytest.raises(TruncatedRecord):
        decode_record(bytes(raw))


def test_negative_usn():
    with pytest.raises(InvalidUsn):
        decode_record(usn_record_v2("a.txt", usn=-1))


def test_timestamp_out_of_range():
    with pytest.raises(InvalidTimestamp):
        decode_record(usn_record_v2("a.txt", ticks=-(2**62)))


def test_name_outside_record():
    raw = bytearray(usn_record_v2("a.txt"))
    struct.pack_into("<H", raw, 56, 200)
    with pytest.raises(InvalidFilename):
        decode_record(bytes(raw))


def test_name_offset_inside_header():
    raw = bytearray(usn_record_v2("a.txt"))
    struct.pack_into("<H", raw, 58, 40)
    with pytest.raises(InvalidFilename):
        decode_record(bytes(raw))


def _journal(*records: bytes) -> io.BytesIO:
    return io.BytesIO(b"".join(records))


def test_iterator_yields_every_record():
    records = [usn_record_v2(f"file{i}.txt", usn=i * 96) for i in range(5)]
    items = list(JournalIterator(_journal(*records)))
    assert [r.file_name for r in items] == [f"file{i}.txt" for i in range(5)]
    assert items[1].offset == len(records[0])


def test_iterator_skips_zero_padding():
    a = usn_record_v2("a.txt")
    b = usn_record_v2("b.txt")
    stream = _journal(b"\x00" * 4096, a, b"\x00" * 4000, b, b"\x00" * 64)
    items = list(JournalIterator(stream))
    assert [r.file_name for r in items] == ["a.txt", "b.txt"]
    assert items[0].offset == 4096
    assert items[1].offset == 4096 + len(a) + 4000


def test_length_overflow_is_reported_and_walk_resumes():
    a = usn_record_v2("a.txt")
    bogus = struct.pack("<IHH", 0x20000, 2, 0) + bytes(56)
    items = list(JournalIterator(_journal(a, bogus, usn_record_v2("b.txt"), usn_record_v2("c.txt"))))
    assert len(items) == 4
    assert isinstance(items[0], UsnJournalEntry)
    assert isinstance(items[1], RecordLengthOverflow)
    assert items[1].offset == len(a)
    assert [r.file_name for r in items[2:]] == ["b.txt", "c.txt"]


def test_truncated_tail_ends_iteration():
    tail = usn_record_v2("b.txt")[:30]
    items = list(JournalIterator(_journal(usn_record_v2("a.txt"), tail)))
    assert [r.file_name for r in items] == ["a.txt"]


def test_bad_record_is_reported_and_skipped():
    first = usn_record_v2("a.txt")
    bad = usn_record_v2("bad.txt", major=4)
    good = usn_record_v2("good.txt")
    items = list(JournalIterator(_journal(first, bad, good)))
    assert isinstance(items[1], UnsupportedVersion)
    # version field of the second record
    assert items[1].offset == len(first) + 4
    assert items[2].file_name == "good.txt"


def test_reason_filter():
    records = [
        usn_record_v2("created.txt", reason=UsnReasonFlag.USN_REASON_FILE_CREATE),
        usn_record_v2("grown.txt", reason=UsnReasonFlag.USN_REASON_DATA_EXTEND),
        usn_record_v2(
            "closed.txt", reason=UsnReasonFlag.USN_REASON_FILE_CREATE | UsnReasonFlag.USN_REASON_CLOSE,
        ),
    ]
    it = JournalIterator(_journal(*records), reason_filter=UsnReasonFlag.USN_REASON_FILE_CREATE)
    assert [r.file_name for r in it] == ["created.txt", "closed.txt"]


def test_iterator_from_path(tmp_path):
    path = tmp_path / "$J"
    path.write_bytes(b"\x00" * 512 + usn_record_v2("a.txt") + usn_record_v2("b.txt"))
    with JournalIterator.from_path(path) as it:
        assert [r.file_name for r in it] == ["a.txt", "b.txt"]
        assert it.position == path.stat().st_size
    assert [r.file_name for r in iter_usn_records(path)] == ["a.txt", "b.txt"]


def test_missing_journal_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        JournalIterator.from_path(tmp_path / "missing")
