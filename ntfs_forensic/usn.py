"""
USN change journal ($UsnJrnl:$J) record decoding.

decode_record() handles USN_RECORD_V2 and USN_RECORD_V3; JournalIterator
walks a stream of records, skipping the zero padding NTFS leaves between
pages and around sparse regions.
"""

import logging
import struct
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterator

from .cursor import read_exact
from .errors import (
    DecodeError,
    InvalidFilename,
    InvalidTimestamp,
    InvalidUsn,
    RecordLengthOverflow,
    TruncatedRecord,
    UnsupportedVersion,
)
from .filetime import filetime_to_datetime
from .flags import FileAttributeFlags, UsnReasonFlag, UsnSourceInfoFlag, usn_reason_string
from .reference import FileReference

logger = logging.getLogger(__name__)

USN_V2_HEADER_SIZE = 60
USN_V3_HEADER_SIZE = 76
MAX_RECORD_LENGTH = 0x10000
RECORD_ALIGNMENT = 8

_PADDING_CHUNK = 0x10000

# fields after the references: usn, timestamp, reason, source, security id,
# attributes, name length, name offset
_TAIL = struct.Struct("<qqIIIIHH")
_V2_REFS = struct.Struct("<QQ")
_V3_REFS = struct.Struct("<QQQQ")  # two FILE_ID_128 values as (low, high) pairs


@dataclass
class UsnJournalEntry:
    record_length: int
    major_version: int
    minor_version: int
    file_reference: int        # 64-bit for V2, 128-bit for V3
    parent_reference: int
    usn: int
    timestamp: datetime
    reason: UsnReasonFlag
    source_info: UsnSourceInfoFlag
    security_id: int
    file_attributes: FileAttributeFlags
    file_name_length: int
    file_name_offset: int
    file_name: str
    offset: int = 0            # position of the record in the journal stream

    def file_ref(self) -> FileReference:
        """MFT reference of the file (low 64 bits of a V3 id)."""
        return FileReference.from_int(self.file_reference & 0xFFFFFFFFFFFFFFFF)

    def parent_ref(self) -> FileReference:
        return FileReference.from_int(self.parent_reference & 0xFFFFFFFFFFFFFFFF)

    def timestamp_iso(self) -> str:
        return self.timestamp.isoformat()

    def reason_string(self) -> str:
        return usn_reason_string(self.reason)

    def is_close(self) -> bool:
        """True for close events (the file was opened, then closed)."""
        return bool(self.reason & UsnReasonFlag.USN_REASON_CLOSE)


def decode_record(buffer: bytes, offset: int = 0) -> UsnJournalEntry:
    """
    Decode one USN record starting at offset in buffer. The returned entry's
    offset is the record's position in buffer.
    """
    available = len(buffer) - offset
    if available < 8:
        raise TruncatedRecord(f"Need 8 bytes for a record header, {max(available, 0)} available", offset)
    record_length, major, minor = struct.unpack_from("<IHH", buffer, offset)

    if major == 2:
        header_size = USN_V2_HEADER_SIZE
    elif major == 3:
        header_size = USN_V3_HEADER_SIZE
    else:
        raise UnsupportedVersion(f"USN record version {major}.{minor} is not supported", offset + 4)
    if record_length < header_size:
        raise TruncatedRecord(
            f"Record length {record_length} is below the V{major} header size {header_size}", offset
        )
    if record_length > available:
        raise TruncatedRecord(f"Record length {record_length} exceeds the {available} bytes available", offset)

    if major == 2:
        file_reference, parent_reference = _V2_REFS.unpack_from(buffer, offset + 8)
        tail_offset = offset + 8 + _V2_REFS.size
    else:
        f_lo, f_hi, p_lo, p_hi = _V3_REFS.unpack_from(buffer, offset + 8)
        file_reference = (f_hi << 64) | f_lo
        parent_reference = (p_hi << 64) | p_lo
        tail_offset = offset + 8 + _V3_REFS.size
    usn, ticks, reason, source, security_id, attributes, name_length, name_offset = _TAIL.unpack_from(
        buffer, tail_offset
    )

    if usn < 0:
        raise InvalidUsn(f"Negative USN {usn}", tail_offset)
    try:
        timestamp = filetime_to_datetime(ticks)
    except OverflowError:
        raise InvalidTimestamp(f"Timestamp {ticks} is out of range", tail_offset + 8) from None
    if name_offset < header_size or name_offset + name_length > record_length:
        raise InvalidFilename(
            f"Name window {name_offset}+{name_length} lies outside the {record_length}-byte record",
            tail_offset + 28,
        )
    raw_name = buffer[offset + name_offset : offset + name_offset + name_length]

    return UsnJournalEntry(
        record_length=record_length,
        major_version=major,
        minor_version=minor,
        file_reference=file_reference,
        parent_reference=parent_reference,
        usn=usn,
        timestamp=timestamp,
        reason=UsnReasonFlag(reason),
        source_info=UsnSourceInfoFlag(source),
        security_id=security_id,
        file_attributes=FileAttributeFlags(attributes),
        file_name_length=name_length,
        file_name_offset=name_offset,
        file_name=bytes(raw_name).decode("utf-16-le", errors="replace"),
        offset=offset,
    )


class JournalIterator:
    """
    Yields UsnJournalEntry objects, or the DecodeError for a record that
    could not be decoded, until the stream ends. A record length too large to
    trust is yielded as RecordLengthOverflow and the walk resumes 8 bytes
    further on. Not restartable.
    """

    def __init__(self, stream: BinaryIO, offset: int | None = None, reason_filter: int | None = None):
        self._stream = stream
        self._pos = stream.tell() if offset is None else offset
        self._done = False
        self.reason_filter = reason_filter
        self._owns_stream = False

    @classmethod
    def from_path(cls, path: Path | str, reason_filter: int | None = None) -> "JournalIterator":
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"USN Journal file not found: {path}")
        it = cls(open(path, "rb"), offset=0, reason_filter=reason_filter)
        it._owns_stream = True
        return it

    @property
    def position(self) -> int:
        return self._pos

    def close(self) -> None:
        self._finish()

    def __enter__(self) -> "JournalIterator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __iter__(self) -> "JournalIterator":
        return self

    def __next__(self) -> UsnJournalEntry | DecodeError:
        while not self._done:
            item = self._next_record()
            if item is None:
                break
            if (
                self.reason_filter is not None
                and isinstance(item, UsnJournalEntry)
                and not item.reason & self.reason_filter
            ):
                continue
            return item
        self._finish()
        raise StopIteration

    def _finish(self) -> None:
        self._done = True
        if self._owns_stream:
            self._stream.close()

    def _skip_padding(self) -> bool:
        """Advance past zero bytes to the next aligned non-zero word. False at end of stream."""
        while True:
            self._stream.seek(self._pos)
            chunk = self._stream.read(_PADDING_CHUNK)
            if not chunk:
                return False
            stripped = chunk.lstrip(b"\x00")
            if stripped:
                first = len(chunk) - len(stripped)
                self._pos += first - first % RECORD_ALIGNMENT
                return True
            self._pos += len(chunk) - len(chunk) % RECORD_ALIGNMENT or len(chunk)

    def _next_record(self) -> UsnJournalEntry | DecodeError | None:
        while True:
            self._stream.seek(self._pos)
            head = read_exact(self._stream, 4)
            if len(head) < 4:
                return None
            record_length = struct.unpack("<I", head)[0]
            if record_length:
                break
            self._pos += RECORD_ALIGNMENT
            if not self._skip_padding():
                return None

        if record_length > MAX_RECORD_LENGTH:
            error = RecordLengthOverflow(
                f"Record length {record_length} exceeds {MAX_RECORD_LENGTH}", self._pos
            )
            logger.warning("%s; resyncing at the next aligned offset", error)
            self._pos += RECORD_ALIGNMENT
            return error

        start = self._pos
        self._stream.seek(start)
        data = read_exact(self._stream, record_length)
        if len(data) < record_length:
            logger.debug("Journal ends inside a record at 0x%X", start)
            return None
        self._pos = start + _align(record_length)
        try:
            entry = decode_record(data)
        except DecodeError as e:
            e.offset = start + (e.offset or 0)
            logger.warning("Skipping USN record: %s", e)
            return e
        entry.offset = start
        return entry


def _align(length: int) -> int:
    return (length + RECORD_ALIGNMENT - 1) & ~(RECORD_ALIGNMENT - 1)


def iter_usn_records(
    path: Path | str,
    *,
    reason_filter: int | None = None,
) -> Iterator[UsnJournalEntry | DecodeError]:
    """
    Open a USN Journal stream ($J) and yield its records.

    path: copy of $Extend\\$UsnJrnl:$J, from a live volume or forensic image.
    reason_filter: if set, only records with any of these reason bits are yielded.
    """
    with JournalIterator.from_path(path, reason_filter=reason_filter) as it:
        yield from it
