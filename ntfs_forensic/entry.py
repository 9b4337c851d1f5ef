"""
MFT entry (FILE record) decoding: signature check, update sequence array
fixups, header fields and lazy attribute iteration.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator

from .attributes import (
    DataAttr,
    FileNameAttr,
    MftAttribute,
    MftAttributeType,
    StandardInfoAttr,
    decode_attribute,
)
from .cursor import ByteCursor, unpack_at
from .errors import (
    AttributeDecodeError,
    AttributeLengthOverflow,
    FixupMismatch,
    InvalidEntryHeader,
    InvalidSignature,
    TruncatedEntry,
)
from .flags import EntryFlags, FileNamespace
from .reference import FileReference
from .settings import SECTOR_SIZE, NamespacePolicy

logger = logging.getLogger(__name__)

ZERO_HEADER = b"\x00\x00\x00\x00"
FILE_HEADER = b"FILE"
BAAD_HEADER = b"BAAD"

# NTFS 3.1 header; 3.0 headers end at 0x2A (no record number)
ENTRY_HEADER_SIZE = 0x30
RECORD_NUMBER_OFFSET = 0x2C
MIN_FIRST_ATTRIBUTE_OFFSET = 0x2A


@dataclass
class MftEntryHeader:
    signature: bytes
    usa_offset: int
    usa_size: int
    metadata_transaction_journal: int
    sequence: int
    hard_link_count: int
    first_attribute_record_offset: int
    flags: EntryFlags
    used_entry_size: int
    total_entry_size: int
    base_reference: FileReference
    first_attribute_id: int
    record_number: int

    @classmethod
    def unused(cls, entry_index: int) -> "MftEntryHeader":
        return cls(
            signature=ZERO_HEADER, usa_offset=0, usa_size=0, metadata_transaction_journal=0,
            sequence=0, hard_link_count=0, first_attribute_record_offset=0, flags=EntryFlags(0),
            used_entry_size=0, total_entry_size=0, base_reference=FileReference(0, 0),
            first_attribute_id=0, record_number=entry_index,
        )


def apply_fixups(data: bytearray, usa_offset: int, usa_size: int, sector_size: int = SECTOR_SIZE) -> list[int]:
    """
    Restore the last two bytes of every sector from the update sequence array,
    in place. usa_size counts the update sequence number itself plus one slot
    per sector. Returns the (1-based) sectors whose trailing bytes did not
    match the update sequence number; those sectors are restored anyway.
    """
    if usa_size == 0:
        return []
    if usa_offset + 2 * usa_size > len(data):
        raise TruncatedEntry(
            f"Update sequence array ({usa_size} slots at 0x{usa_offset:X}) exceeds buffer of {len(data)} bytes",
            usa_offset,
        )
    usn = bytes(data[usa_offset : usa_offset + 2])
    mismatches = []
    for sector in range(1, usa_size):
        end = sector * sector_size
        if end > len(data):
            logger.debug("Fixup slot %d points past the %d-byte buffer", sector, len(data))
            break
        if data[end - 2 : end] != usn:
            mismatches.append(sector)
        original = usa_offset + 2 * sector
        data[end - 2 : end] = data[original : original + 2]
    return mismatches


@dataclass
class MftEntry:
    """
    A decoded FILE record. data holds the fixed-up record bytes (an owned
    copy); attributes are decoded from it on demand.
    """
    header: MftEntryHeader
    entry_index: int
    data: bytes = b""
    fixup_mismatches: list[int] = field(default_factory=list)
    is_unused: bool = False
    cluster_size: int | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_buffer(
        cls,
        buffer: bytes,
        entry_index: int,
        *,
        sector_size: int = SECTOR_SIZE,
        cluster_size: int | None = None,
    ) -> "MftEntry":
        if len(buffer) < ENTRY_HEADER_SIZE:
            raise TruncatedEntry(f"Entry {entry_index} is {len(buffer)} bytes, header needs {ENTRY_HEADER_SIZE}", 0)
        signature = bytes(buffer[0:4])
        if signature == ZERO_HEADER:
            return cls(header=MftEntryHeader.unused(entry_index), entry_index=entry_index, is_unused=True)
        if signature != FILE_HEADER:
            raise InvalidSignature(signature, entry_index)

        usa_offset, usa_size = unpack_at("<HH", buffer, 0x04)
        used_size, total_size = unpack_at("<II", buffer, 0x18)
        if total_size > len(buffer):
            raise TruncatedEntry(
                f"Entry {entry_index} declares {total_size} bytes, buffer holds {len(buffer)}", 0x1C
            )
        if used_size > total_size:
            raise InvalidEntryHeader(f"Entry {entry_index} used size {used_size} > allocated {total_size}", 0x18)
        if usa_size and usa_size - 1 > total_size // sector_size:
            raise InvalidEntryHeader(
                f"Entry {entry_index} has {usa_size - 1} fixups for {total_size} bytes", 0x06
            )

        data = bytearray(buffer[: total_size or len(buffer)])
        mismatches = apply_fixups(data, usa_offset, usa_size, sector_size)
        if mismatches:
            logger.warning(
                "Entry %d: update sequence check failed for sectors %s, continuing with restored data",
                entry_index, mismatches,
            )

        c = ByteCursor(bytes(data), 0x08)
        lsn = c.u64()
        sequence = c.u16()
        hard_links = c.u16()
        first_attr = c.u16()
        flags = EntryFlags(c.u16())
        c.skip(8)  # used / total sizes, read above
        base_reference = FileReference.from_int(c.u64())
        first_attribute_id = c.u16()
        record_number = entry_index
        if usa_offset >= ENTRY_HEADER_SIZE:
            record_number = unpack_at("<I", data, RECORD_NUMBER_OFFSET)[0]
            if record_number != entry_index:
                logger.debug("Entry %d stores record number %d", entry_index, record_number)
        if first_attr < MIN_FIRST_ATTRIBUTE_OFFSET or first_attr >= len(data):
            raise InvalidEntryHeader(f"Entry {entry_index} first attribute offset 0x{first_attr:X} invalid", 0x14)

        header = MftEntryHeader(
            signature=signature, usa_offset=usa_offset, usa_size=usa_size,
            metadata_transaction_journal=lsn, sequence=sequence, hard_link_count=hard_links,
            first_attribute_record_offset=first_attr, flags=flags, used_entry_size=used_size,
            total_entry_size=total_size, base_reference=base_reference,
            first_attribute_id=first_attribute_id, record_number=record_number,
        )
        return cls(
            header=header, entry_index=entry_index, data=bytes(data),
            fixup_mismatches=mismatches, cluster_size=cluster_size,
        )

    # --- identity / flags ---

    @property
    def reference(self) -> FileReference:
        return FileReference(self.entry_index, self.header.sequence)

    def is_allocated(self) -> bool:
        return bool(self.header.flags & EntryFlags.ALLOCATED)

    def is_dir(self) -> bool:
        return bool(self.header.flags & EntryFlags.INDEX_PRESENT)

    def is_extension(self) -> bool:
        return self.header.base_reference.entry != 0

    def check_fixups(self) -> None:
        """Raise FixupMismatch if any sector failed the update sequence check."""
        if self.fixup_mismatches:
            raise FixupMismatch(self.entry_index, list(self.fixup_mismatches))

    # --- attributes ---

    def iter_attributes(self) -> Iterator[MftAttribute | AttributeDecodeError]:
        """
        Yield attributes in stored order. A failed attribute is yielded as its
        AttributeDecodeError and the walk continues with the next one, unless
        the failure makes the next attribute impossible to locate.
        """
        if self.is_unused:
            return
        offset = self.header.first_attribute_record_offset
        used = self.header.used_entry_size
        while True:
            # bytes past the used size are slack left by earlier contents
            if used and offset >= used:
                return
            try:
                attr = decode_attribute(self.data, offset, cluster_size=self.cluster_size)
            except AttributeLengthOverflow as e:
                logger.warning("Entry %d: %s", self.entry_index, e)
                yield e
                return
            except AttributeDecodeError as e:
                logger.warning("Entry %d: %s", self.entry_index, e)
                yield e
                # header length was validated before the content failed
                offset += unpack_at("<I", self.data, offset + 4)[0]
                continue
            if attr is None:
                return
            yield attr
            offset += attr.header.record_length

    def attributes(self) -> list[MftAttribute]:
        return [a for a in self.iter_attributes() if isinstance(a, MftAttribute)]

    def attribute_errors(self) -> list[AttributeDecodeError]:
        return [a for a in self.iter_attributes() if isinstance(a, AttributeDecodeError)]

    def find_attributes(self, type_code: MftAttributeType) -> list[MftAttribute]:
        return [a for a in self.attributes() if a.type_code == type_code]

    def standard_info(self) -> StandardInfoAttr | None:
        for attr in self.find_attributes(MftAttributeType.STANDARD_INFORMATION):
            return attr.content
        return None

    def file_names(self) -> list[FileNameAttr]:
        return [a.content for a in self.find_attributes(MftAttributeType.FILE_NAME)
                if isinstance(a.content, FileNameAttr)]

    def best_file_name(self, policy: NamespacePolicy = NamespacePolicy.PREFER_WIN32) -> FileNameAttr | None:
        """
        $FILE_NAME used for display and path resolution: long (WIN32 /
        WIN32_AND_DOS) names first, then POSIX, then DOS 8.3 aliases unless the
        policy excludes them. Ties keep stored order.
        """
        best = None
        best_rank = None
        for fn in self.file_names():
            if fn.namespace == FileNamespace.DOS and policy == NamespacePolicy.EXCLUDE_DOS:
                continue
            rank = _NAMESPACE_RANK.get(fn.namespace, len(_NAMESPACE_RANK))
            if best_rank is None or rank < best_rank:
                best, best_rank = fn, rank
        return best

    def data_streams(self) -> list[MftAttribute]:
        return self.find_attributes(MftAttributeType.DATA)

    def has_alternate_data_streams(self) -> bool:
        return any(a.name for a in self.data_streams())

    def data_size(self) -> int:
        """Size of the unnamed $DATA stream (0 when absent)."""
        for attr in self.data_streams():
            if not attr.name:
                return attr.data_size()
        return 0

    def resident_streams(self) -> list[tuple[str, bytes]]:
        """(stream name, bytes) for every resident $DATA attribute."""
        return [(a.name, a.content.data) for a in self.data_streams() if isinstance(a.content, DataAttr)]


_NAMESPACE_RANK = {
    FileNamespace.WIN32: 0,
    FileNamespace.WIN32_AND_DOS: 0,
    FileNamespace.POSIX: 1,
    FileNamespace.DOS: 2,
}
