"""
MFT attribute decoding: the common attribute header, resident payloads and
non-resident run lists.

Layout references (offsets relative to the attribute start):
  0x00 type code (u32)         0x04 record length (u32)
  0x08 non-resident flag (u8)  0x09 name length in UTF-16 units (u8)
  0x0A name offset (u16)       0x0C data flags (u16)
  0x0E attribute id (u16)
Resident:     0x10 value length (u32), 0x14 value offset (u16), 0x16 indexed flag (u8)
Non-resident: 0x10 starting VCN, 0x18 last VCN, 0x20 run list offset (u16),
              0x22 compression unit (u16), 0x28 allocated, 0x30 real,
              0x38 initialized size, 0x40 total allocated (compressed only)
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum

from .cursor import ByteCursor, unpack_at
from .errors import (
    AttributeContentOverflow,
    AttributeLengthOverflow,
    InvalidDataRun,
    ShortRead,
    UnknownAttributeType,
)
from .filetime import filetime_to_iso
from .flags import AttributeDataFlags, FileAttributeFlags, FileNamespace
from .reference import FileReference

logger = logging.getLogger(__name__)

END_OF_ATTRIBUTES = 0xFFFFFFFF
ATTRIBUTE_HEADER_SIZE = 0x10
RESIDENT_HEADER_SIZE = 0x18
NON_RESIDENT_HEADER_SIZE = 0x40
FILE_NAME_MIN_SIZE = 0x42
STANDARD_INFO_MIN_SIZE = 0x30
STANDARD_INFO_V3_SIZE = 0x48
ATTRIBUTE_LIST_ENTRY_MIN_SIZE = 0x1A


class MftAttributeType(IntEnum):
    STANDARD_INFORMATION = 0x10
    ATTRIBUTE_LIST = 0x20
    FILE_NAME = 0x30
    OBJECT_ID = 0x40
    SECURITY_DESCRIPTOR = 0x50
    VOLUME_NAME = 0x60
    VOLUME_INFORMATION = 0x70
    DATA = 0x80
    INDEX_ROOT = 0x90
    INDEX_ALLOCATION = 0xA0
    BITMAP = 0xB0
    REPARSE_POINT = 0xC0
    EA_INFORMATION = 0xD0
    EA = 0xE0
    PROPERTY_SET = 0xF0
    LOGGED_UTILITY_STREAM = 0x100


ATTR_NAMES = {t: f"${t.name}" for t in MftAttributeType}


class FormCode(IntEnum):
    RESIDENT = 0
    NON_RESIDENT = 1


@dataclass
class ResidentHeader:
    value_length: int
    value_offset: int
    index_flag: int


@dataclass
class NonResidentHeader:
    starting_vcn: int
    last_vcn: int
    run_list_offset: int
    compression_unit_size: int
    allocated_length: int
    file_size: int
    valid_data_length: int
    total_allocated: int | None = None


@dataclass
class AttributeHeader:
    type_code: MftAttributeType
    record_length: int
    form_code: FormCode
    name_size: int
    name_offset: int
    data_flags: AttributeDataFlags
    instance: int
    name: str
    residential_header: ResidentHeader | NonResidentHeader

    @property
    def is_resident(self) -> bool:
        return self.form_code == FormCode.RESIDENT


# --- resident payloads ---

class _FiletimeFields:
    """ISO accessors shared by attributes carrying the four NTFS timestamps."""
    created: int
    modified: int
    mft_modified: int
    accessed: int

    def created_iso(self) -> str:
        return filetime_to_iso(self.created)

    def modified_iso(self) -> str:
        return filetime_to_iso(self.modified)

    def mft_modified_iso(self) -> str:
        return filetime_to_iso(self.mft_modified)

    def accessed_iso(self) -> str:
        return filetime_to_iso(self.accessed)


@dataclass
class StandardInfoAttr(_FiletimeFields):
    """$STANDARD_INFORMATION (timestamps as raw FILETIME ticks)."""
    created: int
    modified: int
    mft_modified: int
    accessed: int
    file_flags: FileAttributeFlags
    max_version: int
    version: int
    class_id: int
    owner_id: int | None = None
    security_id: int | None = None
    quota: int | None = None
    usn: int | None = None


@dataclass
class FileNameAttr(_FiletimeFields):
    """$FILE_NAME."""
    parent: FileReference
    created: int
    modified: int
    mft_modified: int
    accessed: int
    allocated_size: int
    real_size: int
    flags: FileAttributeFlags
    reparse_value: int
    name_length: int
    namespace: FileNamespace | int
    name: str

    def is_directory(self) -> bool:
        return bool(self.flags & FileAttributeFlags.FILE_ATTRIBUTE_IS_DIRECTORY)


@dataclass
class AttributeListEntry:
    type_code: int
    record_length: int
    lowest_vcn: int
    base_reference: FileReference
    attribute_id: int
    name: str


@dataclass
class AttributeListAttr:
    entries: list[AttributeListEntry] = field(default_factory=list)


@dataclass
class ObjectIdAttr:
    object_id: uuid.UUID
    birth_volume_id: uuid.UUID | None = None
    birth_object_id: uuid.UUID | None = None
    domain_id: uuid.UUID | None = None


@dataclass
class VolumeNameAttr:
    name: str


@dataclass
class VolumeInfoAttr:
    major_version: int
    minor_version: int
    flags: int


@dataclass
class DataAttr:
    """Resident $DATA payload."""
    data: bytes


@dataclass
class IndexRootAttr:
    attribute_type: int
    collation_rule: int
    index_entry_size: int
    index_entry_number_of_cluster_blocks: int


@dataclass
class RawAttr:
    """Resident attribute without a dedicated decoder."""
    data: bytes


# --- non-resident payload ---

class RunType(Enum):
    STANDARD = "standard"
    SPARSE = "sparse"


@dataclass
class DataRun:
    """
    length: clusters in the run.
    delta: signed offset relative to the previous run's LCN (0 for sparse runs).
    lcn: absolute starting cluster, None for sparse runs.
    """
    length: int
    delta: int
    lcn: int | None
    run_type: RunType


@dataclass
class DataRunsAttr:
    runs: list[DataRun] = field(default_factory=list)

    def total_clusters(self) -> int:
        return sum(r.length for r in self.runs)


AttributeContent = (
    StandardInfoAttr | AttributeListAttr | FileNameAttr | ObjectIdAttr | VolumeNameAttr
    | VolumeInfoAttr | DataAttr | IndexRootAttr | RawAttr | DataRunsAttr
)


@dataclass
class MftAttribute:
    header: AttributeHeader
    content: AttributeContent
    offset: int = 0
    issues: list[str] = field(default_factory=list)

    @property
    def type_code(self) -> MftAttributeType:
        return self.header.type_code

    @property
    def type_name(self) -> str:
        return ATTR_NAMES[self.header.type_code]

    @property
    def name(self) -> str:
        return self.header.name

    @property
    def is_resident(self) -> bool:
        return self.header.is_resident

    def resident_data(self) -> bytes | None:
        """Inline bytes of a resident attribute; None for non-resident ones."""
        if isinstance(self.content, (DataAttr, RawAttr)):
            return self.content.data
        return None

    def data_size(self) -> int:
        rh = self.header.residential_header
        if isinstance(rh, NonResidentHeader):
            return rh.file_size
        return rh.value_length


# --- run lists ---

def decode_data_runs(data: bytes) -> list[DataRun]:
    """
    Decode a mapping-pairs run list. Each run starts with a header byte:
    low nibble = byte width of the (unsigned) cluster count, high nibble =
    byte width of the (signed) LCN delta; a zero header byte ends the list.
    A missing offset field denotes a sparse run.
    """
    runs: list[DataRun] = []
    pos = 0
    lcn = 0
    while pos < len(data):
        header = data[pos]
        if header == 0:
            return runs
        length_size = header & 0x0F
        offset_size = header >> 4
        if length_size == 0 or length_size > 8 or offset_size > 8:
            raise InvalidDataRun(f"Invalid run header 0x{header:02X}", pos)
        end = pos + 1 + length_size + offset_size
        if end > len(data):
            raise InvalidDataRun("Run list truncated", pos)
        length = int.from_bytes(data[pos + 1 : pos + 1 + length_size], "little", signed=False)
        if offset_size:
            delta = int.from_bytes(data[pos + 1 + length_size : end], "little", signed=True)
            lcn += delta
            runs.append(DataRun(length=length, delta=delta, lcn=lcn, run_type=RunType.STANDARD))
        else:
            runs.append(DataRun(length=length, delta=0, lcn=None, run_type=RunType.SPARSE))
        pos = end
    logger.debug("Run list ended at buffer end without terminator after %d runs", len(runs))
    return runs


def _check_run_list(runs: DataRunsAttr, nr: NonResidentHeader, cluster_size: int | None) -> list[str]:
    issues = []
    total = runs.total_clusters()
    if nr.last_vcn >= nr.starting_vcn and (runs.runs or nr.allocated_length):
        expected = nr.last_vcn - nr.starting_vcn + 1
        if total != expected:
            issues.append(f"run list covers {total} clusters, VCN range covers {expected}")
    if cluster_size and nr.starting_vcn == 0 and total * cluster_size != nr.allocated_length:
        issues.append(
            f"run list covers {total * cluster_size} bytes, allocated size is {nr.allocated_length}"
        )
    return issues


# --- resident payload decoders ---

def _utf16(raw: bytes) -> str:
    return raw.decode("utf-16-le", errors="replace")


def _decode_standard_info(value: bytes) -> StandardInfoAttr:
    c = ByteCursor(value)
    if len(value) < STANDARD_INFO_MIN_SIZE:
        raise ShortRead(f"$STANDARD_INFORMATION is {len(value)} bytes", 0)
    si = StandardInfoAttr(
        created=c.u64(),
        modified=c.u64(),
        mft_modified=c.u64(),
        accessed=c.u64(),
        file_flags=FileAttributeFlags(c.u32()),
        max_version=c.u32(),
        version=c.u32(),
        class_id=c.u32(),
    )
    # NTFS 3.x extension
    if len(value) >= STANDARD_INFO_V3_SIZE:
        si.owner_id = c.u32()
        si.security_id = c.u32()
        si.quota = c.u64()
        si.usn = c.u64()
    return si


def _decode_file_name(value: bytes) -> FileNameAttr:
    c = ByteCursor(value)
    if len(value) < FILE_NAME_MIN_SIZE:
        raise ShortRead(f"$FILE_NAME is {len(value)} bytes", 0)
    parent = FileReference.from_int(c.u64())
    created, modified, mft_modified, accessed = c.u64(), c.u64(), c.u64(), c.u64()
    allocated_size = c.u64()
    real_size = c.u64()
    flags = FileAttributeFlags(c.u32())
    reparse_value = c.u32()
    name_length = c.u8()
    ns = c.u8()
    try:
        namespace: FileNamespace | int = FileNamespace(ns)
    except ValueError:
        namespace = ns
    name = _utf16(c.read(name_length * 2))
    return FileNameAttr(
        parent=parent, created=created, modified=modified, mft_modified=mft_modified,
        accessed=accessed, allocated_size=allocated_size, real_size=real_size, flags=flags,
        reparse_value=reparse_value, name_length=name_length, namespace=namespace, name=name,
    )


def _decode_attribute_list(value: bytes) -> AttributeListAttr:
    out = AttributeListAttr()
    pos = 0
    while pos + ATTRIBUTE_LIST_ENTRY_MIN_SIZE <= len(value):
        type_code, rec_len, name_len, name_off = unpack_at("<IHBB", value, pos)
        if rec_len < ATTRIBUTE_LIST_ENTRY_MIN_SIZE or pos + rec_len > len(value):
            break
        lowest_vcn, base_ref, attr_id = unpack_at("<QQH", value, pos + 8)
        name = ""
        if name_len:
            start = pos + name_off
            name = _utf16(ByteCursor(value, start).read(name_len * 2))
        out.entries.append(AttributeListEntry(
            type_code=type_code, record_length=rec_len, lowest_vcn=lowest_vcn,
            base_reference=FileReference.from_int(base_ref), attribute_id=attr_id, name=name,
        ))
        pos += rec_len
    return out


def _decode_object_id(value: bytes) -> ObjectIdAttr:
    c = ByteCursor(value)
    ids = [uuid.UUID(bytes_le=c.read(16))]
    while len(ids) < 4 and c.remaining() >= 16:
        ids.append(uuid.UUID(bytes_le=c.read(16)))
    ids += [None] * (4 - len(ids))
    return ObjectIdAttr(object_id=ids[0], birth_volume_id=ids[1], birth_object_id=ids[2], domain_id=ids[3])


def _decode_volume_name(value: bytes) -> VolumeNameAttr:
    return VolumeNameAttr(name=_utf16(value))


def _decode_volume_info(value: bytes) -> VolumeInfoAttr:
    c = ByteCursor(value, 8)
    return VolumeInfoAttr(major_version=c.u8(), minor_version=c.u8(), flags=c.u16())


def _decode_index_root(value: bytes) -> IndexRootAttr:
    c = ByteCursor(value)
    return IndexRootAttr(
        attribute_type=c.u32(),
        collation_rule=c.u32(),
        index_entry_size=c.u32(),
        index_entry_number_of_cluster_blocks=c.u8(),
    )


def _decode_data(value: bytes) -> DataAttr:
    return DataAttr(data=value)


_RESIDENT_DECODERS = {
    MftAttributeType.STANDARD_INFORMATION: _decode_standard_info,
    MftAttributeType.ATTRIBUTE_LIST: _decode_attribute_list,
    MftAttributeType.FILE_NAME: _decode_file_name,
    MftAttributeType.OBJECT_ID: _decode_object_id,
    MftAttributeType.VOLUME_NAME: _decode_volume_name,
    MftAttributeType.VOLUME_INFORMATION: _decode_volume_info,
    MftAttributeType.DATA: _decode_data,
    MftAttributeType.INDEX_ROOT: _decode_index_root,
}


# --- attribute header ---

def decode_attribute(
    buffer: bytes,
    offset: int,
    *,
    cluster_size: int | None = None,
) -> MftAttribute | None:
    """
    Decode the attribute starting at offset in an (already fixed-up) entry buffer.
    Returns None at the end-of-attributes marker or when the buffer is exhausted.

    Raises AttributeLengthOverflow when the header or its length cannot be
    trusted (the caller cannot locate the next attribute); other
    AttributeDecodeError subclasses leave the length usable.
    """
    if offset + 4 > len(buffer):
        return None
    type_code = unpack_at("<I", buffer, offset)[0]
    if type_code == END_OF_ATTRIBUTES:
        return None
    if offset + ATTRIBUTE_HEADER_SIZE > len(buffer):
        raise AttributeLengthOverflow("Attribute header truncated", offset, type_code)
    length, form, name_size, name_offset, flags, instance = unpack_at("<IBBHHH", buffer, offset + 4)
    if length < ATTRIBUTE_HEADER_SIZE or offset + length > len(buffer):
        raise AttributeLengthOverflow(
            f"Attribute length {length} invalid ({len(buffer) - offset} bytes left)", offset, type_code
        )
    try:
        attr_type = MftAttributeType(type_code)
    except ValueError:
        raise UnknownAttributeType(f"Unknown attribute type 0x{type_code:X}", offset, type_code) from None

    raw = bytes(buffer[offset : offset + length])
    name = ""
    if name_size:
        if name_offset + name_size * 2 > length:
            raise AttributeContentOverflow("Attribute name outside attribute", offset, type_code)
        name = _utf16(raw[name_offset : name_offset + name_size * 2])

    header_args = dict(
        type_code=attr_type, record_length=length, name_size=name_size, name_offset=name_offset,
        data_flags=AttributeDataFlags(flags), instance=instance, name=name,
    )
    try:
        if form == FormCode.RESIDENT:
            return _decode_resident(raw, offset, header_args)
        return _decode_non_resident(raw, offset, header_args, cluster_size)
    except ShortRead as e:
        raise AttributeContentOverflow(
            f"{ATTR_NAMES[attr_type]} content truncated: {e.message}", offset, type_code
        ) from e


def _decode_resident(raw: bytes, offset: int, header_args: dict) -> MftAttribute:
    type_code = header_args["type_code"]
    if len(raw) < RESIDENT_HEADER_SIZE:
        raise AttributeLengthOverflow("Resident attribute shorter than its header", offset, type_code)
    value_length, value_offset, index_flag = unpack_at("<IHB", raw, 0x10)
    if value_offset + value_length > len(raw):
        raise AttributeContentOverflow(
            f"Resident value {value_offset}+{value_length} exceeds attribute length {len(raw)}",
            offset, type_code,
        )
    value = raw[value_offset : value_offset + value_length]
    header = AttributeHeader(
        form_code=FormCode.RESIDENT,
        residential_header=ResidentHeader(value_length=value_length, value_offset=value_offset,
                                          index_flag=index_flag),
        **header_args,
    )
    decoder = _RESIDENT_DECODERS.get(type_code)
    content = decoder(value) if decoder else RawAttr(data=value)
    return MftAttribute(header=header, content=content, offset=offset)


def _decode_non_resident(
    raw: bytes, offset: int, header_args: dict, cluster_size: int | None
) -> MftAttribute:
    type_code = header_args["type_code"]
    if len(raw) < NON_RESIDENT_HEADER_SIZE:
        raise AttributeLengthOverflow("Non-resident attribute shorter than its header", offset, type_code)
    c = ByteCursor(raw, 0x10)
    nr = NonResidentHeader(
        starting_vcn=c.i64(),
        last_vcn=c.i64(),
        run_list_offset=c.u16(),
        compression_unit_size=c.u16(),
        allocated_length=c.skip(4).u64(),
        file_size=c.u64(),
        valid_data_length=c.u64(),
    )
    if nr.compression_unit_size and len(raw) >= NON_RESIDENT_HEADER_SIZE + 8:
        nr.total_allocated = c.u64()
    if nr.run_list_offset < NON_RESIDENT_HEADER_SIZE or nr.run_list_offset > len(raw):
        raise AttributeContentOverflow(
            f"Run list offset 0x{nr.run_list_offset:X} outside attribute", offset, type_code
        )
    try:
        runs = DataRunsAttr(runs=decode_data_runs(raw[nr.run_list_offset :]))
    except InvalidDataRun as e:
        raise InvalidDataRun(e.message, offset + nr.run_list_offset + (e.offset or 0), type_code) from e
    header = AttributeHeader(form_code=FormCode.NON_RESIDENT, residential_header=nr, **header_args)
    attr = MftAttribute(header=header, content=runs, offset=offset)
    attr.issues = _check_run_list(runs, nr, cluster_size)
    for issue in attr.issues:
        logger.warning("%s at 0x%X: %s", ATTR_NAMES[type_code], offset, issue)
    return attr
