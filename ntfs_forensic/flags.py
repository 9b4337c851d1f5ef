"""
Bit-flag and enumerated values found in MFT entries and USN records.

Flag combinations are plain IntFlag values; human-readable descriptions are
looked up per single bit, so any combination can be described.
"""

from enum import IntEnum, IntFlag


class EntryFlags(IntFlag):
    """FILE record header flags (offset 0x16)."""
    ALLOCATED = 0x01
    INDEX_PRESENT = 0x02  # directory
    IS_EXTENSION = 0x04
    SPECIAL_INDEX_PRESENT = 0x08


class FileNamespace(IntEnum):
    POSIX = 0
    WIN32 = 1
    DOS = 2
    WIN32_AND_DOS = 3


class AttributeDataFlags(IntFlag):
    IS_COMPRESSED = 0x0001
    COMPRESSION_MASK = 0x00FF
    IS_ENCRYPTED = 0x4000
    IS_SPARSE = 0x8000


class FileAttributeFlags(IntFlag):
    """Windows file attributes, as stored in $STANDARD_INFORMATION, $FILE_NAME and USN records."""
    FILE_ATTRIBUTE_READONLY = 0x00000001
    FILE_ATTRIBUTE_HIDDEN = 0x00000002
    FILE_ATTRIBUTE_SYSTEM = 0x00000004
    FILE_ATTRIBUTE_DIRECTORY = 0x00000010
    FILE_ATTRIBUTE_ARCHIVE = 0x00000020
    FILE_ATTRIBUTE_DEVICE = 0x00000040
    FILE_ATTRIBUTE_NORMAL = 0x00000080
    FILE_ATTRIBUTE_TEMPORARY = 0x00000100
    FILE_ATTRIBUTE_SPARSE_FILE = 0x00000200
    FILE_ATTRIBUTE_REPARSE_POINT = 0x00000400
    FILE_ATTRIBUTE_COMPRESSED = 0x00000800
    FILE_ATTRIBUTE_OFFLINE = 0x00001000
    FILE_ATTRIBUTE_NOT_CONTENT_INDEXED = 0x00002000
    FILE_ATTRIBUTE_ENCRYPTED = 0x00004000
    FILE_ATTRIBUTE_INTEGRITY_STREAM = 0x00008000
    FILE_ATTRIBUTE_VIRTUAL = 0x00010000
    FILE_ATTRIBUTE_NO_SCRUB_DATA = 0x00020000
    FILE_ATTRIBUTE_RECALL_ON_OPEN = 0x00040000
    FILE_ATTRIBUTE_PINNED = 0x00080000
    FILE_ATTRIBUTE_UNPINNED = 0x00100000
    FILE_ATTRIBUTE_RECALL_ON_DATA_ACCESS = 0x00400000
    # NTFS-internal bits used in $FILE_NAME
    FILE_ATTRIBUTE_IS_DIRECTORY = 0x10000000
    FILE_ATTRIBUTE_INDEX_VIEW = 0x20000000


class UsnReasonFlag(IntFlag):
    USN_REASON_DATA_OVERWRITE = 0x00000001
    USN_REASON_DATA_EXTEND = 0x00000002
    USN_REASON_DATA_TRUNCATION = 0x00000004
    USN_REASON_NAMED_DATA_OVERWRITE = 0x00000010
    USN_REASON_NAMED_DATA_EXTEND = 0x00000020
    USN_REASON_NAMED_DATA_TRUNCATION = 0x00000040
    USN_REASON_FILE_CREATE = 0x00000100
    USN_REASON_FILE_DELETE = 0x00000200
    USN_REASON_EA_CHANGE = 0x00000400
    USN_REASON_SECURITY_CHANGE = 0x00000800
    USN_REASON_RENAME_OLD_NAME = 0x00001000
    USN_REASON_RENAME_NEW_NAME = 0x00002000
    USN_REASON_INDEXABLE_CHANGE = 0x00004000
    USN_REASON_BASIC_INFO_CHANGE = 0x00008000
    USN_REASON_HARD_LINK_CHANGE = 0x00010000
    USN_REASON_COMPRESSION_CHANGE = 0x00020000
    USN_REASON_ENCRYPTION_CHANGE = 0x00040000
    USN_REASON_OBJECT_ID_CHANGE = 0x00080000
    USN_REASON_REPARSE_POINT_CHANGE = 0x00100000
    USN_REASON_STREAM_CHANGE = 0x00200000
    USN_REASON_TRANSACTED_CHANGE = 0x00400000
    USN_REASON_INTEGRITY_CHANGE = 0x00800000
    USN_REASON_CLOSE = 0x80000000


class UsnSourceInfoFlag(IntFlag):
    USN_SOURCE_DATA_MANAGEMENT = 0x00000001
    USN_SOURCE_AUXILIARY_DATA = 0x00000002
    USN_SOURCE_REPLICATION_MANAGEMENT = 0x00000004
    USN_SOURCE_CLIENT_REPLICATION_MANAGEMENT = 0x00000008


# Source: MS-FSCC 2.3.x USN_RECORD reason / source info descriptions
USN_REASON_DESCRIPTIONS = {
    UsnReasonFlag.USN_REASON_DATA_OVERWRITE: "The data in the file or directory is overwritten.",
    UsnReasonFlag.USN_REASON_DATA_EXTEND: "The file or directory is extended (added to).",
    UsnReasonFlag.USN_REASON_DATA_TRUNCATION: "The file or directory is truncated.",
    UsnReasonFlag.USN_REASON_NAMED_DATA_OVERWRITE:
        "The data in one or more named data streams for a file is overwritten.",
    UsnReasonFlag.USN_REASON_NAMED_DATA_EXTEND:
        "One or more named data streams for a file are extended (added to).",
    UsnReasonFlag.USN_REASON_NAMED_DATA_TRUNCATION: "One or more named data streams for a file are truncated.",
    UsnReasonFlag.USN_REASON_FILE_CREATE: "The file or directory is created for the first time.",
    UsnReasonFlag.USN_REASON_FILE_DELETE: "The file or directory is deleted.",
    UsnReasonFlag.USN_REASON_EA_CHANGE:
        "The extended attributes of a file or directory were changed through the native API.",
    UsnReasonFlag.USN_REASON_SECURITY_CHANGE: "A change is made in the access rights to a file or directory.",
    UsnReasonFlag.USN_REASON_RENAME_OLD_NAME:
        "The file or directory is renamed, and the file name in the record is the previous name.",
    UsnReasonFlag.USN_REASON_RENAME_NEW_NAME:
        "A file or directory is renamed, and the file name in the record is the new name.",
    UsnReasonFlag.USN_REASON_INDEXABLE_CHANGE:
        "The FILE_ATTRIBUTE_NOT_CONTENT_INDEXED attribute of the file or directory changed.",
    UsnReasonFlag.USN_REASON_BASIC_INFO_CHANGE:
        "One or more file or directory attributes (read-only, hidden, archive, sparse) "
        "or time stamps changed.",
    UsnReasonFlag.USN_REASON_HARD_LINK_CHANGE: "A hard link is added to (or removed from) the file or directory.",
    UsnReasonFlag.USN_REASON_COMPRESSION_CHANGE:
        "The compression state of the file or directory is changed from (or to) compressed.",
    UsnReasonFlag.USN_REASON_ENCRYPTION_CHANGE: "The file or directory is encrypted or decrypted.",
    UsnReasonFlag.USN_REASON_OBJECT_ID_CHANGE: "The object identifier of a file or directory is changed.",
    UsnReasonFlag.USN_REASON_REPARSE_POINT_CHANGE:
        "The reparse point of a file or directory is changed, added or deleted.",
    UsnReasonFlag.USN_REASON_STREAM_CHANGE:
        "A named stream is added to (or removed from) a file, or a named stream is renamed.",
    UsnReasonFlag.USN_REASON_TRANSACTED_CHANGE: "The change was made within a transaction.",
    UsnReasonFlag.USN_REASON_INTEGRITY_CHANGE: "A change is made in the integrity status of a file or directory.",
    UsnReasonFlag.USN_REASON_CLOSE: "The file or directory is closed.",
}

USN_SOURCE_DESCRIPTIONS = {
    UsnSourceInfoFlag.USN_SOURCE_DATA_MANAGEMENT:
        "The operating system changed the file or directory without changing its application data "
        "(for example Remote Storage moving data to local storage).",
    UsnSourceInfoFlag.USN_SOURCE_AUXILIARY_DATA:
        "A private data stream was added to the file or directory without changing its application data.",
    UsnSourceInfoFlag.USN_SOURCE_REPLICATION_MANAGEMENT:
        "The file was modified to match the same file on another member of the replica set (FRS).",
    UsnSourceInfoFlag.USN_SOURCE_CLIENT_REPLICATION_MANAGEMENT:
        "The file was modified by client replication management.",
}


def flag_names(flag_type: type[IntFlag], value: int) -> list[str]:
    """Names of every single-bit member of flag_type set in value; unknown bits are reported as hex."""
    names = []
    left = int(value)
    for member in flag_type.__members__.values():
        bit = int(member)
        # single-bit members only: masks like COMPRESSION_MASK would double count
        if bit and bit & (bit - 1) == 0 and value & bit:
            names.append(member.name)
            left &= ~bit
    if left:
        names.append(f"0x{left:X}")
    return names


def flag_descriptions(flag: IntFlag, descriptions: dict) -> list[tuple[str, str]]:
    """(name, description) for each set bit of a USN reason or source value."""
    out = []
    for member, text in descriptions.items():
        if int(flag) & int(member):
            out.append((member.name, text))
    return out


def usn_reason_string(reason: int) -> str:
    """Compact ' | '-joined reason list (prefix stripped), e.g. 'DATA_EXTEND | CLOSE'."""
    if reason == 0:
        return ""
    return " | ".join(n.replace("USN_REASON_", "") for n in flag_names(UsnReasonFlag, reason))
