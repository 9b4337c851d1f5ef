"""
Forensic decoding of NTFS metadata: $MFT entries and their attributes, full
path reconstruction, and USN change journal records.
"""

from .attributes import MftAttribute, MftAttributeType, decode_attribute, decode_data_runs
from .entry import MftEntry, MftEntryHeader, apply_fixups
from .errors import (
    AttributeDecodeError,
    DecodeError,
    EntryNotFound,
    EntryOutOfRange,
    FixupMismatch,
    NtfsError,
)
from .parser import MftParser, detect_entry_size
from .paths import PathResolver, PathStatus, ResolvedPath
from .reference import FileReference
from .settings import NamespacePolicy, ParserSettings
from .usn import JournalIterator, UsnJournalEntry, decode_record, iter_usn_records

__version__ = "0.1.0"

__all__ = [
    "AttributeDecodeError",
    "DecodeError",
    "EntryNotFound",
    "EntryOutOfRange",
    "FileReference",
    "FixupMismatch",
    "JournalIterator",
    "MftAttribute",
    "MftAttributeType",
    "MftEntry",
    "MftEntryHeader",
    "MftParser",
    "NamespacePolicy",
    "NtfsError",
    "ParserSettings",
    "PathResolver",
    "PathStatus",
    "ResolvedPath",
    "UsnJournalEntry",
    "apply_fixups",
    "decode_attribute",
    "decode_data_runs",
    "decode_record",
    "detect_entry_size",
    "iter_usn_records",
]
