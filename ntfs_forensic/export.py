"""
Plain-dict views of decoded entries and journal records for the JSON and CSV
writers.
"""

import dataclasses
import uuid
from datetime import datetime
from enum import Enum, IntFlag

from .attributes import FileNameAttr, MftAttribute, StandardInfoAttr
from .entry import MftEntry
from .errors import DecodeError
from .filetime import filetime_to_iso
from .flags import flag_names
from .paths import ResolvedPath
from .usn import UsnJournalEntry

_FILETIME_FIELDS = ("created", "modified", "mft_modified", "accessed")


def to_jsonable(value):
    """Recursively turn flags, enums, datetimes, bytes and UUIDs into JSON-friendly values."""
    if isinstance(value, IntFlag):
        return flag_names(type(value), int(value))
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, uuid.UUID):
        return str(value)
    if dataclasses.is_dataclass(value):
        return to_jsonable(_shallow_dict(value))
    return value


def _shallow_dict(obj) -> dict:
    # dataclasses.asdict would flatten nested flags to plain ints on copy
    return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}


def _content_dict(content) -> dict:
    d = to_jsonable(content)
    if isinstance(content, (StandardInfoAttr, FileNameAttr)):
        for name in _FILETIME_FIELDS:
            d[name] = filetime_to_iso(getattr(content, name))
    return d


def attribute_to_dict(attr: MftAttribute | DecodeError) -> dict:
    if isinstance(attr, DecodeError):
        return {"error": type(attr).__name__, "message": str(attr), "offset": attr.offset}
    return {
        "header": to_jsonable(attr.header),
        "type_name": attr.type_name,
        "content_type": type(attr.content).__name__,
        "content": _content_dict(attr.content),
        "offset": attr.offset,
        "issues": list(attr.issues),
    }


def entry_to_dict(entry: MftEntry, path: ResolvedPath | None = None) -> dict:
    header = to_jsonable(entry.header)
    header["signature"] = entry.header.signature.decode("latin-1")
    d = {
        "entry_index": entry.entry_index,
        "header": header,
        "is_unused": entry.is_unused,
        "fixup_mismatches": list(entry.fixup_mismatches),
        "attributes": [attribute_to_dict(a) for a in entry.iter_attributes()],
    }
    if path is not None:
        d["full_path"] = str(path)
        d["path_status"] = path.status.name
    return d


# --- flat CSV rows ---

FLAT_ENTRY_FIELDS = [
    "signature",
    "entry_id",
    "sequence",
    "base_entry_id",
    "base_entry_sequence",
    "hard_link_count",
    "flags",
    "used_entry_size",
    "total_entry_size",
    "file_size",
    "is_a_directory",
    "is_deleted",
    "has_alternate_data_streams",
    "standard_info_flags",
    "standard_info_last_modified",
    "standard_info_last_access",
    "standard_info_created",
    "file_name_flags",
    "file_name_last_modified",
    "file_name_last_access",
    "file_name_created",
    "full_path",
    "path_status",
    "fixup_ok",
]


def _joined_flags(value: IntFlag | None) -> str:
    if value is None:
        return ""
    return "|".join(flag_names(type(value), int(value)))


def flat_entry_row(entry: MftEntry, parser) -> dict:
    """One CSV row for entry; parser supplies the full path and naming policy."""
    header = entry.header
    si = entry.standard_info()
    fn = entry.best_file_name(parser.settings.namespace_policy)
    path = parser.get_full_path(entry)
    return {
        "signature": header.signature.decode("latin-1"),
        "entry_id": entry.entry_index,
        "sequence": header.sequence,
        "base_entry_id": header.base_reference.entry,
        "base_entry_sequence": header.base_reference.sequence,
        "hard_link_count": header.hard_link_count,
        "flags": _joined_flags(header.flags),
        "used_entry_size": header.used_entry_size,
        "total_entry_size": header.total_entry_size,
        "file_size": entry.data_size(),
        "is_a_directory": entry.is_dir(),
        "is_deleted": not entry.is_allocated(),
        "has_alternate_data_streams": entry.has_alternate_data_streams(),
        "standard_info_flags": _joined_flags(si.file_flags) if si else "",
        "standard_info_last_modified": si.modified_iso() if si else "",
        "standard_info_last_access": si.accessed_iso() if si else "",
        "standard_info_created": si.created_iso() if si else "",
        "file_name_flags": _joined_flags(fn.flags) if fn else "",
        "file_name_last_modified": fn.modified_iso() if fn else "",
        "file_name_last_access": fn.accessed_iso() if fn else "",
        "file_name_created": fn.created_iso() if fn else "",
        "full_path": str(path),
        "path_status": path.status.name,
        "fixup_ok": not entry.fixup_mismatches,
    }


USN_FIELDS = [
    "offset",
    "usn",
    "timestamp",
    "file_entry",
    "file_sequence",
    "parent_entry",
    "parent_sequence",
    "file_name",
    "reason",
    "source_info",
    "file_attributes",
    "security_id",
    "major_version",
    "minor_version",
    "record_length",
]


def usn_entry_to_dict(entry: UsnJournalEntry) -> dict:
    d = to_jsonable(entry)
    d["timestamp"] = entry.timestamp_iso()
    d["file_ref"] = str(entry.file_ref())
    d["parent_ref"] = str(entry.parent_ref())
    return d


def usn_flat_row(entry: UsnJournalEntry) -> dict:
    file_ref = entry.file_ref()
    parent_ref = entry.parent_ref()
    return {
        "offset": entry.offset,
        "usn": entry.usn,
        "timestamp": entry.timestamp_iso(),
        "file_entry": file_ref.entry,
        "file_sequence": file_ref.sequence,
        "parent_entry": parent_ref.entry,
        "parent_sequence": parent_ref.sequence,
        "file_name": entry.file_name,
        "reason": entry.reason_string(),
        "source_info": _joined_flags(entry.source_info),
        "file_attributes": _joined_flags(entry.file_attributes),
        "security_id": entry.security_id,
        "major_version": entry.major_version,
        "minor_version": entry.minor_version,
        "record_length": entry.record_length,
    }
