import io

import pytest

from ntfs_builders import file_name_attribute, file_record, mft_image
from ntfs_forensic.errors import EntryNotFound, EntryOutOfRange, InvalidSignature
from ntfs_forensic.paths import PathStatus
from ntfs_forensic.parser import MftParser, detect_entry_size
from ntfs_forensic.reference import FileReference
from ntfs_forensic.settings import NamespacePolicy, ParserSettings


def test_detect_1024_byte_entries(mft_stream):
    assert detect_entry_size(mft_stream) == 1024


def test_detect_4096_byte_entries():
    records = {
        i: file_record([file_name_attribute(f"f{i}", FileReference(5, 5))], entry_index=i, size=4096)
        for i in range(2)
    }
    assert detect_entry_size(io.BytesIO(mft_image(records, count=3, entry_size=4096))) == 4096


def test_detect_skips_damaged_first_slot():
    records = {
        i: file_record([file_name_attribute(f"f{i}", FileReference(5, 5))], entry_index=i, size=2048)
        for i in (1, 2)
    }
    image = bytearray(mft_image(records, count=3, entry_size=2048))
    image[0:2048] = b"\xde\xad" * 1024
    assert detect_entry_size(io.BytesIO(bytes(image))) == 2048


def test_detect_on_empty_stream():
    assert detect_entry_size(io.BytesIO(b"")) == 1024


def test_entry_count(mft_stream):
    parser = MftParser(mft_stream)
    assert parser.entry_size == 1024
    assert parser.entry_count == 40
    assert len(parser) == 40


def test_get_entry(mft_stream):
    entry = MftParser(mft_stream).get_entry(32)
    assert entry.entry_index == 32
    assert entry.best_file_name().name == "cmd.exe"
    assert MftParser(mft_stream).get_entry(1).is_unused


def test_entry_out_of_range(mft_stream):
    parser = MftParser(mft_stream)
    with pytest.raises(EntryOutOfRange):
        parser.get_entry(40)
    with pytest.raises(EntryOutOfRange):
        parser.get_entry(-1)


def test_iter_entries_yields_decode_errors(mft_stream):
    items = list(MftParser(mft_stream).iter_entries())
    assert len(items) == 40
    assert isinstance(items[35], InvalidSignature)
    assert items[32].entry_index == 32


def test_iter_entries_skips_indexes_past_the_end(mft_stream):
    items = list(MftParser(mft_stream).iter_entries([30, 31, 500]))
    assert [e.entry_index for e in items] == [30, 31]


def test_lookup_by_reference(mft_stream):
    parser = MftParser(mft_stream)
    assert parser.get_entry_by_reference(FileReference(31, 1)).entry_index == 31
    with pytest.raises(EntryNotFound):
        parser.get_entry_by_reference(FileReference(12, 1))
    with pytest.raises(EntryNotFound):
        parser.get_entry_by_reference(FileReference(35, 1))
    with pytest.raises(EntryNotFound):
        parser.get_entry_by_reference(FileReference(400, 1))


def test_full_paths(mft_stream):
    parser = MftParser(mft_stream)
    assert str(parser.get_full_path(parser.get_entry(32))) == "\\Windows\\System32\\cmd.exe"
    assert str(parser.get_full_path(FileReference(34, 1))) == "\\Windows\\System32\\notepad.exe"
    assert str(parser.get_full_path(parser.get_entry(5))) == "\\"
    assert parser.get_full_path(FileReference(33, 1)).status == PathStatus.STALE_PARENT


def test_explicit_settings(mft_stream):
    settings = ParserSettings(entry_size=1024, cluster_size=4096, namespace_policy=NamespacePolicy.EXCLUDE_DOS)
    parser = MftParser(mft_stream, settings)
    assert parser.resolver.policy == NamespacePolicy.EXCLUDE_DOS
    assert parser.get_entry(32).cluster_size == 4096


def test_invalid_settings():
    with pytest.raises(ValueError):
        ParserSettings(sector_size=0)
    with pytest.raises(ValueError):
        ParserSettings(cluster_size=0)


def test_from_path(mft_file):
    with MftParser.from_path(mft_file) as parser:
        assert parser.entry_count == 40
        assert parser.get_entry(31).best_file_name().name == "System32"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        MftParser.from_path(tmp_path / "nope")
