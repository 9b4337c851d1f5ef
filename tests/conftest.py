import io

import pytest

from ntfs_builders import (
    ATTR_DATA,
    ATTR_STANDARD_INFORMATION,
    directory_record,
    file_name_attribute,
    file_record,
    mft_image,
    resident_attribute,
    standard_info_value,
    usn_record_v2,
)
from ntfs_forensic.flags import FileNamespace
from ntfs_forensic.reference import FileReference

ROOT = FileReference(5, 5)

# entry index -> (name, parent) for the sample volume:
#   \Windows\System32\cmd.exe, \Windows\System32\notepad.exe, \Users
WINDOWS = FileReference(30, 1)
SYSTEM32 = FileReference(31, 1)
USERS = FileReference(33, 2)


@pytest.fixture
def usn_sample() -> bytes:
    """96-byte USN_RECORD_V2 for BTDevManager.log."""
    return usn_record_v2(
        "BTDevManager.log",
        file_reference=0x0007000000013A61,
        parent_reference=0x0002000000013A5E,
        usn=20342374400,
        reason=0x2,
        file_attributes=8224,
    )


@pytest.fixture
def sample_records() -> dict[int, bytes]:
    return {
        0: file_record(
            [
                resident_attribute(ATTR_STANDARD_INFORMATION, standard_info_value(flags=0x06)),
                file_name_attribute("$MFT", ROOT, FileNamespace.WIN32_AND_DOS),
            ],
            entry_index=0,
        ),
        5: directory_record(".", ROOT, entry_index=5, sequence=5),
        30: directory_record("Windows", ROOT, entry_index=30),
        31: directory_record("System32", WINDOWS, entry_index=31),
        32: file_record(
            [
                resident_attribute(ATTR_STANDARD_INFORMATION, standard_info_value()),
                file_name_attribute("CMD~1.EXE", SYSTEM32, FileNamespace.DOS),
                file_name_attribute("cmd.exe", SYSTEM32, FileNamespace.WIN32),
                resident_attribute(ATTR_DATA, b"MZ\x90\x00payload"),
                resident_attribute(ATTR_DATA, b"[ZoneTransfer]\r\nZoneId=3\r\n", name="Zone.Identifier"),
            ],
            entry_index=32,
        ),
        33: directory_record("Users", ROOT, entry_index=33, sequence=2),
        34: file_record(
            [file_name_attribute("notepad.exe", SYSTEM32)],
            entry_index=34,
        ),
        35: b"BAAD" + bytes(1020),
    }


@pytest.fixture
def mft_bytes(sample_records) -> bytes:
    return mft_image(sample_records, count=40)


@pytest.fixture
def mft_stream(mft_bytes) -> io.BytesIO:
    return io.BytesIO(mft_bytes)


@pytest.fixture
def mft_file(tmp_path, mft_bytes):
    path = tmp_path / "$MFT"
    path.write_bytes(mft_bytes)
    return path
