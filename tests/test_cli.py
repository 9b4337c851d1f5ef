import csv
import json

import pytest

from ntfs_builders import usn_record_v2
from ntfs_forensic.cli import (
    CliError,
    create_output_file,
    iter_ranges,
    mft_dump,
    parse_ranges,
    sanitized,
    usn_dump,
)
from ntfs_forensic.export import FLAT_ENTRY_FIELDS, USN_FIELDS

# entries 0, 5, 30-34 are in use; 35 has a bad signature
USED_ENTRIES = [0, 5, 30, 31, 32, 33, 34]


@pytest.mark.parametrize("text, expected", [
    ("1", [1]),
    ("1-5", [1, 2, 3, 4, 5]),
    ("1-5,8", [1, 2, 3, 4, 5, 8]),
    ("1-5,8,10-12", [1, 2, 3, 4, 5, 8, 10, 11, 12]),
    ("1-3,20-22", [1, 2, 3, 20, 21, 22]),
])
def test_parse_ranges(text, expected):
    assert list(iter_ranges(parse_ranges(text))) == expected


@pytest.mark.parametrize("text", ["hello", "1-5-8", ""])
def test_parse_ranges_rejects(text):
    with pytest.raises(ValueError):
        parse_ranges(text)


def test_sanitized():
    assert sanitized("\\Windows\\System32/cmd.exe") == "_Windows_System32_cmd.exe"


def test_mft_dump_jsonl(mft_file, tmp_path):
    out = tmp_path / "out" / "entries.jsonl"
    assert mft_dump([str(mft_file), "-o", "jsonl", "-f", str(out)]) == 0
    rows = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert [r["entry_index"] for r in rows] == USED_ENTRIES
    by_index = {r["entry_index"]: r for r in rows}
    assert by_index[32]["full_path"] == "\\Windows\\System32\\cmd.exe"


def test_mft_dump_csv_with_ranges(mft_file, tmp_path):
    out = tmp_path / "entries.csv"
    assert mft_dump([str(mft_file), "-o", "csv", "-f", str(out), "-r", "30-32,34"]) == 0
    with open(out, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = list(reader)
    assert reader.fieldnames == FLAT_ENTRY_FIELDS
    assert [r["full_path"] for r in rows] == [
        "\\Windows",
        "\\Windows\\System32",
        "\\Windows\\System32\\cmd.exe",
        "\\Windows\\System32\\notepad.exe",
    ]
    assert rows[2]["is_a_directory"] == "False"


def test_mft_dump_pretty_json_to_stdout(mft_file, capsys):
    assert mft_dump([str(mft_file), "-r", "34"]) == 0
    entry = json.loads(capsys.readouterr().out)
    assert entry["full_path"] == "\\Windows\\System32\\notepad.exe"


def test_mft_dump_extracts_resident_streams(mft_file, tmp_path):
    streams = tmp_path / "streams"
    out = tmp_path / "entries.jsonl"
    assert mft_dump([str(mft_file), "-o", "jsonl", "-f", str(out), "-e", str(streams)]) == 0
    written = sorted(p.name for p in streams.iterdir())
    assert len(written) == 2
    assert all(name.startswith("_Windows_System32_cmd.exe__") for name in written)
    assert any(name.endswith("_0_.dontrun") for name in written)
    zone = next(p for p in streams.iterdir() if p.name.endswith("_1_Zone.Identifier.dontrun"))
    assert zone.read_bytes() == b"[ZoneTransfer]\r\nZoneId=3\r\n"


def test_mft_dump_missing_input(tmp_path, capsys):
    assert mft_dump([str(tmp_path / "missing")]) == 1
    assert "A runtime error has occurred" in capsys.readouterr().err


def test_mft_dump_refuses_directory_output(mft_file, tmp_path, capsys):
    assert mft_dump([str(mft_file), "-f", str(tmp_path)]) == 1
    assert "An error occurred while setting up the app" in capsys.readouterr().err


def test_usn_dump_csv(tmp_path):
    journal = tmp_path / "$J"
    journal.write_bytes(bytes(1024) + usn_record_v2("a.txt", usn=1024) + usn_record_v2("b.txt", usn=1096))
    out = tmp_path / "usn.csv"
    assert usn_dump([str(journal), "-o", "csv", "-f", str(out)]) == 0
    with open(out, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = list(reader)
    assert reader.fieldnames == USN_FIELDS
    assert [(r["offset"], r["file_name"]) for r in rows] == [("1024", "a.txt"), ("1096", "b.txt")]


def test_usn_dump_jsonl_to_stdout(tmp_path, capsys):
    journal = tmp_path / "$J"
    journal.write_bytes(usn_record_v2("a.txt"))
    assert usn_dump([str(journal), "-o", "jsonl"]) == 0
    record = json.loads(capsys.readouterr().out)
    assert record["file_name"] == "a.txt"
    assert record["file_ref"] == "32-1"


def test_create_output_file_refuses_directory(tmp_path):
    with pytest.raises(CliError):
        create_output_file(tmp_path, confirm=False)


def test_create_output_file_asks_before_overwriting(tmp_path, monkeypatch):
    target = tmp_path / "out.json"
    target.write_text("keep me")
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    with pytest.raises(CliError, match="Cancelled"):
        create_output_file(target, confirm=True)
    assert target.read_text() == "keep me"

    monkeypatch.setattr("builtins.input", lambda prompt: "y")
    with create_output_file(target, confirm=True) as f:
        f.write("new")
    assert target.read_text() == "new"
