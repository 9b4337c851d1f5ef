import pytest

QtCore = pytest.importorskip("PySide6.QtCore")
pytest.importorskip("PySide6.QtGui")

from ntfs_forensic.gui.models import ENTRY_ROLE, EntryRow, EntryTableModel, UsnTableModel  # noqa: E402
from ntfs_forensic.parser import MftParser  # noqa: E402
from ntfs_forensic.reference import FileReference  # noqa: E402
from ntfs_forensic.usn import decode_record  # noqa: E402

Qt = QtCore.Qt


@pytest.fixture(scope="module")
def qt_app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


@pytest.fixture
def rows(mft_stream):
    parser = MftParser(mft_stream)
    out = []
    for item in parser.iter_entries():
        if isinstance(item, Exception) or item.is_unused:
            continue
        out.append(EntryRow.build(item, parser.get_full_path(item)))
    return out


def test_entry_row_fields(rows):
    cmd = next(r for r in rows if r.entry.entry_index == 32)
    assert cmd.name == "cmd.exe"
    assert cmd.attribute_count == 5
    assert cmd.attribute_errors == 0
    assert cmd.fixup_text() == "ok"
    assert cmd.flags_text() == "ALLOCATED"
    assert cmd.display()[3] == "\\Windows\\System32\\cmd.exe"


def test_entry_row_search(rows):
    cmd = next(r for r in rows if r.entry.entry_index == 32)
    assert cmd.matches("")
    assert cmd.matches("system32")
    assert cmd.matches("*.exe")
    assert not cmd.matches("notepad")


def test_entry_model_filter_and_sort(qt_app, rows):
    model = EntryTableModel()
    model.set_rows(rows)
    assert model.total() == 7
    assert model.rowCount() == 7
    assert model.columnCount() == len(EntryTableModel.COLUMNS)
    assert model.headerData(2, Qt.Orientation.Horizontal) == "Name"

    model.set_filter("*.exe")
    assert model.rowCount() == 2
    model.sort(2, Qt.SortOrder.DescendingOrder)
    assert model.data(model.index(0, 2)) == "notepad.exe"
    assert model.data(model.index(0, 0), ENTRY_ROLE) == 34


def test_complete_rows_are_not_highlighted(qt_app, rows):
    model = EntryTableModel()
    model.set_rows(rows)
    model.set_filter("cmd.exe")
    assert model.data(model.index(0, 0), Qt.ItemDataRole.BackgroundRole) is None


def test_usn_model(qt_app, usn_sample):
    model = UsnTableModel()
    model.set_records([decode_record(usn_sample)])
    assert model.rowCount() == 1
    assert model.data(model.index(0, 4)) == "BTDevManager.log"
    assert model.data(model.index(0, 2)) == str(FileReference(0x13A61, 7))
    assert model.record_at(3) is None
    tooltip = model.data(model.index(0, 5), Qt.ItemDataRole.ToolTipRole)
    assert tooltip.startswith("USN_REASON_DATA_EXTEND: ")
