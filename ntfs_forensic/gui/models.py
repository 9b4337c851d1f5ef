"""
Table models for the viewer. Rows are prepared off the GUI thread by the
loaders; the models only filter, sort and format them.
"""

import fnmatch
from dataclasses import dataclass

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt
from PySide6.QtGui import QColor

from ..entry import MftEntry
from ..errors import AttributeDecodeError
from ..flags import USN_REASON_DESCRIPTIONS, flag_descriptions, flag_names
from ..paths import PathStatus, ResolvedPath
from ..settings import NamespacePolicy
from ..usn import UsnJournalEntry

ENTRY_ROLE = Qt.ItemDataRole.UserRole

_PARTIAL_PATH_COLOR = (0x5A, 0x3D, 0x1F)
_FIXUP_MISMATCH_COLOR = (0x63, 0x1F, 0x2E)


@dataclass
class EntryRow:
    """Display fields of one MFT entry plus the entry itself for the detail pane."""
    entry: MftEntry
    path: ResolvedPath
    name: str
    attribute_count: int
    attribute_errors: int

    @classmethod
    def build(cls, entry: MftEntry, path: ResolvedPath,
              policy: NamespacePolicy = NamespacePolicy.PREFER_WIN32) -> "EntryRow":
        fn = entry.best_file_name(policy)
        attrs = list(entry.iter_attributes())
        errors = sum(1 for a in attrs if isinstance(a, AttributeDecodeError))
        return cls(
            entry=entry,
            path=path,
            name=fn.name if fn else "",
            attribute_count=len(attrs) - errors,
            attribute_errors=errors,
        )

    def flags_text(self) -> str:
        names = flag_names(type(self.entry.header.flags), int(self.entry.header.flags))
        return "|".join(names)

    def fixup_text(self) -> str:
        if not self.entry.fixup_mismatches:
            return "ok"
        return "mismatch " + ",".join(str(s) for s in self.entry.fixup_mismatches)

    def display(self) -> tuple:
        return (
            self.entry.entry_index,
            self.entry.header.sequence,
            self.name,
            str(self.path),
            self.path.status.name,
            self.flags_text(),
            self.attribute_count,
            self.fixup_text(),
        )

    def matches(self, search: str) -> bool:
        """Substring match on number, name and path; * and ? switch to a wildcard name match."""
        if not search:
            return True
        if "*" in search or "?" in search:
            return fnmatch.fnmatch(self.name.lower(), search) or fnmatch.fnmatch(str(self.entry.entry_index), search)
        hay = " ".join((str(self.entry.entry_index), self.name, str(self.path))).lower()
        return search in hay


class EntryTableModel(QAbstractTableModel):
    """
    Full-count model over loaded entries; rowCount() is the number of rows
    passing the current filter.
    """
    COLUMNS = ["MFT #", "Seq", "Name", "Full path", "Path status", "Flags", "Attributes", "Fixups"]

    def __init__(self, parent=None):
        super().__init__(parent)
        self._rows: list[EntryRow] = []
        self._filtered: list[int] = []
        self._search = ""

    def set_rows(self, rows: list[EntryRow]) -> None:
        self.beginResetModel()
        self._rows = rows
        self._filtered = [i for i, row in enumerate(rows) if row.matches(self._search)]
        self.endResetModel()

    def set_filter(self, search: str) -> None:
        self.beginResetModel()
        self._search = (search or "").strip().lower()
        self._filtered = [i for i, row in enumerate(self._rows) if row.matches(self._search)]
        self.endResetModel()

    def total(self) -> int:
        return len(self._rows)

    def row_at(self, view_row: int) -> EntryRow | None:
        if 0 <= view_row < len(self._filtered):
            return self._rows[self._filtered[view_row]]
        return None

    def rowCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._filtered)

    def columnCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self.COLUMNS)

    def data(self, index, role=Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        row = self.row_at(index.row())
        if row is None:
            return None
        if role == Qt.ItemDataRole.DisplayRole:
            return row.display()[index.column()]
        if role == ENTRY_ROLE:
            return row.entry.entry_index
        if role == Qt.ItemDataRole.BackgroundRole:
            if row.entry.fixup_mismatches:
                return QColor(*_FIXUP_MISMATCH_COLOR)
            if row.path.status != PathStatus.COMPLETE:
                return QColor(*_PARTIAL_PATH_COLOR)
        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role=Qt.ItemDataRole.DisplayRole):
        if orientation == Qt.Orientation.Horizontal and role == Qt.ItemDataRole.DisplayRole and 0 <= section < len(self.COLUMNS):
            return self.COLUMNS[section]
        return None

    def sort(self, column: int, order=Qt.SortOrder.AscendingOrder):
        if column < 0 or column >= len(self.COLUMNS):
            return

        def sort_key(i: int):
            value = self._rows[i].display()[column]
            return value.lower() if isinstance(value, str) else value

        self.layoutAboutToBeChanged.emit()
        self._filtered.sort(key=sort_key, reverse=order == Qt.SortOrder.DescendingOrder)
        self.layoutChanged.emit()


def usn_reason_tooltip(record: UsnJournalEntry) -> str:
    return "\n".join(f"{name}: {text}" for name, text in flag_descriptions(record.reason, USN_REASON_DESCRIPTIONS))


def usn_display_fields(record: UsnJournalEntry) -> tuple:
    return (
        record.timestamp_iso(),
        record.usn,
        str(record.file_ref()),
        str(record.parent_ref()),
        record.file_name,
        record.reason_string(),
    )


class UsnTableModel(QAbstractTableModel):
    COLUMNS = ["Timestamp", "USN", "Entry", "Parent", "Name", "Reasons"]

    def __init__(self, parent=None):
        super().__init__(parent)
        self._records: list[UsnJournalEntry] = []

    def set_records(self, records: list[UsnJournalEntry]) -> None:
        self.beginResetModel()
        self._records = records
        self.endResetModel()

    def record_at(self, row: int) -> UsnJournalEntry | None:
        if 0 <= row < len(self._records):
            return self._records[row]
        return None

    def rowCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self._records)

    def columnCount(self, parent=QModelIndex()):
        if parent.isValid():
            return 0
        return len(self.COLUMNS)

    def data(self, index, role=Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        record = self.record_at(index.row())
        if record is None:
            return None
        if role == Qt.ItemDataRole.DisplayRole:
            return usn_display_fields(record)[index.column()]
        if role == Qt.ItemDataRole.ToolTipRole:
            return usn_reason_tooltip(record)
        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role=Qt.ItemDataRole.DisplayRole):
        if orientation == Qt.Orientation.Horizontal and role == Qt.ItemDataRole.DisplayRole and 0 <= section < len(self.COLUMNS):
            return self.COLUMNS[section]
        return None
