"""
Main window of the NTFS forensic viewer: an MFT tab with full paths and
integrity state, a USN journal tab, and a JSON detail pane for the selected
entry.
"""

import json
from pathlib import Path

from PySide6.QtCore import QThread, Qt, Signal
from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QAbstractItemView,
    QFileDialog,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QProgressDialog,
    QSplitter,
    QStatusBar,
    QTableView,
    QTabWidget,
    QTextEdit,
    QVBoxLayout,
    QHBoxLayout,
    QWidget,
)

from ..errors import DecodeError
from ..export import entry_to_dict
from ..parser import MftParser
from ..usn import JournalIterator
from .models import EntryRow, EntryTableModel, UsnTableModel

_PROGRESS_EVERY = 2000


class LoadMftThread(QThread):
    """Decode every entry and resolve its path in the background."""
    progress = Signal(int, int)  # current, total
    progress_phase = Signal(str)
    finished_load = Signal(object, int)  # rows, undecodable entries
    error = Signal(str)

    def __init__(self, path: Path):
        super().__init__()
        self.path = path

    def run(self):
        try:
            rows = []
            failed = 0
            self.progress_phase.emit("Loading MFT entries...")
            with MftParser.from_path(self.path) as parser:
                total = parser.entry_count
                for n, item in enumerate(parser.iter_entries(), 1):
                    if isinstance(item, DecodeError):
                        failed += 1
                    elif not item.is_unused:
                        path = parser.get_full_path(item)
                        rows.append(EntryRow.build(item, path, parser.settings.namespace_policy))
                    if n % _PROGRESS_EVERY == 0:
                        self.progress.emit(n, total)
                self.progress.emit(total, total)
            self.finished_load.emit(rows, failed)
        except FileNotFoundError as e:
            self.error.emit(str(e))
        except Exception as e:
            self.error.emit(f"Parse error: {e}")


class LoadUsnThread(QThread):
    """Load a USN journal ($J) in the background."""
    progress = Signal(int, int)
    progress_phase = Signal(str)
    finished_load = Signal(object, int)  # records, undecodable records
    error = Signal(str)

    def __init__(self, path: Path):
        super().__init__()
        self.path = path

    def run(self):
        try:
            records = []
            failed = 0
            self.progress_phase.emit("Loading USN Journal ($J)...")
            with JournalIterator.from_path(self.path) as it:
                for item in it:
                    if isinstance(item, DecodeError):
                        failed += 1
                        continue
                    records.append(item)
                    if len(records) % _PROGRESS_EVERY == 0:
                        self.progress.emit(len(records), 0)
            self.progress.emit(len(records), len(records))
            self.finished_load.emit(records, failed)
        except FileNotFoundError as e:
            self.error.emit(str(e))
        except Exception as e:
            self.error.emit(f"USN parse error: {e}")


def _make_table(model) -> QTableView:
    table = QTableView()
    table.setModel(model)
    table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
    table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
    table.setAlternatingRowColors(True)
    table.verticalHeader().setVisible(False)
    table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Interactive)
    table.horizontalHeader().setStretchLastSection(True)
    return table


class ViewerMainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("NTFS Forensic Viewer | $MFT & USN Journal")
        self.setMinimumSize(1100, 700)
        self._load_thread: LoadMftThread | None = None
        self._load_usn_thread: LoadUsnThread | None = None
        self._progress: QProgressDialog | None = None
        self._setup_ui()

    def _setup_ui(self):
        file_menu = self.menuBar().addMenu("&File")
        open_mft_act = QAction("Open $MFT...", self)
        open_mft_act.setShortcut("Ctrl+O")
        open_mft_act.triggered.connect(self._on_open_mft)
        file_menu.addAction(open_mft_act)
        open_usn_act = QAction("Open $J (USN Journal)...", self)
        open_usn_act.triggered.connect(self._on_open_usn)
        file_menu.addAction(open_usn_act)
        file_menu.addSeparator()
        exit_act = QAction("E&xit", self)
        exit_act.setShortcut("Ctrl+Q")
        exit_act.triggered.connect(self.close)
        file_menu.addAction(exit_act)

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(10, 10, 10, 10)

        self._tabs = QTabWidget()
        self._tabs.setDocumentMode(True)
        layout.addWidget(self._tabs)

        # MFT tab: search row, table, detail pane
        mft_tab = QWidget()
        mft_layout = QVBoxLayout(mft_tab)
        search_row = QHBoxLayout()
        search_row.addWidget(QLabel("Search:"))
        self._search_edit = QLineEdit()
        self._search_edit.setPlaceholderText("entry number, name or path (* and ? match names)")
        self._search_edit.textChanged.connect(self._on_search_changed)
        search_row.addWidget(self._search_edit)
        mft_layout.addLayout(search_row)

        self._mft_model = EntryTableModel(self)
        self._mft_table = _make_table(self._mft_model)
        self._mft_table.setSortingEnabled(True)
        self._mft_table.selectionModel().currentRowChanged.connect(self._on_entry_selected)
        self._detail = QTextEdit()
        self._detail.setReadOnly(True)
        splitter = QSplitter(Qt.Orientation.Vertical)
        splitter.addWidget(self._mft_table)
        splitter.addWidget(self._detail)
        splitter.setSizes([500, 200])
        mft_layout.addWidget(splitter)
        self._tabs.addTab(mft_tab, "MFT")

        self._usn_model = UsnTableModel(self)
        self._usn_table = _make_table(self._usn_model)
        self._tabs.addTab(self._usn_table, "USN Journal")

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage("Open an $MFT or $J file to begin")

    # --- loading ---

    def _start_progress(self, label: str):
        self._progress = QProgressDialog(label, None, 0, 0, self)
        self._progress.setWindowTitle("NTFS Forensic Viewer")
        self._progress.setMinimumDuration(0)
        self._progress.setWindowModality(Qt.WindowModality.WindowModal)

    def _close_progress(self):
        if self._progress:
            self._progress.close()
            self._progress = None

    def _on_open_mft(self):
        path, _ = QFileDialog.getOpenFileName(self, "Select $MFT file", str(Path.home()), "All files (*)")
        if path:
            self.load_mft_file(Path(path))

    def _on_open_usn(self):
        path, _ = QFileDialog.getOpenFileName(self, "Select $J file", str(Path.home()), "All files (*)")
        if path:
            self.load_usn_file(Path(path))

    def load_mft_file(self, path: Path):
        self._status.showMessage(f"Loading {path.name}...")
        self._start_progress("Loading MFT entries...")
        self._load_thread = LoadMftThread(path)
        self._load_thread.progress.connect(self._on_load_progress)
        self._load_thread.progress_phase.connect(self._on_load_phase)
        self._load_thread.finished_load.connect(self._on_mft_loaded)
        self._load_thread.error.connect(self._on_load_error)
        self._load_thread.start()

    def load_usn_file(self, path: Path):
        self._status.showMessage(f"Loading {path.name}...")
        self._start_progress("Loading USN Journal ($J)...")
        self._load_usn_thread = LoadUsnThread(path)
        self._load_usn_thread.progress.connect(self._on_load_progress)
        self._load_usn_thread.progress_phase.connect(self._on_load_phase)
        self._load_usn_thread.finished_load.connect(self._on_usn_loaded)
        self._load_usn_thread.error.connect(self._on_load_error)
        self._load_usn_thread.start()

    def _on_load_progress(self, current: int, total: int):
        if self._progress is None:
            return
        if total > 0:
            self._progress.setMaximum(total)
            self._progress.setValue(current)
        self._progress.setLabelText(f"Loaded {current:,} records...")

    def _on_load_phase(self, phase: str):
        if self._progress:
            self._progress.setLabelText(phase)

    def _on_mft_loaded(self, rows: list, failed: int):
        self._close_progress()
        self._mft_model.set_rows(rows)
        partial = sum(1 for r in rows if not r.path.is_complete)
        torn = sum(1 for r in rows if r.entry.fixup_mismatches)
        self._status.showMessage(
            f"Loaded {len(rows):,} MFT entries  |  undecodable: {failed:,}  |  "
            f"partial paths: {partial:,}  |  fixup mismatches: {torn:,}"
        )
        self._tabs.setCurrentIndex(0)

    def _on_usn_loaded(self, records: list, failed: int):
        self._close_progress()
        self._usn_model.set_records(records)
        self._status.showMessage(f"Loaded {len(records):,} USN records  |  undecodable: {failed:,}")
        self._tabs.setCurrentIndex(1)

    def _on_load_error(self, msg: str):
        self._close_progress()
        self._status.showMessage("Load failed")
        QMessageBox.critical(self, "NTFS Forensic Viewer", msg)

    # --- interaction ---

    def _on_search_changed(self, text: str):
        self._mft_model.set_filter(text)
        self._status.showMessage(f"Showing {self._mft_model.rowCount():,} of {self._mft_model.total():,} entries")

    def _on_entry_selected(self, current, _previous):
        row = self._mft_model.row_at(current.row())
        if row is None:
            self._detail.clear()
            return
        self._detail.setPlainText(json.dumps(entry_to_dict(row.entry, row.path), indent=2, ensure_ascii=False))
