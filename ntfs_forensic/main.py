"""NTFS Forensic Viewer - desktop $MFT and USN journal browser."""

import sys

from PySide6.QtCore import Qt
from PySide6.QtGui import QFont
from PySide6.QtWidgets import QApplication

from .gui.main_window import ViewerMainWindow


def main():
    # High DPI: must be set before QApplication
    QApplication.setHighDpiScaleFactorRoundingPolicy(Qt.HighDpiScaleFactorRoundingPolicy.PassThrough)
    app = QApplication(sys.argv)
    app.setApplicationName("NTFS Forensic Viewer")
    app.setOrganizationName("Forensic Tools")
    app.setFont(QFont("Ubuntu", 10))
    win = ViewerMainWindow()
    win.showMaximized()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
