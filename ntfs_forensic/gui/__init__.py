"""PySide6 desktop viewer."""
