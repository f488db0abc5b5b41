from __future__ import annotations

from pathlib import Path

from PySide6.QtWidgets import QApplication


_THEME_DIR = Path(__file__).resolve().parent
_BASE_SHEET = "registry.qss"
_PALETTE_SHEETS: dict[bool, str] = {
    False: "registry_light.qss",
    True: "registry_dark.qss",
}
DARK_MODE_PROPERTY = "panchayatdb.dark_mode"


def _read_sheet(file_name: str) -> str:
    try:
        return (_THEME_DIR / file_name).read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""


def stylesheet_for(dark_mode: bool) -> str:
    """Shared layout rules followed by the light or dark palette."""
    sheets = (_read_sheet(_BASE_SHEET), _read_sheet(_PALETTE_SHEETS[bool(dark_mode)]))
    return "\n\n".join(sheet for sheet in sheets if sheet)


def apply_app_theme(app: QApplication, *, dark_mode: bool) -> None:
    app.setProperty(DARK_MODE_PROPERTY, bool(dark_mode))
    app.setStyleSheet(stylesheet_for(dark_mode))
