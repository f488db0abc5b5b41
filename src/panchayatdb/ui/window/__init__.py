from __future__ import annotations

from panchayatdb.ui.window.app_dialogs import AppConfirmDialog, AppMessageDialog
from panchayatdb.ui.window.frameless_dialog import FramelessDialog

__all__ = [
    "AppConfirmDialog",
    "AppMessageDialog",
    "FramelessDialog",
]
