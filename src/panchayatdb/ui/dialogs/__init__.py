from panchayatdb.ui.dialogs.registry_dialogs import CitizenDetailsDialog, LoginDialog, VillageEditorDialog

__all__ = [
    "CitizenDetailsDialog",
    "LoginDialog",
    "VillageEditorDialog",
]
