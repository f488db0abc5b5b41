from __future__ import annotations

import sys
from typing import Sequence

from PySide6.QtCore import QObject, QTimer, Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QComboBox,
    QFrame,
    QGridLayout,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMainWindow,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.query_view import sort_villages, summarize
from panchayatdb.app.registry_models import ValidationError, VillageRecord
from panchayatdb.app.registry_workspace import RegistryWorkspace
from panchayatdb.app.remote_store import RemoteError, RemoteStore
from panchayatdb.app.session import AdminSession
from panchayatdb.app.settings_store import (
    load_change_feed_debounce_ms,
    load_dark_mode,
    load_data_storage_backend,
    load_data_storage_folder,
    load_supabase_settings,
)
from panchayatdb.app.storage_runtime import StorageRuntimeSelection, build_storage_runtime
from panchayatdb.ui.dialogs import CitizenDetailsDialog, LoginDialog, VillageEditorDialog
from panchayatdb.ui.theme import apply_app_theme
from panchayatdb.ui.widgets import CitizenTablePanel, CitizenWizardPanel
from panchayatdb.ui.window import AppConfirmDialog, AppMessageDialog


APP_NAME = "panchayatdb"
APP_VERSION = "0.1.0"

_VILLAGE_COLUMNS: tuple[str, ...] = ("Village", "District", "Pincode", "Citizens")


class RegistryWindow(QMainWindow):
    logout_requested = Signal()
    closed = Signal()

    def __init__(
        self,
        *,
        session: AdminSession,
        store: RemoteStore,
        backend: str,
        change_feed_debounce_ms: int = 0,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._backend = backend
        self._scope_village_id: int | None = None
        debounce_ms = max(0, int(change_feed_debounce_ms))
        self._workspace = RegistryWorkspace(
            store,
            defer=lambda callback: QTimer.singleShot(debounce_ms, callback),
            on_error=self._show_remote_error,
        )
        self._remove_listeners = (
            self._workspace.villages.add_listener(self._refresh_all_views),
            self._workspace.citizens.add_listener(self._refresh_all_views),
        )

        self.setWindowTitle("Panchayat Registry")
        self.resize(1180, 760)

        central = QWidget(self)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(16, 12, 16, 16)
        layout.setSpacing(12)
        layout.addLayout(self._build_header(central))

        self._tabs = QTabWidget(central)
        self._tabs.addTab(self._build_dashboard_tab(), "Dashboard")
        self._tabs.addTab(self._build_villages_tab(), "Villages")
        self._wizard_panel = CitizenWizardPanel(self._workspace.new_wizard, self._tabs)
        self._wizard_panel.saved.connect(self._on_citizen_saved)
        self._wizard_panel.cancelled.connect(lambda: self._tabs.setCurrentIndex(0))
        self._tabs.addTab(self._wizard_panel, "Citizen")
        layout.addWidget(self._tabs, 1)
        self.setCentralWidget(central)

    @property
    def session(self) -> AdminSession:
        return self._session

    @property
    def workspace(self) -> RegistryWorkspace:
        return self._workspace

    def open_workspace(self) -> None:
        try:
            self._workspace.open()
        except RemoteError:
            # Reported through on_error; the empty views stay usable.
            pass
        self._refresh_all_views()

    def _build_header(self, parent: QWidget) -> QHBoxLayout:
        header = QHBoxLayout()
        header.setSpacing(8)
        title = QLabel("Panchayat Registry", parent)
        title.setObjectName("RegistrySectionTitle")
        header.addWidget(title)
        header.addStretch(1)
        session_label = QLabel(f"Signed in as {self._session.display_name} ({self._backend})", parent)
        session_label.setObjectName("RegistryHint")
        header.addWidget(session_label)
        refresh_button = QPushButton("Refresh", parent)
        refresh_button.setObjectName("RegistryButton")
        refresh_button.clicked.connect(self._on_refresh)
        header.addWidget(refresh_button)
        logout_button = QPushButton("Logout", parent)
        logout_button.setObjectName("RegistryButton")
        logout_button.clicked.connect(self._on_logout)
        header.addWidget(logout_button)
        return header

    def _build_dashboard_tab(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        layout.setContentsMargins(0, 8, 0, 0)
        layout.setSpacing(12)

        summary = QGridLayout()
        summary.setHorizontalSpacing(16)
        self._summary_labels: dict[str, QLabel] = {}
        for column, (key, caption) in enumerate(
            (("villages", "Villages"), ("citizens", "Citizens"), ("average_age", "Average Age"))
        ):
            card = QFrame(page)
            card.setObjectName("RegistrySummaryCard")
            card_layout = QVBoxLayout(card)
            card_layout.setContentsMargins(12, 10, 12, 10)
            value_label = QLabel("0", card)
            value_label.setObjectName("RegistrySummaryValue")
            caption_label = QLabel(caption, card)
            caption_label.setObjectName("RegistryHint")
            card_layout.addWidget(value_label)
            card_layout.addWidget(caption_label)
            self._summary_labels[key] = value_label
            summary.addWidget(card, 0, column)
        layout.addLayout(summary)

        scope_row = QHBoxLayout()
        scope_row.setSpacing(8)
        scope_label = QLabel("Village", page)
        scope_row.addWidget(scope_label)
        self._scope_combo = QComboBox(page)
        self._scope_combo.currentIndexChanged.connect(self._on_scope_changed)
        scope_row.addWidget(self._scope_combo, 1)
        add_citizen_button = QPushButton("Add Citizen", page)
        add_citizen_button.setObjectName("RegistryButton")
        add_citizen_button.setProperty("primary", "true")
        add_citizen_button.clicked.connect(self._on_add_citizen)
        scope_row.addWidget(add_citizen_button)
        layout.addLayout(scope_row)

        self._citizen_table = CitizenTablePanel(page)
        self._citizen_table.view_requested.connect(self._on_view_citizen)
        self._citizen_table.edit_requested.connect(self._on_edit_citizen)
        self._citizen_table.delete_requested.connect(self._on_delete_citizen)
        layout.addWidget(self._citizen_table, 1)
        return page

    def _build_villages_tab(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        layout.setContentsMargins(0, 8, 0, 0)
        layout.setSpacing(8)

        self._village_table = QTableWidget(0, len(_VILLAGE_COLUMNS), page)
        self._village_table.setHorizontalHeaderLabels(list(_VILLAGE_COLUMNS))
        self._village_table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._village_table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._village_table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self._village_table.verticalHeader().setVisible(False)
        self._village_table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self._village_table.cellDoubleClicked.connect(lambda _row, _column: self._on_edit_village())
        layout.addWidget(self._village_table, 1)

        actions = QHBoxLayout()
        actions.setSpacing(8)
        actions.addStretch(1)
        for text, handler, object_name in (
            ("Add Village", self._on_add_village, "RegistryButton"),
            ("Edit", self._on_edit_village, "RegistryButton"),
            ("Delete", self._on_delete_village, "RegistryDangerButton"),
        ):
            button = QPushButton(text, page)
            button.setObjectName(object_name)
            button.clicked.connect(handler)
            actions.addWidget(button)
        layout.addLayout(actions)
        return page

    def _refresh_all_views(self) -> None:
        villages = sort_villages(self._workspace.villages.all_entries())
        citizens = self._workspace.citizens.all_entries()

        totals = summarize(villages, citizens)
        self._summary_labels["villages"].setText(str(totals.village_count))
        self._summary_labels["citizens"].setText(str(totals.citizen_count))
        self._summary_labels["average_age"].setText(str(totals.average_age))

        self._refresh_scope_combo(villages)
        self._citizen_table.set_data(citizens, villages)
        self._wizard_panel.set_villages(villages)

        citizen_counts: dict[int, int] = {}
        for citizen in citizens:
            citizen_counts[citizen.village_id] = citizen_counts.get(citizen.village_id, 0) + 1
        self._village_table.setRowCount(len(villages))
        for row_index, village in enumerate(villages):
            values = (
                village.name,
                village.district,
                village.pincode,
                str(citizen_counts.get(village.village_id, 0)),
            )
            for column_index, value in enumerate(values):
                item = QTableWidgetItem(value)
                item.setData(Qt.ItemDataRole.UserRole, village.village_id)
                self._village_table.setItem(row_index, column_index, item)

    def _refresh_scope_combo(self, villages: Sequence[VillageRecord]) -> None:
        self._scope_combo.blockSignals(True)
        self._scope_combo.clear()
        self._scope_combo.addItem("All villages", None)
        selected_index = 0
        for index, village in enumerate(villages, start=1):
            self._scope_combo.addItem(village.name, village.village_id)
            if village.village_id == self._scope_village_id:
                selected_index = index
        self._scope_combo.setCurrentIndex(selected_index)
        self._scope_combo.blockSignals(False)
        if selected_index == 0 and self._scope_village_id is not None:
            # The scoped village is gone.
            self._scope_village_id = None
            self._citizen_table.set_village_scope(None)

    def _selected_village(self) -> VillageRecord | None:
        row_index = self._village_table.currentRow()
        if row_index < 0:
            return None
        item = self._village_table.item(row_index, 0)
        if item is None:
            return None
        return self._workspace.villages.get(item.data(Qt.ItemDataRole.UserRole))

    def _on_scope_changed(self, _index: int) -> None:
        value = self._scope_combo.currentData()
        self._scope_village_id = int(value) if value is not None else None
        self._citizen_table.set_village_scope(self._scope_village_id)

    def _on_refresh(self) -> None:
        try:
            self._workspace.refresh()
        except RemoteError as exc:
            self._show_remote_error(f"Could not refresh the registry: {exc}")

    def _on_add_village(self) -> None:
        dialog = VillageEditorDialog(record=None, parent=self)
        if dialog.exec() != dialog.DialogCode.Accepted:
            return
        try:
            self._workspace.coordinator.create_village(dialog.build_record())
        except ValidationError as exc:
            self._show_validation_error(exc)
        except RemoteError:
            # Reported through on_error.
            return

    def _on_edit_village(self) -> None:
        village = self._selected_village()
        if village is None:
            self._show_info("Select a village to edit.")
            return
        dialog = VillageEditorDialog(record=village, parent=self)
        if dialog.exec() != dialog.DialogCode.Accepted:
            return
        edited = dialog.build_record()
        try:
            self._workspace.coordinator.update_village(
                village.village_id,
                {"name": edited.name, "district": edited.district, "pincode": edited.pincode},
            )
        except ValidationError as exc:
            self._show_validation_error(exc)
        except RemoteError:
            # Reported through on_error.
            return

    def _on_delete_village(self) -> None:
        village = self._selected_village()
        if village is None:
            self._show_info("Select a village to delete.")
            return
        affected = sum(
            1 for citizen in self._workspace.citizens if citizen.village_id == village.village_id
        )
        message = f"Delete village '{village.name}'?"
        if affected:
            noun = "citizen record" if affected == 1 else "citizen records"
            message += f"\n\nThis will also delete {affected} {noun} registered in this village."
        if not AppConfirmDialog.ask(
            parent=self,
            title="Delete Village",
            message=message,
            confirm_text="Delete",
            danger=True,
        ):
            return
        try:
            self._workspace.coordinator.delete_village(village.village_id)
        except RemoteError:
            # Reported through on_error.
            return

    def _on_add_citizen(self) -> None:
        self._wizard_panel.start_create()
        self._tabs.setCurrentWidget(self._wizard_panel)

    def _on_view_citizen(self, aadhar_number: str) -> None:
        record = self._workspace.citizens.get(aadhar_number)
        if record is None:
            self._show_info("That citizen record no longer exists.")
            return
        village = self._workspace.villages.get(record.village_id)
        CitizenDetailsDialog(
            record=record,
            village_name=village.name if village is not None else "",
            parent=self,
        ).exec()

    def _on_edit_citizen(self, aadhar_number: str) -> None:
        record = self._workspace.citizens.get(aadhar_number)
        if record is None:
            self._show_info("That citizen record no longer exists.")
            return
        self._wizard_panel.start_edit(record)
        self._tabs.setCurrentWidget(self._wizard_panel)

    def _on_delete_citizen(self, aadhar_number: str) -> None:
        record = self._workspace.citizens.get(aadhar_number)
        if record is None:
            return
        if not AppConfirmDialog.ask(
            parent=self,
            title="Delete Citizen",
            message=f"Delete the record for '{record.name}' ({record.aadhar_number})?",
            confirm_text="Delete",
            danger=True,
        ):
            return
        try:
            self._workspace.coordinator.delete_citizen(aadhar_number)
        except RemoteError:
            # Reported through on_error.
            return

    def _on_citizen_saved(self, aadhar_number: str) -> None:
        db_debug("window.citizen_saved", aadhar_number=aadhar_number)
        self._show_info("Citizen record saved.")
        self._tabs.setCurrentIndex(0)

    def _on_logout(self) -> None:
        self.logout_requested.emit()

    def _show_remote_error(self, message: str) -> None:
        AppMessageDialog.show_warning(parent=self, title="Registry Error", message=message)

    def _show_validation_error(self, exc: ValidationError) -> None:
        AppMessageDialog.show_warning(
            parent=self,
            title="Check the Form",
            message="\n".join(str(message) for message in exc.errors.values()),
        )

    def _show_info(self, message: str) -> None:
        AppMessageDialog.show_info(parent=self, title="Panchayat Registry", message=message)

    def closeEvent(self, event) -> None:
        for remove in self._remove_listeners:
            remove()
        self._workspace.close()
        db_debug("window.closed", admin=self._session.username)
        super().closeEvent(event)
        self.closed.emit()


class RegistrySessionController(QObject):
    """Runs the login -> window -> logout cycle on one storage runtime."""

    def __init__(
        self,
        app: QApplication,
        runtime: StorageRuntimeSelection,
        *,
        change_feed_debounce_ms: int,
    ) -> None:
        super().__init__()
        self._app = app
        self._runtime = runtime
        self._change_feed_debounce_ms = change_feed_debounce_ms
        self._window: RegistryWindow | None = None
        self._logging_out = False

    @property
    def window(self) -> RegistryWindow | None:
        return self._window

    def start(self) -> bool:
        login = LoginDialog(store=self._runtime.store)
        if login.exec() != login.DialogCode.Accepted or login.session is None:
            return False
        window = RegistryWindow(
            session=login.session,
            store=self._runtime.store,
            backend=self._runtime.backend,
            change_feed_debounce_ms=self._change_feed_debounce_ms,
        )
        window.logout_requested.connect(self._on_logout_requested)
        window.closed.connect(self._on_window_closed)
        self._window = window
        window.show()
        window.open_workspace()
        return True

    def _on_logout_requested(self) -> None:
        window = self._window
        if window is None:
            return
        self._logging_out = True
        window.close()
        window.deleteLater()
        self._window = None
        self._logging_out = False
        db_debug("session.logout")
        if not self.start():
            self._app.quit()

    def _on_window_closed(self) -> None:
        if self._logging_out:
            return
        self._window = None
        self._app.quit()


def run(argv: Sequence[str] | None = None) -> int:
    app = QApplication.instance()
    if app is None:
        app = QApplication(list(argv or sys.argv))

    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    app.setQuitOnLastWindowClosed(False)
    apply_app_theme(app, dark_mode=load_dark_mode(default=False))

    runtime = build_storage_runtime(
        backend=load_data_storage_backend(),
        data_root=load_data_storage_folder(),
        supabase_settings=load_supabase_settings(),
    )
    db_debug("app.started", backend=runtime.backend, app_version=APP_VERSION)
    for warning in runtime.warnings:
        AppMessageDialog.show_warning(parent=None, title="Storage", message=warning)

    controller = RegistrySessionController(
        app,
        runtime,
        change_feed_debounce_ms=load_change_feed_debounce_ms(),
    )
    if not controller.start():
        return 0
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(run())
