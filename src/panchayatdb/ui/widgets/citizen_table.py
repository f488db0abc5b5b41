from __future__ import annotations

from typing import Sequence

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from panchayatdb.app.query_view import (
    ELLIPSIS,
    SEARCH_BY_AADHAR,
    SEARCH_BY_NAME,
    SORT_BY_AADHAR,
    SORT_BY_AGE,
    SORT_BY_NAME,
    FilterSpec,
    QueryResult,
    SortSpec,
    page_window,
    run_query,
)
from panchayatdb.app.registry_models import CitizenRecord, VillageRecord, choice_label


_COLUMNS: tuple[tuple[str, str | None], ...] = (
    ("Name", SORT_BY_NAME),
    ("Aadhar Number", SORT_BY_AADHAR),
    ("Age", SORT_BY_AGE),
    ("Gender", None),
    ("Village", None),
    ("Status", None),
)


class CitizenTablePanel(QWidget):
    view_requested = Signal(str)
    edit_requested = Signal(str)
    delete_requested = Signal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._citizens: list[CitizenRecord] = []
        self._village_names: dict[int, str] = {}
        self._filter_spec = FilterSpec()
        self._sort_spec = SortSpec()
        self._page = 1
        self._result = QueryResult(rows=(), total_count=0, page_count=0, page=1)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(8)

        toolbar = QHBoxLayout()
        toolbar.setSpacing(8)
        self._search_input = QLineEdit(self)
        self._search_input.setObjectName("RegistrySearch")
        self._search_input.textChanged.connect(self._on_search_changed)
        toolbar.addWidget(self._search_input, 1)

        self._by_name_button = QPushButton("By Name", self)
        self._by_aadhar_button = QPushButton("By Aadhar", self)
        for button, mode in ((self._by_name_button, SEARCH_BY_NAME), (self._by_aadhar_button, SEARCH_BY_AADHAR)):
            button.setObjectName("RegistryButton")
            button.setCheckable(True)
            button.clicked.connect(lambda _checked=False, value=mode: self._set_search_mode(value))
            toolbar.addWidget(button)
        layout.addLayout(toolbar)

        self._table = QTableWidget(0, len(_COLUMNS), self)
        self._table.setObjectName("CitizenTable")
        self._table.setHorizontalHeaderLabels([label for label, _field in _COLUMNS])
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self._table.verticalHeader().setVisible(False)
        header = self._table.horizontalHeader()
        header.setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        header.setSectionsClickable(True)
        header.sectionClicked.connect(self._on_header_clicked)
        self._table.cellDoubleClicked.connect(lambda row, _column: self._emit_for_row(row, self.view_requested))
        layout.addWidget(self._table, 1)

        self._empty_label = QLabel("", self)
        self._empty_label.setObjectName("RegistryHint")
        self._empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(self._empty_label)

        actions = QHBoxLayout()
        actions.setSpacing(8)
        self._result_label = QLabel("", self)
        self._result_label.setObjectName("RegistryHint")
        actions.addWidget(self._result_label)
        actions.addStretch(1)
        view_button = QPushButton("View Details", self)
        view_button.setObjectName("RegistryButton")
        view_button.clicked.connect(lambda: self._emit_for_row(self._table.currentRow(), self.view_requested))
        actions.addWidget(view_button)
        edit_button = QPushButton("Edit", self)
        edit_button.setObjectName("RegistryButton")
        edit_button.clicked.connect(lambda: self._emit_for_row(self._table.currentRow(), self.edit_requested))
        actions.addWidget(edit_button)
        delete_button = QPushButton("Delete", self)
        delete_button.setObjectName("RegistryDangerButton")
        delete_button.clicked.connect(lambda: self._emit_for_row(self._table.currentRow(), self.delete_requested))
        actions.addWidget(delete_button)
        layout.addLayout(actions)

        self._pager_layout = QHBoxLayout()
        self._pager_layout.setSpacing(4)
        layout.addLayout(self._pager_layout)

        self._sync_search_mode_buttons()

    @property
    def result(self) -> QueryResult:
        return self._result

    def set_data(self, citizens: Sequence[CitizenRecord], villages: Sequence[VillageRecord]) -> None:
        self._citizens = list(citizens)
        self._village_names = {village.village_id: village.name for village in villages}
        self.refresh()

    def set_village_scope(self, village_id: int | None) -> None:
        self._filter_spec = FilterSpec(
            term=self._filter_spec.term,
            mode=self._filter_spec.mode,
            village_id=village_id,
        )
        self._page = 1
        self.refresh()

    def refresh(self) -> None:
        self._result = run_query(self._citizens, self._filter_spec, self._sort_spec, self._page)
        self._page = self._result.page

        self._table.setRowCount(len(self._result.rows))
        for row_index, record in enumerate(self._result.rows):
            values = (
                record.name,
                record.aadhar_number,
                str(record.age),
                choice_label(record.gender),
                self._village_names.get(record.village_id, "Unknown"),
                choice_label(record.status),
            )
            for column_index, value in enumerate(values):
                item = QTableWidgetItem(value)
                item.setData(Qt.ItemDataRole.UserRole, record.aadhar_number)
                self._table.setItem(row_index, column_index, item)

        header = self._table.horizontalHeader()
        for column_index, (_label, field) in enumerate(_COLUMNS):
            if field == self._sort_spec.field:
                order = Qt.SortOrder.DescendingOrder if self._sort_spec.descending else Qt.SortOrder.AscendingOrder
                header.setSortIndicator(column_index, order)
        header.setSortIndicatorShown(True)

        if self._result.rows:
            self._empty_label.hide()
        else:
            self._empty_label.setText(
                "No citizens match this search." if self._filter_spec.term else "No citizens found."
            )
            self._empty_label.show()
        self._result_label.setText(f"{self._result.total_count} of {len(self._citizens)} citizens")
        self._rebuild_pager()

    def _rebuild_pager(self) -> None:
        while self._pager_layout.count():
            item = self._pager_layout.takeAt(0)
            widget = item.widget()
            if widget is not None:
                widget.deleteLater()
        if self._result.page_count <= 1:
            return

        self._pager_layout.addStretch(1)
        previous_button = QPushButton("Previous", self)
        previous_button.setObjectName("RegistryPagerButton")
        previous_button.setEnabled(self._page > 1)
        previous_button.clicked.connect(lambda: self._go_to_page(self._page - 1))
        self._pager_layout.addWidget(previous_button)

        for token in page_window(self._result.page_count, self._page):
            if token == ELLIPSIS:
                gap = QLabel("...", self)
                gap.setObjectName("RegistryHint")
                self._pager_layout.addWidget(gap)
                continue
            page_button = QPushButton(str(token), self)
            page_button.setObjectName("RegistryPagerButton")
            page_button.setCheckable(True)
            page_button.setChecked(token == self._page)
            page_button.clicked.connect(lambda _checked=False, target=token: self._go_to_page(int(target)))
            self._pager_layout.addWidget(page_button)

        next_button = QPushButton("Next", self)
        next_button.setObjectName("RegistryPagerButton")
        next_button.setEnabled(self._page < self._result.page_count)
        next_button.clicked.connect(lambda: self._go_to_page(self._page + 1))
        self._pager_layout.addWidget(next_button)
        self._pager_layout.addStretch(1)

    def _go_to_page(self, page: int) -> None:
        self._page = page
        self.refresh()

    def _on_search_changed(self, text: str) -> None:
        self._filter_spec = FilterSpec(term=text, mode=self._filter_spec.mode, village_id=self._filter_spec.village_id)
        self._page = 1
        self.refresh()

    def _set_search_mode(self, mode: str) -> None:
        self._filter_spec = FilterSpec(
            term=self._filter_spec.term,
            mode=mode,
            village_id=self._filter_spec.village_id,
        )
        self._page = 1
        self._sync_search_mode_buttons()
        self.refresh()

    def _sync_search_mode_buttons(self) -> None:
        mode = self._filter_spec.mode
        self._by_name_button.setChecked(mode == SEARCH_BY_NAME)
        self._by_aadhar_button.setChecked(mode == SEARCH_BY_AADHAR)
        self._search_input.setPlaceholderText(
            "Search by Aadhar number" if mode == SEARCH_BY_AADHAR else "Search by name"
        )

    def _on_header_clicked(self, column_index: int) -> None:
        if column_index < 0 or column_index >= len(_COLUMNS):
            return
        field = _COLUMNS[column_index][1]
        if field is None:
            return
        self._sort_spec = self._sort_spec.toggled(field)
        self.refresh()

    def _emit_for_row(self, row_index: int, signal) -> None:
        if row_index < 0:
            return
        item = self._table.item(row_index, 0)
        if item is None:
            return
        aadhar_number = str(item.data(Qt.ItemDataRole.UserRole) or "")
        if aadhar_number:
            signal.emit(aadhar_number)
