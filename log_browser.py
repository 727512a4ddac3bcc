"""
log_browser.py — Decode log browser for clipdecode (PySide6).

Non-modal window over clipdecode.db: per-session and per-tag filters,
ok/err/warn totals, the full message of the selected row, auto-refresh.
Opened with:  python clipdecode.py history --gui
"""

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QLabel, QPushButton,
    QComboBox, QTableWidget, QTableWidgetItem, QTextEdit,
    QSplitter, QWidget, QHeaderView, QAbstractItemView
)
from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QColor

from db_logger import TAGS

C = {
    "bg_dark":  "#1e2127",
    "bg_mid":   "#282a36",
    "bg_input": "#44475a",
    "fg":       "#f8f8f2",
    "fg_dim":   "#6272a4",
    "ok":       "#50fa7b",
    "err":      "#ff5555",
    "warn":     "#ffb86c",
    "chain":    "#bd93f9",
    "info":     "#8be9fd",
}

TAG_COLOURS = {
    "ok":      C["ok"],
    "err":     C["err"],
    "warn":    C["warn"],
    "info":    C["info"],
    "chain":   C["chain"],
    "preview": C["fg_dim"],
}

REFRESH_MS = 2000

STYLESHEET = f"""
QDialog, QWidget {{
    background-color: {C["bg_dark"]};
    color: {C["fg"]};
    font-family: "Menlo", "Courier New", monospace;
    font-size: 11px;
}}
QPushButton, QComboBox {{
    background-color: {C["bg_input"]};
    color: {C["fg"]};
    border: none;
    border-radius: 4px;
    padding: 3px 8px;
}}
QTableWidget, QTextEdit {{
    background-color: {C["bg_mid"]};
    color: {C["fg"]};
    border: none;
    selection-background-color: {C["bg_input"]};
}}
QHeaderView::section {{
    background-color: {C["bg_input"]};
    color: {C["fg_dim"]};
    border: none;
    padding: 4px 6px;
}}
QLabel#totals {{ color: {C["fg_dim"]}; font-size: 10px; }}
"""


COLUMNS = ("Time", "Tag", "Transform", "Message")
WIDTHS  = (80, 60, 140)


def entry_cells(entry: dict) -> list:
    return [
        entry["timestamp"][11:19],
        entry["tag"],
        entry["transform_name"] or "",
        entry["message"].split("\n")[0][:120],
    ]


def entry_detail(entry: dict) -> str:
    meta = [f"[{entry['timestamp'].replace('T', ' ')}]", f"tag={entry['tag']}"]
    if entry["transform_name"]:
        meta.append(f"transform={entry['transform_name']}")
    meta.append(f"id={entry['id']}")
    return "  ".join(meta) + "\n" + "─" * 60 + "\n" + entry["message"]


class LogBrowserDialog(QDialog):
    """Decode log viewer; `session_id` None starts on all sessions."""

    def __init__(self, db_logger, session_id: str = None, parent=None):
        super().__init__(parent)
        self._db      = db_logger
        self._session = session_id
        self._entries = []

        self.setWindowTitle("clipdecode — Decode Log")
        self.setStyleSheet(STYLESHEET)
        self.resize(900, 600)
        self.setModal(False)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.addWidget(self._make_filters())

        self.table = self._make_table()
        self.detail_text = QTextEdit()
        self.detail_text.setReadOnly(True)
        splitter = QSplitter(Qt.Vertical)
        splitter.addWidget(self.table)
        splitter.addWidget(self.detail_text)
        splitter.setSizes([400, 200])
        layout.addWidget(splitter)

        self._load_sessions()
        self._refresh()

        self._timer = QTimer(self)
        self._timer.timeout.connect(self._refresh)
        self._timer.start(REFRESH_MS)

    # ── Widgets ───────────────────────────────────────────────────────────────

    def _make_filters(self) -> QWidget:
        bar = QWidget()
        row = QHBoxLayout(bar)
        row.setContentsMargins(0, 0, 0, 0)

        self.session_combo = QComboBox()
        self.session_combo.setMinimumWidth(220)
        self.tag_combo = QComboBox()
        self.tag_combo.addItems(["all", *TAGS])
        for label, combo in (("Session:", self.session_combo), ("Tag:", self.tag_combo)):
            row.addWidget(QLabel(label))
            row.addWidget(combo)
            combo.currentIndexChanged.connect(self._refresh)
        row.addStretch()

        self.totals_label = QLabel("")
        self.totals_label.setObjectName("totals")
        row.addWidget(self.totals_label)

        for text, slot in (("⟳ Refresh", self._refresh), ("🗑 Clear session", self._clear_session)):
            button = QPushButton(text)
            button.clicked.connect(slot)
            row.addWidget(button)
        return bar

    def _make_table(self) -> QTableWidget:
        table = QTableWidget()
        table.setColumnCount(len(COLUMNS))
        table.setHorizontalHeaderLabels(list(COLUMNS))
        header = table.horizontalHeader()
        header.setSectionResizeMode(len(COLUMNS) - 1, QHeaderView.Stretch)
        for col, width in enumerate(WIDTHS):
            header.resizeSection(col, width)
        table.setSelectionBehavior(QAbstractItemView.SelectRows)
        table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        table.verticalHeader().setVisible(False)
        table.setShowGrid(False)
        table.itemSelectionChanged.connect(self._on_row_selected)
        return table

    # ── Data ──────────────────────────────────────────────────────────────────

    def _load_sessions(self):
        self.session_combo.blockSignals(True)
        self.session_combo.clear()
        if self._session:
            self.session_combo.addItem("Latest session", self._session)
        self.session_combo.addItem("All sessions", None)
        for s in self._db.get_sessions(limit=50):
            started = s["started_at"][:19].replace("T", " ")
            self.session_combo.addItem(f"{started}  [{s['id']}]", s["id"])
        self.session_combo.blockSignals(False)

    def _refresh(self):
        session_id = self.session_combo.currentData()
        tag = self.tag_combo.currentText()
        self._entries = self._db.get_entries(
            session_id=session_id, tag=None if tag == "all" else tag, limit=500
        )
        counts = self._db.get_counts(session_id)
        self.totals_label.setText(
            f"{len(self._entries)} shown  |  ok {counts.get('ok', 0)}  "
            f"err {counts.get('err', 0)}  warn {counts.get('warn', 0)}"
        )

        self.table.setUpdatesEnabled(False)
        self.table.setRowCount(len(self._entries))
        for row, entry in enumerate(self._entries):
            colour = QColor(TAG_COLOURS.get(entry["tag"], C["fg"]))
            for col, text in enumerate(entry_cells(entry)):
                item = QTableWidgetItem(text)
                item.setForeground(colour)
                self.table.setItem(row, col, item)
        self.table.setUpdatesEnabled(True)
        if self._entries:
            self.table.scrollToBottom()

    def _on_row_selected(self):
        row = self.table.currentRow()
        if 0 <= row < len(self._entries):
            entry = self._entries[row]
            self.detail_text.setTextColor(QColor(TAG_COLOURS.get(entry["tag"], C["fg"])))
            self.detail_text.setPlainText(entry_detail(entry))

    def _clear_session(self):
        session_id = self.session_combo.currentData()
        if session_id:
            self._db.clear_session(session_id)
            self._refresh()
