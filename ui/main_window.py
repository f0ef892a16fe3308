from __future__ import annotations
import logging
from datetime import date
from typing import List, Optional

from PySide6.QtCore import QObject, Qt, Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QDialog, QHBoxLayout, QHeaderView, QLabel, QListWidget, QListWidgetItem,
    QMainWindow, QMessageBox, QPushButton, QTableWidget, QTableWidgetItem,
    QVBoxLayout, QWidget,
)

from invoicer.errors import EmptyExportError, InvoiceError, NotFoundError, ValidationError
from invoicer.models.invoice import Invoice
from invoicer.models.settings import Settings
from invoicer.services.computations import (
    aggregate, category_title, derived_status, filter_by_category,
    format_currency, next_invoice_number, sort_for_category,
)
from invoicer.services.document_service import DocumentService
from invoicer.services.export_service import ExportService
from invoicer.services.invoice_service import InvoiceRepository, open_repository
from invoicer.services.settings_service import load_settings, resolve_exports_dir
from ui.widgets.invoice_editor import InvoiceEditor
from ui.widgets.invoice_preview import InvoicePreview

log = logging.getLogger(__name__)

NAV_ENTRIES = [
    ("All invoices", None),
    ("Pending", "pending"),
    ("Overdue", "overdue"),
    ("Paid", "paid"),
]
STATUS_COLORS = {"Paid": "#2e7d32", "Overdue": "#c62828", "Pending": "#ef6c00"}
COL_ID = 5


class _RepositoryBridge(QObject):
    """Ramène les snapshots (éventuellement reçus sur un autre thread) vers le thread GUI."""
    changed = Signal(list)


class MainWindow(QMainWindow):
    def __init__(self, settings: Optional[Settings] = None, repository: Optional[InvoiceRepository] = None):
        super().__init__()
        self.setWindowTitle("Invoicer")
        self.resize(1180, 760)

        self.settings = settings or load_settings()
        self.repo = repository or open_repository(self.settings)
        self.documents = DocumentService(self.settings)
        self.exporter = ExportService(resolve_exports_dir(self.settings))
        self.category: Optional[str] = None
        self._invoices: List[Invoice] = self.repo.list()

        self._bridge = _RepositoryBridge()
        self._bridge.changed.connect(self._on_invoices_changed)
        self._unsubscribe = self.repo.subscribe(self._bridge.changed.emit)

        central = QWidget()
        root = QHBoxLayout(central)
        self.setCentralWidget(central)

        # ---------- Navigation ----------
        self.nav = QListWidget()
        self.nav.setFixedWidth(180)
        for label, category in NAV_ENTRIES:
            item = QListWidgetItem(label)
            item.setData(Qt.ItemDataRole.UserRole, category)
            self.nav.addItem(item)
        self.nav.setCurrentRow(0)
        self.nav.currentItemChanged.connect(self._on_nav_changed)
        root.addWidget(self.nav)

        # ---------- Tableau de bord ----------
        main = QVBoxLayout()
        root.addLayout(main, 1)

        self.lbl_title = QLabel()
        self.lbl_title.setStyleSheet("font-size:18px; font-weight:600;")
        self.lbl_count = QLabel()
        self.lbl_revenue = QLabel()
        head = QHBoxLayout()
        head.addWidget(self.lbl_title); head.addStretch(1)
        head.addWidget(self.lbl_count); head.addSpacing(24); head.addWidget(self.lbl_revenue)
        main.addLayout(head)

        bar = QHBoxLayout()
        btn_new = QPushButton("New invoice")
        btn_edit = QPushButton("Edit")
        btn_toggle = QPushButton("Mark paid / unpaid")
        btn_view = QPushButton("View")
        btn_del = QPushButton("Delete")
        btn_export = QPushButton("Export to Excel")
        for b in (btn_new, btn_edit, btn_toggle, btn_view, btn_del):
            bar.addWidget(b)
        bar.addStretch(1); bar.addWidget(btn_export)
        main.addLayout(bar)

        self.tbl = QTableWidget(0, 6)
        self.tbl.setHorizontalHeaderLabels(["Client", "Number", "Due date", "Status", "Total", "ID"])
        self.tbl.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.tbl.setSelectionBehavior(self.tbl.SelectionBehavior.SelectRows)
        self.tbl.setEditTriggers(self.tbl.EditTrigger.NoEditTriggers)
        self.tbl.setColumnHidden(COL_ID, True)
        self.tbl.doubleClicked.connect(lambda _: self._invoice_view())
        main.addWidget(self.tbl, 1)

        self.lbl_empty = QLabel("No invoices found in this category.")
        self.lbl_empty.setAlignment(Qt.AlignmentFlag.AlignCenter)
        main.addWidget(self.lbl_empty)

        btn_new.clicked.connect(self._invoice_new)
        btn_edit.clicked.connect(self._invoice_edit)
        btn_toggle.clicked.connect(self._invoice_toggle_status)
        btn_view.clicked.connect(self._invoice_view)
        btn_del.clicked.connect(self._invoice_delete)
        btn_export.clicked.connect(self._export_excel)

        self._refresh()

    # ---------- Rendu ----------
    def _on_invoices_changed(self, invoices: list):
        self._invoices = invoices
        self._refresh()

    def _on_nav_changed(self, current: QListWidgetItem, _previous):
        self.category = current.data(Qt.ItemDataRole.UserRole) if current else None
        self._refresh()

    def _refresh(self):
        today = date.today()  # une seule date de référence par rendu
        rows = sort_for_category(filter_by_category(self._invoices, self.category, today), self.category)
        summary = aggregate(rows)

        self.lbl_title.setText(category_title(self.category))
        self.lbl_count.setText(f"Invoices: {summary.count}")
        self.lbl_revenue.setText(f"Revenue: {format_currency(summary.revenue, self.settings.currency)}")

        self.tbl.setRowCount(0)
        for inv in rows:
            status = derived_status(inv, today)
            r = self.tbl.rowCount(); self.tbl.insertRow(r)
            self.tbl.setItem(r, 0, QTableWidgetItem(inv.client_name or "Unknown Client"))
            self.tbl.setItem(r, 1, QTableWidgetItem(f"#{inv.number}"))
            self.tbl.setItem(r, 2, QTableWidgetItem(inv.due_date.isoformat() if inv.due_date else "-"))
            st = QTableWidgetItem(status)
            st.setForeground(QColor(STATUS_COLORS[status]))
            self.tbl.setItem(r, 3, st)
            self.tbl.setItem(r, 4, QTableWidgetItem(format_currency(inv.total, self.settings.currency)))
            self.tbl.setItem(r, COL_ID, QTableWidgetItem(inv.id))
        self.tbl.resizeRowsToContents()
        self.lbl_empty.setVisible(not rows)

    def _selected_invoice_id(self) -> Optional[str]:
        row = self.tbl.currentRow()
        if row < 0: return None
        return self.tbl.item(row, COL_ID).text()

    def _selected_invoice(self) -> Optional[Invoice]:
        inv_id = self._selected_invoice_id()
        if not inv_id:
            QMessageBox.information(self, "Invoices", "Select an invoice first.")
            return None
        try:
            return self.repo.get(inv_id)
        except NotFoundError:
            QMessageBox.warning(self, "Invoices", "This invoice no longer exists.")
            return None

    def _report(self, title: str, e: InvoiceError):
        log.warning("%s: %s", title, e)
        if isinstance(e, ValidationError):
            QMessageBox.warning(self, title, str(e))
        else:
            QMessageBox.critical(self, title, str(e))

    # ---------- Actions ----------
    def _invoice_new(self):
        dlg = InvoiceEditor(
            self,
            number=next_invoice_number(len(self._invoices)),
            term_days=self.settings.net_terms_days,
            currency=self.settings.currency,
        )
        if dlg.exec() != QDialog.Accepted:
            return
        try:
            self.repo.create(dlg.get_draft())
        except InvoiceError as e:
            self._report("Save invoice", e)

    def _invoice_edit(self):
        inv = self._selected_invoice()
        if not inv: return
        dlg = InvoiceEditor(
            self, invoice=inv, term_days=self.settings.net_terms_days, currency=self.settings.currency
        )
        if dlg.exec() != QDialog.Accepted:
            return
        try:
            self.repo.update(inv.id, dlg.get_draft())
        except InvoiceError as e:
            self._report("Save invoice", e)

    def _invoice_toggle_status(self):
        inv_id = self._selected_invoice_id()
        if not inv_id:
            QMessageBox.information(self, "Invoices", "Select an invoice first."); return
        try:
            self.repo.toggle_status(inv_id)
        except InvoiceError as e:
            self._report("Update status", e)

    def _invoice_view(self):
        inv = self._selected_invoice()
        if inv:
            InvoicePreview(self, invoice=inv, documents=self.documents).exec()

    def _invoice_delete(self):
        inv_id = self._selected_invoice_id()
        if not inv_id:
            QMessageBox.information(self, "Invoices", "Select an invoice first."); return
        if QMessageBox.question(self, "Delete", "Are you sure you want to delete this invoice?") != QMessageBox.Yes:
            return
        try:
            self.repo.delete(inv_id)
        except InvoiceError as e:
            self._report("Delete invoice", e)

    def _export_excel(self):
        try:
            out = self.exporter.export_xlsx(self._invoices, self.category, date.today())
        except EmptyExportError as e:
            QMessageBox.information(self, "Export", str(e)); return
        except OSError as e:
            QMessageBox.critical(self, "Export", str(e)); return
        QMessageBox.information(self, "Export", f"File created:\n{out}")

    def closeEvent(self, event):
        self._unsubscribe()
        self.repo.close()
        super().closeEvent(event)
