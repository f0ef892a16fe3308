from __future__ import annotations
from datetime import date
from typing import List, Optional

from PySide6.QtCore import QDate, Qt
from PySide6.QtWidgets import (
    QDateEdit, QDialog, QDialogButtonBox, QFormLayout, QHBoxLayout, QHeaderView,
    QLabel, QLineEdit, QMessageBox, QPushButton, QTableWidget, QTableWidgetItem,
    QTextEdit, QVBoxLayout,
)

from invoicer.models.invoice import Invoice, InvoiceDraft, LineItem
from invoicer.services.computations import NetTermsTracker, format_currency, line_amount

COL_DESC, COL_QTY, COL_PRICE, COL_AMOUNT = range(4)


def _qdate(d: date) -> QDate:
    return QDate(d.year, d.month, d.day)


class InvoiceEditor(QDialog):
    """Création / modification d'une facture (lignes libres, total en direct)."""

    def __init__(
        self,
        parent=None,
        invoice: Optional[Invoice] = None,
        number: str = "",
        term_days: int = 30,
        currency: str = "USD",
    ):
        super().__init__(parent)
        self.setWindowTitle("Invoice")
        self.setModal(True)
        self.resize(760, 620)
        self.currency = currency
        self.tracker = NetTermsTracker(term_days)
        self._updating = False

        self.ed_number = QLineEdit(number)
        self.dt_date = QDateEdit(); self.dt_date.setCalendarPopup(True)
        self.dt_due = QDateEdit(); self.dt_due.setCalendarPopup(True)
        self.ed_client = QLineEdit()
        self.ed_email = QLineEdit()
        self.ed_address = QTextEdit(); self.ed_address.setFixedHeight(70)

        self.tbl = QTableWidget(0, 4)
        self.tbl.setHorizontalHeaderLabels(["Description", "Qty", "Price", "Amount"])
        self.tbl.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.tbl.setSelectionBehavior(self.tbl.SelectionBehavior.SelectRows)

        self.lab_subtotal = QLabel()
        self.lab_total = QLabel()

        btn_add = QPushButton("Add item")
        btn_del = QPushButton("Remove item")
        btn_add.clicked.connect(lambda: self._add_row())
        btn_del.clicked.connect(self._del_row)

        top = QFormLayout()
        top.addRow("Invoice number (required)", self.ed_number)
        top.addRow("Invoice date", self.dt_date)
        top.addRow("Due date", self.dt_due)
        top.addRow("Client name (required)", self.ed_client)
        top.addRow("Client email", self.ed_email)
        top.addRow("Client address", self.ed_address)

        bar = QHBoxLayout()
        bar.addWidget(btn_add); bar.addWidget(btn_del); bar.addStretch(1)
        bar.addWidget(self.lab_subtotal); bar.addSpacing(16); bar.addWidget(self.lab_total)

        btns = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)

        lay = QVBoxLayout(self)
        lay.addLayout(top)
        lay.addWidget(self.tbl, 1)
        lay.addLayout(bar)
        lay.addWidget(btns)

        self.dt_date.dateChanged.connect(self._on_issue_date_changed)
        self.dt_due.dateChanged.connect(self._on_due_date_changed)
        self.tbl.itemChanged.connect(self._on_item_changed)

        if invoice:
            self._fill_from_invoice(invoice)
        else:
            self._reset()

    # -------- UI helpers --------
    def _reset(self):
        today = date.today()
        self.dt_date.setDate(_qdate(today))
        # l'échéance suit la date d'émission (net N jours)
        self._on_issue_date_changed(self.dt_date.date())
        self._add_row()
        self._update_totals()

    def _fill_from_invoice(self, inv: Invoice):
        self.ed_number.setText(inv.number)
        issue = inv.date or date.today()
        self.dt_date.setDate(_qdate(issue))
        self.tracker.issue_date_changed(issue)
        if inv.due_date:
            self.dt_due.setDate(_qdate(inv.due_date))
            self.tracker.due_date_edited(inv.due_date)
        self.ed_client.setText(inv.client_name)
        self.ed_email.setText(inv.client_email or "")
        self.ed_address.setPlainText(inv.client_address or "")
        for it in inv.items:
            self._add_row(it)
        if not inv.items:
            self._add_row()
        self._update_totals()

    def _add_row(self, item: Optional[LineItem] = None):
        self._updating = True
        r = self.tbl.rowCount()
        self.tbl.insertRow(r)
        self.tbl.setItem(r, COL_DESC, QTableWidgetItem(item.description if item else ""))
        self.tbl.setItem(r, COL_QTY, QTableWidgetItem(f"{item.quantity:g}" if item else "1"))
        self.tbl.setItem(r, COL_PRICE, QTableWidgetItem(f"{item.unit_price:.2f}" if item else "0"))
        amount = QTableWidgetItem()
        amount.setFlags(amount.flags() & ~Qt.ItemFlag.ItemIsEditable)
        self.tbl.setItem(r, COL_AMOUNT, amount)
        self._updating = False
        self._update_totals()

    def _del_row(self):
        # au moins une ligne reste affichée
        row = self.tbl.currentRow()
        if row < 0 or self.tbl.rowCount() <= 1:
            return
        self.tbl.removeRow(row)
        self._update_totals()

    def _cell(self, row: int, col: int) -> str:
        it = self.tbl.item(row, col)
        return it.text() if it else ""

    def _row_item(self, row: int) -> LineItem:
        return LineItem(
            description=self._cell(row, COL_DESC).strip(),
            quantity=self._cell(row, COL_QTY),
            unit_price=self._cell(row, COL_PRICE),
        )

    def _update_totals(self):
        self._updating = True
        subtotal = 0.0
        for r in range(self.tbl.rowCount()):
            amount = line_amount(self._row_item(r))
            subtotal += amount
            cell = self.tbl.item(r, COL_AMOUNT)
            if cell:
                cell.setText(format_currency(amount, self.currency))
        self._updating = False
        self.lab_subtotal.setText(f"Subtotal: {format_currency(subtotal, self.currency)}")
        self.lab_total.setText(f"Total: {format_currency(subtotal, self.currency)}")

    # -------- signaux --------
    def _on_item_changed(self, _item: QTableWidgetItem):
        if not self._updating:
            self._update_totals()

    def _on_issue_date_changed(self, qd: QDate):
        due = self.tracker.issue_date_changed(qd.toPython())
        if due is not None:
            self.dt_due.setDate(_qdate(due))

    def _on_due_date_changed(self, qd: QDate):
        self.tracker.due_date_edited(qd.toPython())

    # -------- Result --------
    def accept(self):
        if not self.ed_number.text().strip() or not self.ed_client.text().strip():
            QMessageBox.warning(self, "Validation", "Please fill in Invoice Number and Client Name")
            return
        super().accept()

    def line_items(self) -> List[LineItem]:
        # les lignes sans description ne sont pas enregistrées
        return [it for it in (self._row_item(r) for r in range(self.tbl.rowCount())) if it.description]

    def get_draft(self) -> InvoiceDraft:
        return InvoiceDraft(
            number=self.ed_number.text(),
            date=self.dt_date.date().toPython(),
            due_date=self.dt_due.date().toPython(),
            client_name=self.ed_client.text(),
            client_email=self.ed_email.text(),
            client_address=self.ed_address.toPlainText(),
            items=self.line_items(),
        )
