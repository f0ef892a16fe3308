from __future__ import annotations
from PySide6.QtCore import QUrl
from PySide6.QtGui import QDesktopServices
from PySide6.QtWidgets import (
    QDialog, QHBoxLayout, QMessageBox, QPushButton, QTextBrowser, QVBoxLayout,
)

from invoicer.models.invoice import Invoice
from invoicer.services.document_service import DocumentService


class InvoicePreview(QDialog):
    def __init__(self, parent=None, invoice: Invoice | None = None, documents: DocumentService | None = None):
        super().__init__(parent)
        self.setWindowTitle(f"Invoice #{invoice.number}" if invoice else "Invoice")
        self.resize(820, 900)
        self.invoice = invoice
        self.documents = documents or DocumentService()

        self.view = QTextBrowser()
        self.view.setOpenExternalLinks(False)
        if invoice:
            self.view.setHtml(self.documents.render_invoice_html(invoice))

        btn_pdf = QPushButton("Export PDF")
        btn_mail = QPushButton("Email")
        btn_close = QPushButton("Close")
        btn_pdf.clicked.connect(self._export_pdf)
        btn_mail.clicked.connect(self._email)
        btn_close.clicked.connect(self.accept)
        btn_mail.setEnabled(bool(invoice and invoice.client_email))

        bar = QHBoxLayout()
        bar.addWidget(btn_pdf); bar.addWidget(btn_mail); bar.addStretch(1); bar.addWidget(btn_close)

        lay = QVBoxLayout(self)
        lay.addWidget(self.view, 1)
        lay.addLayout(bar)

    def _export_pdf(self):
        if not self.invoice:
            return
        try:
            out = self.documents.export_invoice_pdf(self.invoice)
            QMessageBox.information(self, "PDF", f"File created:\n{out}")
        except Exception as e:
            QMessageBox.critical(self, "PDF", str(e))

    def _email(self):
        if self.invoice:
            # remise au client mail du système
            QDesktopServices.openUrl(QUrl(self.documents.mailto_link(self.invoice)))
