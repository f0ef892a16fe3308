from __future__ import annotations
from typing import Optional


class InvoiceError(Exception):
    """Erreur de base du domaine facturation (jamais fatale pour l'appli)."""


class ValidationError(InvoiceError):
    """Champ obligatoire manquant, signalé avant toute écriture."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Field '{field}' is required")


class NotFoundError(InvoiceError):
    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


class TransportError(InvoiceError):
    """Stockage injoignable ou écriture refusée. Pas de retry automatique."""


class EmptyExportError(InvoiceError):
    def __init__(self, category: Optional[str] = None):
        self.category = category
        super().__init__("No invoices to export in this category.")
