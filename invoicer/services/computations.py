"""
Calculs purs sur les factures: montants, statut affiché (Paid / Pending /
Overdue), filtres par catégorie, tri et agrégats du tableau de bord.

Aucune E/S ici. Toutes les fonctions reçoivent une date de référence
explicite: l'appelant la fige une fois par passe d'affichage / d'export.
"""
from __future__ import annotations
import datetime as dt
from typing import Any, Iterable, List, Mapping, Optional, Union

from invoicer.models.common import to_number
from invoicer.models.invoice import (
    DisplayStatus, Invoice, InvoiceSummary, LineItem,
)

DateLike = Union[dt.date, dt.datetime]

CATEGORIES = ("pending", "overdue", "paid")

_CATEGORY_TITLES = {
    None: "Invoice History",
    "pending": "Pending Invoices",
    "overdue": "Overdue Invoices (Action Required)",
    "paid": "Paid Invoices",
}

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def _day(value: DateLike) -> dt.date:
    # troncature à minuit, sans conversion de fuseau
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Catégorie inconnue ou vide → None (pas de filtre)."""
    if not category:
        return None
    category = str(category).strip().lower()
    return category if category in CATEGORIES else None


# ---------- Montants ----------
def line_amount(item: Union[LineItem, Mapping[str, Any]]) -> float:
    if isinstance(item, LineItem):
        return item.quantity * item.unit_price
    qty = to_number(item.get("quantity"))
    price = item.get("unit_price", item.get("price"))
    return qty * to_number(price)


def invoice_total(items: Iterable[Union[LineItem, Mapping[str, Any]]]) -> float:
    return sum((line_amount(it) for it in items), 0.0)


def format_currency(amount: float, currency: str = "USD") -> str:
    """125 → "$125.00" ; -5 → "-$5.00" ; 1234.5 → "$1,234.50"."""
    value = to_number(amount)
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


# ---------- Statut ----------
def derived_status(invoice: Invoice, reference_date: DateLike) -> DisplayStatus:
    if invoice.status == "Paid":
        return "Paid"
    if invoice.due_date is not None and invoice.due_date < _day(reference_date):
        return "Overdue"
    return "Pending"


# ---------- Catégories ----------
def filter_by_category(
    invoices: Iterable[Invoice], category: Optional[str], reference_date: DateLike
) -> List[Invoice]:
    category = normalize_category(category)
    if category is None:
        return list(invoices)
    if category == "paid":
        return [inv for inv in invoices if inv.status == "Paid"]
    wanted = "Overdue" if category == "overdue" else "Pending"
    return [
        inv for inv in invoices
        if inv.status != "Paid" and derived_status(inv, reference_date) == wanted
    ]


def sort_for_category(invoices: Iterable[Invoice], category: Optional[str]) -> List[Invoice]:
    """Tri stable: échéance croissante pour "overdue", sinon date d'émission décroissante."""
    if normalize_category(category) == "overdue":
        return sorted(invoices, key=lambda inv: inv.due_date or dt.date.max)
    return sorted(invoices, key=lambda inv: inv.date or dt.date.min, reverse=True)


def aggregate(invoices: Iterable[Invoice]) -> InvoiceSummary:
    count = 0
    revenue = 0.0
    for inv in invoices:
        count += 1
        revenue += inv.total  # total stocké, pas de recalcul
    return InvoiceSummary(count=count, revenue=revenue)


def category_title(category: Optional[str]) -> str:
    return _CATEGORY_TITLES[normalize_category(category)]


# ---------- Numérotation & échéances ----------
def next_invoice_number(existing_count: int) -> str:
    return f"INV-{existing_count + 1:03d}"


def net_due_date(issue_date: DateLike, term_days: int = 30) -> dt.date:
    return _day(issue_date) + dt.timedelta(days=term_days)


class NetTermsTracker:
    """
    Pré-remplit l'échéance (date d'émission + N jours).
    Le recalcul sur changement de date d'émission s'arrête dès que l'utilisateur
    a saisi lui-même une échéance différente de la dernière valeur proposée.
    """

    def __init__(self, term_days: int = 30):
        self.term_days = term_days
        self._last_suggested: Optional[dt.date] = None
        self._manual = False

    @property
    def manually_edited(self) -> bool:
        return self._manual

    def reset(self) -> None:
        self._last_suggested = None
        self._manual = False

    def issue_date_changed(self, issue_date: Optional[DateLike]) -> Optional[dt.date]:
        """Retourne la nouvelle échéance à afficher, ou None s'il ne faut pas y toucher."""
        if self._manual or issue_date is None:
            return None
        self._last_suggested = net_due_date(issue_date, self.term_days)
        return self._last_suggested

    def due_date_edited(self, due_date: Optional[DateLike]) -> None:
        if due_date is None:
            return
        if _day(due_date) != self._last_suggested:
            self._manual = True
