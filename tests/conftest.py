"""
Shared fixtures.

Dates are pinned: every status/filter assertion uses REFERENCE_DATE so that
the suite does not depend on the day it runs.
"""
from datetime import date, datetime

import pytest

from invoicer.models.invoice import Invoice, InvoiceDraft, LineItem
from invoicer.services.computations import invoice_total

REFERENCE_DATE = date(2024, 6, 1)
FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def ref_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_invoice():
    """Factory for stored invoices; total defaults to the items' sum."""

    def _make(
        number="INV-001",
        issued=date(2024, 5, 1),
        due=date(2024, 5, 31),
        status="Pending",
        items=None,
        total=None,
        **extra,
    ) -> Invoice:
        items = items if items is not None else [LineItem(description="Work", quantity=1, unit_price=100)]
        return Invoice(
            number=number,
            date=issued,
            due_date=due,
            client_name=extra.pop("client_name", "Acme Corp"),
            items=items,
            total=invoice_total(items) if total is None else total,
            status=status,
            **extra,
        )

    return _make


@pytest.fixture
def draft() -> InvoiceDraft:
    return InvoiceDraft(
        number="INV-001",
        date=date(2024, 1, 1),
        due_date=date(2024, 1, 31),
        client_name="Acme Corp",
        client_email="billing@acme.test",
        client_address="1 Main Street\nSpringfield",
        items=[
            LineItem(description="Design", quantity=2, unit_price=50),
            LineItem(description="Hosting", quantity=1, unit_price=25),
        ],
    )
