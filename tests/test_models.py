from datetime import date

from invoicer.models.invoice import Invoice, InvoiceDraft, LineItem


class TestLineItem:
    def test_defaults(self):
        item = LineItem(description="Consulting")
        assert item.quantity == 1
        assert item.unit_price == 0
        assert item.amount == 0

    def test_unparseable_and_negative_numbers_become_zero(self):
        item = LineItem(description="x", quantity="abc", unit_price="-3")
        assert item.quantity == 0
        assert item.unit_price == 0

    def test_numeric_strings_are_parsed(self):
        item = LineItem(description="x", quantity=" 2 ", unit_price="19.99")
        assert item.amount == 2 * 19.99


class TestInvoice:
    def test_reads_legacy_camel_case_record(self):
        inv = Invoice(**{
            "id": 1700000000000,
            "number": "INV-001",
            "date": "2024-01-01",
            "dueDate": "2024-01-31",
            "clientName": "Acme Corp",
            "clientEmail": "",
            "clientAddress": "1 Main Street\nSpringfield",
            "items": [{"description": "Work", "quantity": 2, "price": 50}],
            "total": 100,
            "status": "Pending",
            "createdAt": "2024-01-01T10:00:00.000Z",
            "uid": "user-1",
            "theme": "dark",
        })
        assert inv.id == "1700000000000"
        assert inv.due_date == date(2024, 1, 31)
        assert inv.client_name == "Acme Corp"
        assert inv.client_email is None
        assert inv.client_address == "1 Main Street\nSpringfield"
        assert inv.items[0].unit_price == 50
        assert inv.owner_id == "user-1"
        assert inv.created_at.year == 2024

    def test_stored_status_is_limited_to_pending_or_paid(self):
        assert Invoice(status="paid").status == "Paid"
        assert Invoice(status="Overdue").status == "Pending"
        assert Invoice(status=None).status == "Pending"

    def test_blank_dates_and_missing_items(self):
        inv = Invoice(date="", dueDate=None, items=None)
        assert inv.date is None
        assert inv.due_date is None
        assert inv.items == []
        assert inv.item_count == 0

    def test_json_dump_uses_iso_dates(self, make_invoice):
        data = make_invoice(issued=date(2024, 5, 1), due=date(2024, 5, 31)).model_dump(mode="json")
        assert data["date"] == "2024-05-01"
        assert data["due_date"] == "2024-05-31"
        assert data["items"][0]["unit_price"] == 100


class TestInvoiceDraft:
    def test_required_fields_are_trimmed_not_rejected(self):
        d = InvoiceDraft(number="  ", client_name=None)
        assert d.number == ""
        assert d.client_name == ""

    def test_from_invoice_copies_editable_fields(self, make_invoice):
        inv = make_invoice(status="Paid", client_email="a@b.test")
        d = InvoiceDraft.from_invoice(inv)
        assert d.number == inv.number
        assert d.status == "Paid"
        assert d.client_email == "a@b.test"
        d.items[0].quantity = 5
        assert inv.items[0].quantity == 1
