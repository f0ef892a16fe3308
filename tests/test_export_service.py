from datetime import date

import pytest
from openpyxl import load_workbook

from invoicer.errors import EmptyExportError
from invoicer.services.export_service import (
    EXPORT_COLUMNS, SHEET_NAME, ExportService, export_file_name, export_rows,
)


@pytest.fixture
def invoices(make_invoice):
    return [
        make_invoice(number="INV-001", issued=date(2024, 1, 1), due=date(2024, 1, 31)),
        make_invoice(number="INV-002", issued=date(2024, 5, 25), due=date(2024, 6, 24), client_email="x@y.test"),
        make_invoice(number="INV-003", issued=date(2024, 2, 1), due=date(2024, 3, 2), status="Paid"),
        make_invoice(number="INV-004", issued=date(2023, 12, 1), due=date(2023, 12, 31)),
    ]


def test_export_rows_use_status_derived_at_export_time(invoices, ref_date):
    rows = export_rows(invoices, ref_date)
    assert list(rows[0]) == EXPORT_COLUMNS
    assert [r["Status"] for r in rows] == ["Overdue", "Pending", "Paid", "Overdue"]
    assert rows[1]["Client Email"] == "x@y.test"
    assert rows[0]["Client Email"] == ""
    assert rows[0]["Invoice Date"] == "2024-01-01"
    assert rows[0]["Total"] == 100
    assert rows[0]["Item Count"] == 1


@pytest.mark.parametrize(
    "category, expected",
    [
        (None, "All_Invoices_2024-06-01.xlsx"),
        ("overdue", "Overdue_Invoices_2024-06-01.xlsx"),
        ("paid", "Paid_Invoices_2024-06-01.xlsx"),
    ],
)
def test_export_file_name(category, expected, ref_date):
    assert export_file_name(category, ref_date) == expected


def test_export_xlsx_writes_filtered_sorted_sheet(invoices, ref_date, tmp_path):
    out = ExportService(tmp_path).export_xlsx(invoices, "overdue", ref_date)

    assert out == tmp_path / "Overdue_Invoices_2024-06-01.xlsx"
    ws = load_workbook(out)[SHEET_NAME]
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == EXPORT_COLUMNS
    # most urgent first
    assert [r[0] for r in rows[1:]] == ["INV-004", "INV-001"]
    assert {r[5] for r in rows[1:]} == {"Overdue"}
    assert ws.column_dimensions["A"].width == 12
    assert ws.column_dimensions["C"].width == 25


def test_export_all_is_newest_first(invoices, ref_date, tmp_path):
    out = ExportService(tmp_path).export_xlsx(invoices, None, ref_date, out_dir=tmp_path / "sub")
    assert out.parent == tmp_path / "sub"
    rows = list(load_workbook(out)[SHEET_NAME].iter_rows(min_row=2, values_only=True))
    assert [r[0] for r in rows] == ["INV-002", "INV-003", "INV-001", "INV-004"]


def test_nothing_to_export(invoices, ref_date, tmp_path):
    with pytest.raises(EmptyExportError):
        ExportService(tmp_path).export_xlsx([], None, ref_date)
    only_paid = [inv for inv in invoices if inv.status == "Paid"]
    with pytest.raises(EmptyExportError):
        ExportService(tmp_path).export_xlsx(only_paid, "pending", ref_date)
    assert list(tmp_path.iterdir()) == []
