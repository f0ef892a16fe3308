from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd
from openpyxl.utils import get_column_letter

from invoicer.errors import EmptyExportError
from invoicer.models.invoice import Invoice
from invoicer.services.computations import (
    derived_status, filter_by_category, normalize_category, sort_for_category,
)

log = logging.getLogger(__name__)

SHEET_NAME = "Invoices"
EXPORT_COLUMNS = [
    "Invoice Number",
    "Client Name",
    "Client Email",
    "Invoice Date",
    "Due Date",
    "Status",
    "Total",
    "Item Count",
]
COLUMN_WIDTHS = [12, 20, 25, 12, 12, 10, 12, 12]


def _iso(d: Optional[dt.date]) -> str:
    return d.isoformat() if d else ""


def export_rows(invoices: Iterable[Invoice], reference_date: dt.date) -> List[Dict[str, Any]]:
    """Une ligne par facture; le statut est recalculé au moment de l'export."""
    return [
        {
            "Invoice Number": inv.number,
            "Client Name": inv.client_name,
            "Client Email": inv.client_email or "",
            "Invoice Date": _iso(inv.date),
            "Due Date": _iso(inv.due_date),
            "Status": derived_status(inv, reference_date),
            "Total": inv.total,
            "Item Count": inv.item_count,
        }
        for inv in invoices
    ]


def export_file_name(category: Optional[str], reference_date: dt.date) -> str:
    category = normalize_category(category)
    prefix = f"{category.capitalize()}_Invoices" if category else "All_Invoices"
    return f"{prefix}_{reference_date.isoformat()}.xlsx"


class ExportService:
    def __init__(self, exports_dir: Union[str, Path]):
        self.exports_dir = Path(exports_dir)

    def export_xlsx(
        self,
        invoices: Iterable[Invoice],
        category: Optional[str],
        reference_date: dt.date,
        out_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        selected = sort_for_category(
            filter_by_category(invoices, category, reference_date), category
        )
        if not selected:
            raise EmptyExportError(normalize_category(category))

        target_dir = Path(out_dir) if out_dir else self.exports_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        out_path = target_dir / export_file_name(category, reference_date)

        df = pd.DataFrame(export_rows(selected, reference_date), columns=EXPORT_COLUMNS)
        with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
            ws = writer.sheets[SHEET_NAME]
            for idx, width in enumerate(COLUMN_WIDTHS, start=1):
                ws.column_dimensions[get_column_letter(idx)].width = width

        log.info("Export de %d facture(s) vers %s", len(selected), out_path)
        return out_path
