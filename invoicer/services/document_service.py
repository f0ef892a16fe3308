# invoicer/services/document_service.py
from __future__ import annotations
import logging
import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import pdfkit  # utilisé si wkhtmltopdf dispo
from jinja2 import Environment, FileSystemLoader, select_autoescape

from invoicer.models.invoice import Invoice
from invoicer.models.settings import Settings
from invoicer.services.computations import format_currency
from invoicer.services.settings_service import resolve_exports_dir

log = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates" / "pdf"


# ---------- Formats ----------
def _slug(text: str) -> str:
    text = (text or "").strip()
    text = re.sub(r'[\\/:*?"<>|\n\r\t]', "_", text)
    text = re.sub(r"\s+", " ", text)
    return text or "Client"


# ---------- PDF helpers ----------
def _clean_path(p: str) -> str:
    """Corrige 'C\\:\\Program Files\\...' -> 'C:\\Program Files\\...' et normalise."""
    if not p:
        return ""
    p = p.strip().strip('"').strip("'")
    p = p.replace("\\:", ":")
    return os.path.normpath(p)


def _find_wkhtmltopdf(settings: Settings) -> Optional[str]:
    """
    Localise wkhtmltopdf :
    - settings.pdf.wkhtmltopdf_path (déjà surchargé par $WKHTMLTOPDF)
    - chemins Windows connus
    - PATH
    """
    configured = settings.pdf.wkhtmltopdf_path
    if configured:
        path = _clean_path(configured)
        if Path(path).is_file():
            return path
        log.warning("wkhtmltopdf introuvable à %s", path)

    for c in (
        r"C:\Program Files\wkhtmltopdf\bin\wkhtmltopdf.exe",
        r"C:\Program Files (x86)\wkhtmltopdf\bin\wkhtmltopdf.exe",
    ):
        if Path(c).is_file():
            return c

    from shutil import which
    found = which("wkhtmltopdf")
    return _clean_path(found) if found else None


def _render_pdf_with_weasyprint(html: str, out_path: Path, base_url: Optional[str]) -> None:
    """Fallback WeasyPrint (si wkhtmltopdf absent ou en échec)."""
    from weasyprint import CSS, HTML

    css_file = TEMPLATES_DIR / "stylesheet.css"
    styles = [CSS(filename=str(css_file))] if css_file.exists() else None
    HTML(string=html, base_url=base_url).write_pdf(str(out_path), stylesheets=styles)


# ---------- Service ----------
class DocumentService:
    """Aperçu HTML, export PDF et lien mailto d'une facture."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _money(self, amount: float) -> str:
        return format_currency(amount, self.settings.currency)

    def render_invoice_html(self, inv: Invoice) -> str:
        tpl = self.env.get_template("invoice.html")
        ctx = {
            "invoice": {
                "number": inv.number,
                "date": inv.date.isoformat() if inv.date else "",
                "due_date": inv.due_date.isoformat() if inv.due_date else "",
                "items": [
                    {
                        "description": it.description,
                        "quantity": f"{it.quantity:g}",
                        "unit_price": self._money(it.unit_price),
                        "amount": self._money(it.amount),
                    }
                    for it in inv.items
                ],
                "subtotal": self._money(inv.total),
                "total": self._money(inv.total),
            },
            "client": {
                "name": inv.client_name or "Unknown Client",
                "email": inv.client_email or "",
                "address": inv.client_address or "",
            },
            "company": self.settings.company.model_dump(),
        }
        return tpl.render(**ctx)

    def pdf_file_name(self, inv: Invoice) -> str:
        return f"Invoice-{_slug(inv.number or inv.id)} ({_slug(inv.client_name)}).pdf"

    def export_invoice_pdf(self, inv: Invoice, out_dir: Optional[str | Path] = None) -> Path:
        """
        Génère le PDF de la facture.
        Essaie wkhtmltopdf (pdfkit) en priorité, sinon fallback WeasyPrint.
        """
        html = self.render_invoice_html(inv)

        exports_dir = Path(out_dir) if out_dir else resolve_exports_dir(self.settings) / "invoices"
        exports_dir.mkdir(parents=True, exist_ok=True)
        out_path = exports_dir / self.pdf_file_name(inv)

        wkhtml = _find_wkhtmltopdf(self.settings)
        if wkhtml:
            try:
                config = pdfkit.configuration(wkhtmltopdf=wkhtml)
                options = {
                    "enable-local-file-access": None,
                    "quiet": "",
                    "encoding": "UTF-8",
                }
                css_path = str((TEMPLATES_DIR / "stylesheet.css").resolve())
                pdfkit.from_string(html, str(out_path), options=options, configuration=config, css=css_path)
                return out_path
            except OSError as e:
                log.warning("Échec wkhtmltopdf (%s). Fallback WeasyPrint...", e)

        _render_pdf_with_weasyprint(html, out_path, base_url=str(TEMPLATES_DIR.resolve()))
        return out_path

    def mailto_link(self, inv: Invoice) -> str:
        company = self.settings.company.name
        subject = f"Invoice #{inv.number} from {company}"
        body = (
            f"Dear {inv.client_name},\n\n"
            f"Please find attached your invoice #{inv.number} for a total of {self._money(inv.total)}.\n\n"
            f"Due Date: {inv.due_date.isoformat() if inv.due_date else ''}\n\n"
            f"Thank you for your business!\n"
            f"{company}"
        )
        return (
            f"mailto:{quote(inv.client_email or '', safe='@')}"
            f"?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
        )
