from __future__ import annotations
from typing import Literal, Optional

from pydantic import BaseModel, Field

Backend = Literal["local", "firestore", "memory"]


class CompanyInfo(BaseModel):
    name: str = "My Company"
    email: str = ""
    address: str = ""


class PdfSettings(BaseModel):
    wkhtmltopdf_path: Optional[str] = None


class Settings(BaseModel):
    # stockage
    backend: Backend = "local"
    data_dir: Optional[str] = None
    invoices_file: str = "invoices.json"
    exports_dir: Optional[str] = None

    # Firestore
    collection: str = "invoices"
    firestore_project: Optional[str] = None

    # session (pas d'écran de connexion: le propriétaire vient de la config)
    owner_id: Optional[str] = None

    currency: str = "USD"
    net_terms_days: int = Field(default=30, ge=0)

    company: CompanyInfo = Field(default_factory=CompanyInfo)
    pdf: PdfSettings = Field(default_factory=PdfSettings)

    class Config:
        extra = "ignore"
