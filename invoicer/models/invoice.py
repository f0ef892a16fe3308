from __future__ import annotations
import datetime as dt
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from .common import gen_id, to_number

InvoiceStatus = Literal["Pending", "Paid"]
DisplayStatus = Literal["Pending", "Paid", "Overdue"]
Category = Literal["paid", "pending", "overdue"]


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class LineItem(BaseModel):
    description: str = ""
    quantity: float = 1.0
    unit_price: float = Field(
        default=0.0, validation_alias=AliasChoices("unit_price", "unitPrice", "price")
    )

    class Config:
        extra = "ignore"

    @field_validator("description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def _forgiving_number(cls, v: Any) -> float:
        # saisie libre: illisible → 0, négatif → 0
        return max(0.0, to_number(v))

    @property
    def amount(self) -> float:
        return self.quantity * self.unit_price


class _InvoiceBody(BaseModel):
    """Champs saisis dans l'éditeur, communs au brouillon et à la facture stockée."""

    number: str = ""
    date: Optional[dt.date] = None
    due_date: Optional[dt.date] = Field(
        default=None, validation_alias=AliasChoices("due_date", "dueDate")
    )
    client_name: str = Field(
        default="", validation_alias=AliasChoices("client_name", "clientName")
    )
    client_email: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_email", "clientEmail")
    )
    client_address: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_address", "clientAddress")
    )
    items: List[LineItem] = Field(default_factory=list)

    class Config:
        extra = "ignore"  # tolère les anciennes clés des JSON / documents distants

    @field_validator("number", "client_name", mode="before")
    @classmethod
    def _required_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("client_email", "client_address", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("date", "due_date", mode="before")
    @classmethod
    def _optional_date(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        # un datetime complet est ramené au jour calendaire
        if isinstance(v, dt.datetime):
            return v.date()
        return v

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, v: Any) -> Any:
        return [] if v is None else v


def _coerce_status(v: Any) -> InvoiceStatus:
    # seul "Paid" est conservé, tout le reste (absent, "Overdue"…) redevient Pending
    return "Paid" if str(v or "").strip().lower() == "paid" else "Pending"


class InvoiceDraft(_InvoiceBody):
    status: Optional[InvoiceStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> Optional[InvoiceStatus]:
        return None if _blank_to_none(v) is None else _coerce_status(v)

    @classmethod
    def from_invoice(cls, inv: "Invoice") -> "InvoiceDraft":
        return cls(
            number=inv.number,
            date=inv.date,
            due_date=inv.due_date,
            client_name=inv.client_name,
            client_email=inv.client_email,
            client_address=inv.client_address,
            items=[it.model_copy(deep=True) for it in inv.items],
            status=inv.status,
        )


class Invoice(_InvoiceBody):
    id: str = Field(default_factory=gen_id)
    total: float = 0.0  # snapshot calculé à l'enregistrement
    status: InvoiceStatus = "Pending"
    created_at: dt.datetime = Field(
        default_factory=dt.datetime.now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    owner_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("owner_id", "ownerId", "uid")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return gen_id() if v is None or v == "" else str(v)

    @field_validator("total", mode="before")
    @classmethod
    def _total(cls, v: Any) -> float:
        return to_number(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> InvoiceStatus:
        return _coerce_status(v)

    @property
    def item_count(self) -> int:
        return len(self.items)


class InvoiceSummary(BaseModel):
    count: int = 0
    revenue: float = 0.0
