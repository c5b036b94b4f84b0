from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import LedgerKind, LedgerStatus, PaymentMethod


# plafonds des colonnes : Integer (int4) pour les quantités, Numeric(14, 2) pour les montants
QTY_MAX = 2_147_483_647
AMOUNT_MAX = Decimal("999999999999.99")


# ---------- Entrées ----------
class LineItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0, le=QTY_MAX)
    unit_amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


class SaleCreate(BaseModel):
    customer_id: int | None = None  # None = client de passage
    user_id: int
    payment_method: PaymentMethod = PaymentMethod.cash
    notes: str | None = None
    items: list[LineItemIn] = Field(min_length=1)


class PurchaseCreate(BaseModel):
    supplier_id: int
    user_id: int
    notes: str | None = None
    items: list[LineItemIn] = Field(min_length=1)


# ---------- Sorties ----------
class CommitReceipt(BaseModel):
    entry_id: int
    kind: LedgerKind
    total: Decimal
    item_count: int
    timestamp: datetime


class LedgerLineRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_amount: Decimal
    subtotal: Decimal


class LedgerEntrySummary(BaseModel):
    id: int
    kind: LedgerKind
    status: LedgerStatus
    customer_id: int | None
    supplier_id: int | None
    user_id: int
    payment_method: PaymentMethod | None
    happened_at: datetime
    total: Decimal
    notes: str | None
    cancelled_at: datetime | None
    # libellés pour l'affichage (tickets, listes)
    customer_name: str | None = None
    supplier_name: str | None = None
    user_name: str | None = None

    class Config:
        from_attributes = True


class LedgerEntryRead(LedgerEntrySummary):
    lines: list[LedgerLineRead]
    item_count: int
