from __future__ import annotations

from datetime import date
from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_coordinator, get_db
from backend.app.core.config import LIST_LIMIT
from backend.app.db.models.core_types import LedgerKind, LedgerStatus
from backend.app.schemas.ledger import CommitReceipt, LedgerEntryRead, LedgerEntrySummary, PurchaseCreate
from backend.services.ledger_queries import get_entry, list_entries
from backend.services.reversals import reverse_restock
from backend.services.stock_events import commit_restock
from backend.services.unit_of_work import TransactionCoordinator

router = APIRouter(prefix="/purchases")


@router.get("", response_model=list[LedgerEntrySummary])
def list_purchases(
    start: date | None = None,
    end: date | None = None,
    status: LedgerStatus | None = None,
    supplier_id: int | None = None,
    limit: int = Query(default=LIST_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return list_entries(
        db,
        kind=LedgerKind.restock,
        status=status,
        start=start,
        end=end,
        party_id=supplier_id,
        limit=limit,
    )


@router.get("/{purchase_id}", response_model=LedgerEntryRead)
def get_purchase(purchase_id: int, db: Session = Depends(get_db)):
    return get_entry(db, purchase_id, kind=LedgerKind.restock)


@router.post("", status_code=201, response_model=CommitReceipt)
def create_purchase(
    payload: PurchaseCreate,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return commit_restock(
        coordinator,
        payload.supplier_id,
        payload.user_id,
        payload.items,
        notes=payload.notes,
        idempotency_key=idempotency_key,
    )


@router.post("/{purchase_id}/cancel")
def cancel_purchase(purchase_id: int, coordinator: TransactionCoordinator = Depends(get_coordinator)):
    reverse_restock(coordinator, purchase_id)
    return {"ok": True, "message": "Purchase cancelled and stock adjusted"}
