from __future__ import annotations

from datetime import date
from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_coordinator, get_db
from backend.app.core.config import LIST_LIMIT
from backend.app.db.models.core_types import LedgerKind, LedgerStatus
from backend.app.schemas.ledger import CommitReceipt, LedgerEntryRead, LedgerEntrySummary, SaleCreate
from backend.services.ledger_queries import get_entry, list_entries
from backend.services.reversals import reverse_sale
from backend.services.stock_events import commit_sale
from backend.services.unit_of_work import TransactionCoordinator

router = APIRouter(prefix="/sales")


@router.get("", response_model=list[LedgerEntrySummary])
def list_sales(
    start: date | None = None,
    end: date | None = None,
    status: LedgerStatus | None = None,
    customer_id: int | None = None,
    limit: int = Query(default=LIST_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return list_entries(
        db,
        kind=LedgerKind.sale,
        status=status,
        start=start,
        end=end,
        party_id=customer_id,
        limit=limit,
    )


@router.get("/{sale_id}", response_model=LedgerEntryRead)
def get_sale(sale_id: int, db: Session = Depends(get_db)):
    return get_entry(db, sale_id, kind=LedgerKind.sale)


@router.post("", status_code=201, response_model=CommitReceipt)
def create_sale(
    payload: SaleCreate,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return commit_sale(
        coordinator,
        payload.customer_id,
        payload.user_id,
        payload.items,
        payment_method=payload.payment_method,
        notes=payload.notes,
        idempotency_key=idempotency_key,
    )


@router.post("/{sale_id}/cancel")
def cancel_sale(sale_id: int, coordinator: TransactionCoordinator = Depends(get_coordinator)):
    reverse_sale(coordinator, sale_id)
    return {"ok": True, "message": "Sale cancelled and stock restored"}
