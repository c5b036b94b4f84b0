from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from backend.app.core.config import LIST_LIMIT
from backend.app.db.models.models_v1 import LedgerEntry, LedgerLine
from backend.app.db.models.core_types import LedgerKind, LedgerStatus
from backend.app.schemas.ledger import LedgerEntryRead, LedgerEntrySummary, LedgerLineRead
from backend.app.schemas.stock_level import StockLevelRead
from backend.services.errors import NotFound
from backend.services.reversals import ENTITY_LABELS
from backend.services.stock_store import get_stock_levels, stock_status

WALK_IN_CUSTOMER = "Walk-in Customer"

_PARTIES = (
    selectinload(LedgerEntry.customer),
    selectinload(LedgerEntry.supplier),
    selectinload(LedgerEntry.user),
)


def _summary(entry: LedgerEntry) -> LedgerEntrySummary:
    customer_name = entry.customer.name if entry.customer else None
    if entry.kind is LedgerKind.sale and customer_name is None:
        customer_name = WALK_IN_CUSTOMER
    return LedgerEntrySummary.model_validate(entry).model_copy(
        update={
            "customer_name": customer_name,
            "supplier_name": entry.supplier.name if entry.supplier else None,
            "user_name": entry.user.username if entry.user else None,
        }
    )


def list_entries(
    db: Session,
    *,
    kind: LedgerKind | None = None,
    status: LedgerStatus | None = None,
    start: date | None = None,
    end: date | None = None,
    party_id: int | None = None,
    limit: int = LIST_LIMIT,
) -> list[LedgerEntrySummary]:
    """
    Entrées les plus récentes d'abord.

    start / end : bornes de dates INCLUSES (jour entier, UTC).
    party_id    : client (SALE) ou fournisseur (RESTOCK) ; exige `kind`.
    """
    stmt = select(LedgerEntry).order_by(LedgerEntry.happened_at.desc(), LedgerEntry.id.desc())

    if kind is not None:
        stmt = stmt.where(LedgerEntry.kind == kind)
    if status is not None:
        stmt = stmt.where(LedgerEntry.status == status)
    if start is not None:
        stmt = stmt.where(LedgerEntry.happened_at >= datetime.combine(start, time.min, tzinfo=timezone.utc))
    if end is not None:
        end_excl = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        stmt = stmt.where(LedgerEntry.happened_at < end_excl)
    if party_id is not None:
        if kind is LedgerKind.sale:
            stmt = stmt.where(LedgerEntry.customer_id == party_id)
        elif kind is LedgerKind.restock:
            stmt = stmt.where(LedgerEntry.supplier_id == party_id)
        else:
            raise ValueError("party_id filter requires kind")

    rows = db.execute(stmt.options(*_PARTIES).limit(limit)).scalars().all()
    return [_summary(e) for e in rows]


def get_entry(db: Session, entry_id: int, *, kind: LedgerKind | None = None) -> LedgerEntryRead:
    entry = db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.id == entry_id)
        .options(selectinload(LedgerEntry.lines).selectinload(LedgerLine.product), *_PARTIES)
    ).scalar_one_or_none()
    if entry is None or (kind is not None and entry.kind is not kind):
        raise NotFound(ENTITY_LABELS.get(kind, "entry"), entry_id)

    summary = _summary(entry)
    lines = [
        LedgerLineRead(
            id=ln.id,
            product_id=ln.product_id,
            product_name=ln.product.name,
            quantity=ln.quantity,
            unit_amount=ln.unit_amount,
            subtotal=ln.subtotal,
        )
        for ln in entry.lines
    ]
    return LedgerEntryRead(**summary.model_dump(), lines=lines, item_count=len(lines))


def read_stock_levels(
    db: Session,
    *,
    product_id: int | None = None,
    low_only: bool = False,
) -> list[StockLevelRead]:
    return [
        StockLevelRead(
            product_id=p.id,
            name=p.name,
            category_id=p.category_id,
            stock_quantity=p.stock_quantity,
            min_stock_level=p.min_stock_level,
            stock_status=stock_status(p),
            deficit=max(0, p.min_stock_level - p.stock_quantity),
        )
        for p in get_stock_levels(db, product_id=product_id, low_only=low_only)
    ]
