"""
Annulation (reversal) d'une vente ou d'un restock.

Règle métier :
    annuler une SALE    -> stock += quantités vendues (plafond QTY_MAX de la colonne)
    annuler un RESTOCK  -> stock -= quantités reçues, REFUSÉ si le stock courant
                           ne couvre plus la quantité (déjà revendu entre-temps)

Une entrée passe COMPLETED -> CANCELLED une seule fois : la 2e annulation
lève AlreadyReversed (jamais ignorée en silence).

Verrous : ligne ledger_entries d'abord, puis produits par id croissant.
Les contrôles portent sur TOUS les produits avant la moindre écriture.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import LedgerEntry, LedgerLine, utcnow
from backend.app.db.models.core_types import LedgerKind, LedgerStatus, MovementType
from backend.services.errors import AlreadyReversed, MissingDetail, NotFound, StockConflict
from backend.services.stock_store import adjust, check_capacity, lock_products
from backend.services.unit_of_work import TransactionCoordinator

log = logging.getLogger(__name__)

ENTITY_LABELS = {
    LedgerKind.sale: "sale",
    LedgerKind.restock: "purchase",
}


def reverse_entry(
    coordinator: TransactionCoordinator,
    entry_id: int,
    *,
    kind: LedgerKind | str | None = None,
) -> None:
    """
    Annule l'entrée `entry_id`.

    `kind` restreint le type attendu : une entrée d'un autre type est traitée
    comme introuvable (une route /sales ne peut pas annuler un achat).
    """
    expected = LedgerKind(kind) if kind is not None else None
    reversed_kind = coordinator.run(_reverse_in_scope, int(entry_id), expected)
    log.info("%s #%s cancelled, stock restored", reversed_kind.value, entry_id)


def reverse_sale(coordinator: TransactionCoordinator, entry_id: int) -> None:
    reverse_entry(coordinator, entry_id, kind=LedgerKind.sale)


def reverse_restock(coordinator: TransactionCoordinator, entry_id: int) -> None:
    reverse_entry(coordinator, entry_id, kind=LedgerKind.restock)


def _reverse_in_scope(db: Session, entry_id: int, expected: LedgerKind | None) -> LedgerKind:
    entry = (
        db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if entry is None or (expected is not None and entry.kind is not expected):
        raise NotFound(ENTITY_LABELS.get(expected, "entry"), entry_id)

    if entry.status is LedgerStatus.cancelled:
        raise AlreadyReversed(entry_id)

    lines = (
        db.execute(
            select(LedgerLine)
            .where(LedgerLine.entry_id == entry_id)
            .order_by(LedgerLine.id.asc())
        )
        .scalars()
        .all()
    )
    if not lines:
        raise MissingDetail(entry_id)

    products = lock_products(db, (ln.product_id for ln in lines))

    to_move: dict[int, int] = defaultdict(int)
    for ln in lines:
        to_move[ln.product_id] += ln.quantity

    if entry.kind is LedgerKind.restock:
        # check-then-apply : tous les produits contrôlés sous verrou avant d'écrire
        for pid in sorted(to_move):
            p = products[pid]
            if p.stock_quantity < to_move[pid]:
                raise StockConflict(
                    product_id=pid,
                    product_name=p.name,
                    current=p.stock_quantity,
                    required=to_move[pid],
                )
        sign, movement_type = -1, MovementType.restock_reversal
    else:
        for pid in sorted(to_move):
            check_capacity(products[pid], to_move[pid])
        sign, movement_type = 1, MovementType.sale_reversal

    for ln in lines:
        adjust(db, ln.product_id, sign * ln.quantity, movement_type=movement_type, entry_id=entry.id)

    entry.status = LedgerStatus.cancelled
    entry.cancelled_at = utcnow()
    db.flush()

    return entry.kind
