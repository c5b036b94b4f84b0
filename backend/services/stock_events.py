"""
Commit d'un évènement de stock (vente ou restock).

Règle métier :
    SALE    : stock -= quantité, refusé si SUM(quantités du lot) > stock (par produit)
    RESTOCK : stock += quantité, refusé (ValidationFailed) si le stock dépasserait QTY_MAX

Propriétés :
- validation du lot AVANT tout accès base
- verrous produits pris par id croissant, dans le même scope que l'écriture
- tout ou rien (header + lignes + deltas + mouvements)
- total en Decimal, arrondi au centime par ligne (ROUND_HALF_UP)
"""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import (
    Customer,
    LedgerEntry,
    LedgerLine,
    Supplier,
    User,
    utcnow,
)
from backend.app.db.models.core_types import LedgerKind, LedgerStatus, MovementType, PaymentMethod
from backend.app.schemas.ledger import AMOUNT_MAX, CommitReceipt, LineItemIn
from backend.services.errors import InsufficientStock, NotFound, ValidationFailed
from backend.services.stock_store import adjust, check_capacity, lock_products
from backend.services.unit_of_work import TransactionCoordinator

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_lines(lines: Iterable[Any] | None) -> list[LineItemIn]:
    """Lot non vide, 0 < quantity <= QTY_MAX, unit_amount >= 0 (2 décimales max), sous-totaux et total <= AMOUNT_MAX."""
    items: list[LineItemIn] = []
    for idx, raw in enumerate(lines or [], start=1):
        data = raw.model_dump() if isinstance(raw, BaseModel) else raw
        try:
            items.append(LineItemIn.model_validate(data))
        except PydanticValidationError as exc:
            raise ValidationFailed(
                f"Invalid line item #{idx}",
                line=idx,
                errors=exc.errors(include_url=False, include_context=False, include_input=False),
            ) from exc

    if not items:
        raise ValidationFailed("At least one line item is required")

    total = Decimal("0.00")
    for idx, it in enumerate(items, start=1):
        subtotal = money(it.unit_amount * it.quantity)
        if subtotal > AMOUNT_MAX:
            raise ValidationFailed(f"Line item #{idx} subtotal exceeds {AMOUNT_MAX}", line=idx, subtotal=str(subtotal))
        total += subtotal
    if total > AMOUNT_MAX:
        raise ValidationFailed(f"Total exceeds {AMOUNT_MAX}", total=str(total))
    return items


def make_idempotency_key(kind: LedgerKind, provided: str | None) -> str | None:
    """Clé client (header Idempotency-Key) -> sha256 stable, préfixée par le type."""
    if not provided or not provided.strip():
        return None
    raw = f"LEDGER-IDEMP:{kind.value}:{provided.strip()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def commit_entry(
    coordinator: TransactionCoordinator,
    kind: LedgerKind | str,
    party_id: int | None,
    actor_id: int | None,
    lines: Iterable[Any] | None,
    *,
    payment_method: PaymentMethod | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> CommitReceipt:
    try:
        kind = LedgerKind(kind)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown ledger kind {kind!r}") from exc

    items = validate_lines(lines)
    if actor_id is None:
        raise ValidationFailed("User ID is required")
    if kind is LedgerKind.restock and party_id is None:
        raise ValidationFailed("Supplier ID is required for a restock")

    key = make_idempotency_key(kind, idempotency_key)

    receipt, low_stock = coordinator.run(
        _commit_in_scope,
        kind,
        party_id,
        actor_id,
        items,
        payment_method,
        notes,
        key,
    )

    log.info(
        "%s #%s committed: %d item(s), total=%s",
        kind.value,
        receipt.entry_id,
        receipt.item_count,
        receipt.total,
    )
    for pid, name, qty, min_level in low_stock:
        log.warning("Low stock: product %s (%s) at %d (min %d)", pid, name, qty, min_level)

    return receipt


def commit_sale(
    coordinator: TransactionCoordinator,
    customer_id: int | None,
    user_id: int | None,
    lines: Iterable[Any] | None,
    **kwargs: Any,
) -> CommitReceipt:
    return commit_entry(coordinator, LedgerKind.sale, customer_id, user_id, lines, **kwargs)


def commit_restock(
    coordinator: TransactionCoordinator,
    supplier_id: int | None,
    user_id: int | None,
    lines: Iterable[Any] | None,
    **kwargs: Any,
) -> CommitReceipt:
    kwargs.pop("payment_method", None)
    return commit_entry(coordinator, LedgerKind.restock, supplier_id, user_id, lines, **kwargs)


def receipt_for(entry: LedgerEntry) -> CommitReceipt:
    return CommitReceipt(
        entry_id=int(entry.id),
        kind=entry.kind,
        total=entry.total,
        item_count=len(entry.lines),
        timestamp=entry.happened_at,
    )


# ---------- dans le scope ----------
def _commit_in_scope(
    db: Session,
    kind: LedgerKind,
    party_id: int | None,
    actor_id: int,
    items: list[LineItemIn],
    payment_method: PaymentMethod | None,
    notes: str | None,
    key: str | None,
) -> tuple[CommitReceipt, list[tuple[int, str, int, int]]]:
    # replay idempotent : aucune mutation, même reçu
    if key:
        existing = db.execute(
            select(LedgerEntry).where(LedgerEntry.idempotency_key == key)
        ).scalar_one_or_none()
        if existing:
            log.info("%s #%s replayed (idempotency key)", kind.value, existing.id)
            return receipt_for(existing), []

    _resolve_parties(db, kind, party_id, actor_id)

    # ---------- VERROUS (id croissant) ----------
    products = lock_products(db, (it.product_id for it in items))

    requested: dict[int, int] = defaultdict(int)
    for it in items:
        requested[it.product_id] += it.quantity

    # ---------- PLANCHER (vente) / PLAFOND (restock) ----------
    if kind is LedgerKind.sale:
        for pid in sorted(requested):
            p = products[pid]
            if requested[pid] > p.stock_quantity:
                raise InsufficientStock(
                    product_id=pid,
                    product_name=p.name,
                    available=p.stock_quantity,
                    requested=requested[pid],
                )
    else:
        for pid in sorted(requested):
            check_capacity(products[pid], requested[pid])

    # ---------- TOTAL ----------
    subtotals = [money(it.unit_amount * it.quantity) for it in items]
    total = sum(subtotals, Decimal("0.00"))

    # ---------- ÉCRITURE ----------
    is_sale = kind is LedgerKind.sale
    entry = LedgerEntry(
        kind=kind,
        customer_id=party_id if is_sale else None,
        supplier_id=None if is_sale else party_id,
        user_id=actor_id,
        payment_method=(payment_method or PaymentMethod.cash) if is_sale else None,
        happened_at=utcnow(),
        total=total,
        status=LedgerStatus.completed,
        notes=notes,
        idempotency_key=key,
    )
    db.add(entry)
    db.flush()  # entry.id

    for it, subtotal in zip(items, subtotals):
        entry.lines.append(
            LedgerLine(
                product_id=it.product_id,
                quantity=it.quantity,
                unit_amount=money(it.unit_amount),
                subtotal=subtotal,
            )
        )
    db.flush()  # ids de lignes dans l'ordre de saisie

    sign = -1 if is_sale else 1
    movement_type = MovementType.sale if is_sale else MovementType.restock
    for it in items:
        adjust(db, it.product_id, sign * it.quantity, movement_type=movement_type, entry_id=entry.id)

    # conflit de version -> StaleDataError ici, dans le scope
    db.flush()

    low_stock = []
    if is_sale:
        low_stock = [
            (pid, p.name, p.stock_quantity, p.min_stock_level)
            for pid, p in products.items()
            if p.stock_quantity <= p.min_stock_level
        ]
    return receipt_for(entry), low_stock


def _resolve_parties(db: Session, kind: LedgerKind, party_id: int | None, actor_id: int) -> None:
    if not db.get(User, actor_id):
        raise NotFound("user", actor_id)

    if kind is LedgerKind.sale:
        if party_id is not None and not db.get(Customer, party_id):
            raise NotFound("customer", party_id)
    elif not db.get(Supplier, party_id):
        raise NotFound("supplier", party_id)
