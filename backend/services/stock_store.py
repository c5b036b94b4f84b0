from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Product, StockMovement
from backend.app.db.models.core_types import MovementType, StockStatus
from backend.app.schemas.ledger import QTY_MAX
from backend.services.errors import NotFound, ValidationFailed


def lock_products(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Verrouille (FOR UPDATE) les produits référencés, par id CROISSANT.

    Propriétés :
    - ordre total déterministe -> pas de deadlock entre deux lots
    - NotFound sur le premier id inconnu, avant toute mutation
    - populate_existing : la valeur lue est celle sous verrou, jamais un cache de session
    """
    ids = sorted({int(pid) for pid in product_ids if pid is not None})
    locked: dict[int, Product] = {}

    for pid in ids:
        product = (
            db.execute(
                select(Product)
                .where(Product.id == pid)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            .scalars()
            .first()
        )
        if product is None:
            raise NotFound("product", pid)
        locked[pid] = product

    return locked


def check_capacity(product: Product, added: int) -> None:
    """Refuse un ajout qui ferait dépasser au stock la capacité de la colonne (QTY_MAX)."""
    if product.stock_quantity + added > QTY_MAX:
        raise ValidationFailed(
            f"Stock of {product.name} would exceed {QTY_MAX}",
            product_id=product.id,
            current=product.stock_quantity,
            requested=added,
        )


def adjust(
    db: Session,
    product_id: int,
    delta: int,
    *,
    movement_type: MovementType,
    entry_id: int,
) -> int:
    """
    Applique delta au stock et trace le mouvement. Retourne la nouvelle quantité.

    Pas de contrôle de plancher ici : c'est au processor de vérifier, sous le
    même verrou, AVANT d'appeler adjust (la contrainte CHECK reste le filet).
    """
    if delta == 0:
        raise ValueError("delta must be non-zero")

    product = db.get(Product, product_id)
    if product is None:
        raise NotFound("product", product_id)

    product.stock_quantity = product.stock_quantity + delta

    db.add(
        StockMovement(
            product_id=product_id,
            entry_id=entry_id,
            movement_type=movement_type,
            quantity=abs(delta),
            qty_after=product.stock_quantity,
        )
    )
    return product.stock_quantity


def stock_status(product: Product) -> StockStatus:
    if product.stock_quantity == 0:
        return StockStatus.out_of_stock
    if product.stock_quantity <= product.min_stock_level:
        return StockStatus.low_stock
    return StockStatus.in_stock


def get_stock_levels(
    db: Session,
    *,
    product_id: int | None = None,
    low_only: bool = False,
) -> list[Product]:
    stmt = select(Product)

    if product_id is not None:
        stmt = stmt.where(Product.id == product_id)

    if low_only:
        # plus gros déficit d'abord
        stmt = stmt.where(Product.stock_quantity <= Product.min_stock_level).order_by(
            (Product.min_stock_level - Product.stock_quantity).desc(),
            Product.id,
        )
    else:
        stmt = stmt.order_by(Product.name, Product.id)

    return list(db.execute(stmt).scalars().all())
