from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.schemas.stock_level import StockLevelRead
from backend.services.ledger_queries import read_stock_levels

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockLevelRead],
)
def get_stock(
    product_id: int | None = None,
    low_only: bool = False,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - stock_quantity n'est modifiable que via ventes / restocks et leurs annulations
    - low_only : produits au niveau ou sous min_stock_level, plus gros déficit d'abord
    """
    return read_stock_levels(db, product_id=product_id, low_only=low_only)
