from pydantic import BaseModel

from backend.app.db.models.core_types import StockStatus


class StockLevelRead(BaseModel):
    product_id: int
    name: str
    category_id: int

    stock_quantity: int  # READ ONLY, modifié uniquement via ventes / restocks
    min_stock_level: int
    stock_status: StockStatus
    deficit: int  # max(0, min_stock_level - stock_quantity)
