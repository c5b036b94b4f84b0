import enum

class Role(str, enum.Enum):
    admin = "ADMIN"
    manager = "MANAGER"
    cashier = "CASHIER"

class LedgerKind(str, enum.Enum):
    sale = "SALE"
    restock = "RESTOCK"

class LedgerStatus(str, enum.Enum):
    completed = "COMPLETED"
    cancelled = "CANCELLED"

class PaymentMethod(str, enum.Enum):
    cash = "CASH"
    card = "CARD"
    transfer = "TRANSFER"
    ewallet = "EWALLET"

class MovementType(str, enum.Enum):
    sale = "SALE"
    restock = "RESTOCK"
    sale_reversal = "SALE_REVERSAL"
    restock_reversal = "RESTOCK_REVERSAL"

class StockStatus(str, enum.Enum):
    out_of_stock = "OUT_OF_STOCK"
    low_stock = "LOW_STOCK"
    in_stock = "IN_STOCK"
