"""
Erreurs métier du ledger de stock.

Toutes dérivent de StockLedgerError : la couche HTTP les attrape d'un seul
handler et renvoie `code` + `message` + le contexte (produit, quantités).
Seule StorageConflict est rejouée automatiquement (par le coordinateur).
"""

from __future__ import annotations

from typing import Any


class StockLedgerError(Exception):
    code = "STOCK_LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class ValidationFailed(StockLedgerError):
    """Lot invalide, rejeté avant tout accès au stockage."""

    code = "VALIDATION"
    http_status = 400


class NotFound(StockLedgerError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class InsufficientStock(StockLedgerError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id: int, product_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}",
            product_id=product_id,
            product_name=product_name,
            available=available,
            requested=requested,
        )


class StockConflict(StockLedgerError):
    """Annulation d'un restock impossible : le stock ajouté a déjà été vendu."""

    code = "STOCK_CONFLICT"
    http_status = 409

    def __init__(self, product_id: int, product_name: str, current: int, required: int) -> None:
        super().__init__(
            f"Cannot cancel: {product_name} has been sold. "
            f"Current stock: {current}, Need to remove: {required}",
            product_id=product_id,
            product_name=product_name,
            current=current,
            required=required,
        )


class AlreadyReversed(StockLedgerError):
    code = "ALREADY_REVERSED"
    http_status = 409

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} is already cancelled", entry_id=entry_id)


class MissingDetail(StockLedgerError):
    code = "MISSING_DETAIL"
    http_status = 409

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} has no line items", entry_id=entry_id)


class StorageConflict(StockLedgerError):
    """Modification concurrente détectée ; le scope complet peut être rejoué."""

    code = "STORAGE_CONFLICT"
    http_status = 503

    def __init__(self, message: str = "Concurrent modification detected, retry", **context: Any) -> None:
        super().__init__(message, **context)
