import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backend.app.db.models.models_v1 import LedgerEntry, LedgerLine, StockMovement
from backend.app.db.models.core_types import LedgerKind, LedgerStatus, MovementType, PaymentMethod
from backend.app.schemas.ledger import QTY_MAX
from backend.services.errors import InsufficientStock, NotFound, ValidationFailed
from backend.services.stock_events import (
    commit_entry,
    commit_restock,
    commit_sale,
    make_idempotency_key,
    money,
)


def _count(session_factory, model) -> int:
    with session_factory() as s:
        return s.execute(select(func.count()).select_from(model)).scalar_one()


def test_sale_decrements_stock_and_returns_receipt(coordinator, catalog, make_product, stock_of, session_factory):
    """
    GIVEN stock(P) = 10
    WHEN  vente [{P, qty=3, price=5.00}]
    THEN  total = 15.00, stock(P) = 7, entrée COMPLETED
    """
    pid = make_product(stock=10)

    receipt = commit_sale(
        coordinator,
        catalog.customer_id,
        catalog.user_id,
        [{"product_id": pid, "quantity": 3, "unit_amount": "5.00"}],
    )

    assert receipt.kind is LedgerKind.sale
    assert receipt.total == Decimal("15.00")
    assert receipt.item_count == 1
    assert receipt.timestamp is not None
    assert stock_of(pid) == 7

    with session_factory() as s:
        entry = s.get(LedgerEntry, receipt.entry_id)
        assert entry.status is LedgerStatus.completed
        assert entry.payment_method is PaymentMethod.cash
        assert entry.customer_id == catalog.customer_id
        assert entry.supplier_id is None


def test_restock_increments_stock_without_ceiling(coordinator, catalog, make_product, stock_of):
    pid = make_product(stock=0)

    receipt = commit_restock(
        coordinator,
        catalog.supplier_id,
        catalog.user_id,
        [{"product_id": pid, "quantity": 500, "unit_amount": "2.00"}],
    )

    assert receipt.kind is LedgerKind.restock
    assert receipt.total == Decimal("1000.00")
    assert stock_of(pid) == 500


def test_walk_in_sale_without_customer(coordinator, catalog, make_product, session_factory):
    pid = make_product(stock=4)

    receipt = commit_sale(
        coordinator,
        None,
        catalog.user_id,
        [{"product_id": pid, "quantity": 1, "unit_amount": "1.50"}],
        payment_method=PaymentMethod.card,
        notes="walk-in",
    )

    with session_factory() as s:
        entry = s.get(LedgerEntry, receipt.entry_id)
        assert entry.customer_id is None
        assert entry.payment_method is PaymentMethod.card
        assert entry.notes == "walk-in"


def test_total_is_decimal_exact(coordinator, catalog, make_product):
    a = make_product(name="Kerupuk", stock=50)
    b = make_product(name="Permen", stock=50)

    receipt = commit_sale(
        coordinator,
        None,
        catalog.user_id,
        [
            {"product_id": a, "quantity": 3, "unit_amount": "0.10"},
            {"product_id": b, "quantity": 1, "unit_amount": "0.20"},
            {"product_id": a, "quantity": 7, "unit_amount": "19.99"},
        ],
    )

    # 0.30 + 0.20 + 139.93, sans dérive flottante
    assert receipt.total == Decimal("140.43")
    assert receipt.item_count == 3


def test_lines_keep_submission_order(coordinator, catalog, make_product, session_factory):
    p1 = make_product(name="A", stock=10)
    p2 = make_product(name="B", stock=10)
    p3 = make_product(name="C", stock=10)

    receipt = commit_sale(
        coordinator,
        None,
        catalog.user_id,
        [
            {"product_id": p3, "quantity": 1, "unit_amount": "1.00"},
            {"product_id": p1, "quantity": 2, "unit_amount": "2.00"},
            {"product_id": p2, "quantity": 3, "unit_amount": "3.00"},
        ],
    )

    with session_factory() as s:
        lines = (
            s.execute(
                select(LedgerLine)
                .where(LedgerLine.entry_id == receipt.entry_id)
                .order_by(LedgerLine.id)
            )
            .scalars()
            .all()
        )
    assert [ln.product_id for ln in lines] == [p3, p1, p2]
    assert [ln.subtotal for ln in lines] == [Decimal("1.00"), Decimal("4.00"), Decimal("9.00")]


def test_insufficient_stock_reports_product_and_quantities(coordinator, catalog, make_product, stock_of):
    pid = make_product(name="Indomie", stock=2)

    with pytest.raises(InsufficientStock) as exc_info:
        commit_sale(
            coordinator,
            None,
            catalog.user_id,
            [{"product_id": pid, "quantity": 3, "unit_amount": "3.00"}],
        )

    err = exc_info.value
    assert err.context["product_id"] == pid
    assert err.context["product_name"] == "Indomie"
    assert err.context["available"] == 2
    assert err.context["requested"] == 3
    assert "Available: 2, Requested: 3" in err.message
    assert stock_of(pid) == 2


def test_repeated_product_lines_are_checked_together(coordinator, catalog, make_product, stock_of, session_factory):
    """Deux lignes du même produit : c'est la SOMME qui doit tenir dans le stock."""
    pid = make_product(stock=5)

    with pytest.raises(InsufficientStock) as exc_info:
        commit_sale(
            coordinator,
            None,
            catalog.user_id,
            [
                {"product_id": pid, "quantity": 3, "unit_amount": "1.00"},
                {"product_id": pid, "quantity": 3, "unit_amount": "1.00"},
            ],
        )

    assert exc_info.value.context["requested"] == 6
    assert stock_of(pid) == 5
    assert _count(session_factory, LedgerEntry) == 0


def test_unknown_product_on_last_item_changes_nothing(coordinator, catalog, make_product, stock_of, session_factory):
    """
    GIVEN un lot de 3 lignes dont la 3e référence un produit inconnu
    THEN  NotFound, et aucune variation de stock des lignes 1-2
    """
    p1 = make_product(name="A", stock=10)
    p2 = make_product(name="B", stock=10)

    with pytest.raises(NotFound) as exc_info:
        commit_sale(
            coordinator,
            None,
            catalog.user_id,
            [
                {"product_id": p1, "quantity": 1, "unit_amount": "1.00"},
                {"product_id": p2, "quantity": 1, "unit_amount": "1.00"},
                {"product_id": 999_999, "quantity": 1, "unit_amount": "1.00"},
            ],
        )

    assert exc_info.value.context == {"entity": "product", "entity_id": 999_999}
    assert stock_of(p1) == 10
    assert stock_of(p2) == 10
    assert _count(session_factory, LedgerEntry) == 0
    assert _count(session_factory, LedgerLine) == 0
    assert _count(session_factory, StockMovement) == 0


@pytest.mark.parametrize(
    "lines",
    [
        [],
        None,
        [{"product_id": 1, "quantity": 0, "unit_amount": "1.00"}],
        [{"product_id": 1, "quantity": -2, "unit_amount": "1.00"}],
        [{"product_id": 1, "quantity": 1, "unit_amount": "-0.01"}],
        [{"product_id": 1, "quantity": 1, "unit_amount": "1.005"}],
        [{"product_id": 1, "unit_amount": "1.00"}],
        [{"product_id": 1, "quantity": 2**63, "unit_amount": "1.00"}],
        [{"product_id": 1, "quantity": QTY_MAX + 1, "unit_amount": "1.00"}],
        [{"product_id": 1, "quantity": 1_000_000, "unit_amount": "9999999.99"}],
        [
            {"product_id": 1, "quantity": 1, "unit_amount": "600000000000.00"},
            {"product_id": 2, "quantity": 1, "unit_amount": "600000000000.00"},
        ],
    ],
)
def test_invalid_batches_are_rejected_before_store_access(lines):
    class ExplodingCoordinator:
        def run(self, *args, **kwargs):
            raise AssertionError("store must not be touched")

    with pytest.raises(ValidationFailed):
        commit_sale(ExplodingCoordinator(), None, 1, lines)


def test_zero_quantity_sale_is_validation_error(coordinator, catalog, make_product, stock_of):
    pid = make_product(stock=10)

    with pytest.raises(ValidationFailed) as exc_info:
        commit_sale(
            coordinator,
            None,
            catalog.user_id,
            [{"product_id": pid, "quantity": 0, "unit_amount": "5.00"}],
        )

    assert exc_info.value.context["line"] == 1
    assert stock_of(pid) == 10


def test_actor_and_supplier_are_required():
    line = [{"product_id": 1, "quantity": 1, "unit_amount": "1.00"}]

    with pytest.raises(ValidationFailed):
        commit_sale(None, None, None, line)
    with pytest.raises(ValidationFailed):
        commit_restock(None, None, 1, line)
    with pytest.raises(ValidationFailed):
        commit_entry(None, "REFUND", None, 1, line)


def test_unknown_parties_are_not_found(coordinator, catalog, make_product, stock_of):
    pid = make_product(stock=10)
    line = [{"product_id": pid, "quantity": 1, "unit_amount": "1.00"}]

    with pytest.raises(NotFound) as e_user:
        commit_sale(coordinator, None, 424242, line)
    with pytest.raises(NotFound) as e_customer:
        commit_sale(coordinator, 424242, catalog.user_id, line)
    with pytest.raises(NotFound) as e_supplier:
        commit_restock(coordinator, 424242, catalog.user_id, line)

    assert e_user.value.context["entity"] == "user"
    assert e_customer.value.context["entity"] == "customer"
    assert e_supplier.value.context["entity"] == "supplier"
    assert stock_of(pid) == 10


def test_movements_trace_every_delta(coordinator, catalog, make_product, session_factory):
    pid = make_product(stock=10)

    receipt = commit_sale(
        coordinator,
        None,
        catalog.user_id,
        [
            {"product_id": pid, "quantity": 2, "unit_amount": "1.00"},
            {"product_id": pid, "quantity": 3, "unit_amount": "1.00"},
        ],
    )

    with session_factory() as s:
        moves = (
            s.execute(select(StockMovement).where(StockMovement.entry_id == receipt.entry_id).order_by(StockMovement.id))
            .scalars()
            .all()
        )
    assert [(m.movement_type, m.quantity, m.qty_after) for m in moves] == [
        (MovementType.sale, 2, 8),
        (MovementType.sale, 3, 5),
    ]


def test_idempotency_key_replays_same_receipt(coordinator, catalog, make_product, stock_of, session_factory):
    pid = make_product(stock=10)
    line = [{"product_id": pid, "quantity": 4, "unit_amount": "2.50"}]

    first = commit_sale(coordinator, None, catalog.user_id, line, idempotency_key="pos-1-0001")
    again = commit_sale(coordinator, None, catalog.user_id, line, idempotency_key="pos-1-0001")

    assert again.entry_id == first.entry_id
    assert again.total == Decimal("10.00")
    assert stock_of(pid) == 6
    assert _count(session_factory, LedgerEntry) == 1


def test_idempotency_key_is_scoped_by_kind():
    assert make_idempotency_key(LedgerKind.sale, "k1") != make_idempotency_key(LedgerKind.restock, "k1")
    assert make_idempotency_key(LedgerKind.sale, "  ") is None
    assert len(make_idempotency_key(LedgerKind.sale, "k1")) == 64


def test_low_stock_is_logged_after_sale(coordinator, catalog, make_product, caplog):
    pid = make_product(name="Aqua", stock=5, min_level=3)

    with caplog.at_level(logging.WARNING, logger="backend.services.stock_events"):
        commit_sale(
            coordinator,
            None,
            catalog.user_id,
            [{"product_id": pid, "quantity": 2, "unit_amount": "1.00"}],
        )

    assert any("Low stock" in r.getMessage() and "Aqua" in r.getMessage() for r in caplog.records)


def test_money_rounds_half_up():
    assert money(Decimal("0.005")) == Decimal("0.01")
    assert money(Decimal("2.344")) == Decimal("2.34")


def test_restock_beyond_column_capacity_is_validation_error(coordinator, catalog, make_product, stock_of, session_factory):
    """
    GIVEN stock(P) = QTY_MAX - 1
    WHEN  restock de 2 (le stock dépasserait la colonne Integer)
    THEN  ValidationFailed, stock et ledger inchangés
    """
    pid = make_product(stock=QTY_MAX - 1)

    with pytest.raises(ValidationFailed) as exc_info:
        commit_restock(
            coordinator,
            catalog.supplier_id,
            catalog.user_id,
            [
                {"product_id": pid, "quantity": 1, "unit_amount": "1.00"},
                {"product_id": pid, "quantity": 1, "unit_amount": "1.00"},
            ],
        )

    assert exc_info.value.context == {
        "product_id": pid,
        "current": QTY_MAX - 1,
        "requested": 2,
    }
    assert stock_of(pid) == QTY_MAX - 1
    assert _count(session_factory, LedgerEntry) == 0
    assert _count(session_factory, StockMovement) == 0


def test_restock_up_to_column_capacity_is_accepted(coordinator, catalog, make_product, stock_of):
    pid = make_product(stock=QTY_MAX - 2)

    commit_restock(
        coordinator,
        catalog.supplier_id,
        catalog.user_id,
        [{"product_id": pid, "quantity": 2, "unit_amount": "0.00"}],
    )

    assert stock_of(pid) == QTY_MAX
