import os

# L'engine module-level (backend.app.db.session) ne doit jamais viser une vraie base en test
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from dataclasses import dataclass
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from backend.app.db.base import Base
from backend.app.db.models.models_v1 import Category, Customer, Product, Supplier, User
from backend.app.db.models.core_types import Role
from backend.app.db.session import make_engine, make_session_factory
from backend.services.unit_of_work import TransactionCoordinator


@dataclass
class Catalog:
    category_id: int
    user_id: int
    customer_id: int
    supplier_id: int


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base isolée par test.

    SQLite fichier par défaut (partageable entre threads), ou Postgres si
    TEST_DATABASE_URL est défini : le schéma est alors recréé à chaque test.
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'ledger.db'}"
    eng = make_engine(url)
    Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return make_session_factory(engine)


@pytest.fixture(scope="function")
def coordinator(session_factory) -> TransactionCoordinator:
    return TransactionCoordinator(session_factory, retry_backoff_s=0)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def catalog(session_factory) -> Catalog:
    with session_factory() as s:
        category = Category(name="Beverages")
        user = User(username="cashier1", password_hash="x", role=Role.cashier)
        customer = Customer(name="Budi", email="budi@example.com")
        supplier = Supplier(name="PT Sumber Makmur")
        s.add_all([category, user, customer, supplier])
        s.commit()
        return Catalog(
            category_id=category.id,
            user_id=user.id,
            customer_id=customer.id,
            supplier_id=supplier.id,
        )


@pytest.fixture(scope="function")
def make_product(session_factory, catalog):
    def _make(name: str = "Teh Botol", stock: int = 10, min_level: int = 2, price: str = "5.00") -> int:
        with session_factory() as s:
            p = Product(
                name=name,
                price=Decimal(price),
                category_id=catalog.category_id,
                stock_quantity=stock,
                min_stock_level=min_level,
            )
            s.add(p)
            s.commit()
            return p.id

    return _make


@pytest.fixture(scope="function")
def stock_of(session_factory):
    """Lecture fraîche (nouvelle session) du stock d'un produit."""

    def _stock(product_id: int) -> int:
        with session_factory() as s:
            return s.get(Product, product_id).stock_quantity

    return _stock
