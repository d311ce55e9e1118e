"""Pytest fixtures: domain products, an in-memory sale store and a SQLite-backed API."""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pdv.core.security import create_access_token, get_password_hash
from pdv.db import store as db_store
from pdv.db.session import get_db, make_engine
from pdv.db.tables import metadata
from pdv.domain.cart import Cart
from pdv.domain.errors import InsufficientStock
from pdv.domain.models import Product, Sale, SaleItem
from pdv.main import app


@pytest.fixture
def product_a() -> Product:
    return Product(id="prod-a", name="Coca-Cola 350ml", price=Decimal("2.50"), stock=10, category="Drinks", barcode="789000111")


@pytest.fixture
def product_b() -> Product:
    return Product(id="prod-b", name="Rice 5kg", price=Decimal("10.00"), stock=5, category="Grains", barcode="789000222")


@pytest.fixture
def example_cart(product_a, product_b) -> Cart:
    """A x2 without discount, B x1 with 10% off: subtotal 14.00."""
    cart = Cart()
    cart.add_item(product_a, 2)
    cart.add_item(product_b, 1)
    cart.set_discount(product_b.id, 10)
    return cart


class MemorySaleStore:
    """
    Sale store without transactions: what is written stays written.

    ``fail_insert`` makes the sale write fail, ``fail_decrement_on`` makes the
    stock update for that product id fail, ``fail_commit`` makes the final
    commit fail.
    """

    transactional = False

    def __init__(self, products, fail_insert=False, fail_decrement_on=None, fail_commit=False):
        self.stock = {p.id: p.stock for p in products}
        self.sales: list[Sale] = []
        self.decrements: list[tuple[str, int]] = []
        self.fail_insert = fail_insert
        self.fail_decrement_on = fail_decrement_on
        self.fail_commit = fail_commit
        self.commits = 0
        self.rollbacks = 0

    def insert_sale(self, draft):
        if self.fail_insert:
            raise RuntimeError("connection reset")
        sale = Sale(
            id=f"sale-0000-{len(self.sales) + 1:08d}",
            cashier_id=draft.cashier_id,
            customer_id=draft.customer_id,
            total_amount=draft.total_amount,
            discount_amount=draft.discount_amount,
            tax_amount=draft.tax_amount,
            payment_method=draft.payment_method.value,
            notes=draft.notes,
            created_at=datetime(2024, 1, 15, 14, 30, 5, tzinfo=timezone.utc),
            items=tuple(
                SaleItem(
                    product_id=i.product_id,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    discount_percentage=i.discount_percentage,
                    total_price=i.total_price,
                )
                for i in draft.items
            ),
        )
        self.sales.append(sale)
        return sale

    def decrement_stock(self, product_id, quantity):
        if product_id == self.fail_decrement_on:
            raise RuntimeError("timeout talking to inventory")
        if self.stock[product_id] < quantity:
            raise InsufficientStock(f"Insufficient stock for {product_id}", product_id=product_id)
        self.stock[product_id] -= quantity
        self.decrements.append((product_id, quantity))

    def commit(self):
        if self.fail_commit:
            raise RuntimeError("lost connection during commit")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def memory_store(product_a, product_b) -> MemorySaleStore:
    return MemorySaleStore([product_a, product_b])


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """Products A and B from the worked example plus a low-stock item and a customer."""
    a = db_store.create_product(
        db, {"name": "Coca-Cola 350ml", "price": Decimal("2.50"), "stock": 10, "category": "Drinks", "barcode": "789000111"}
    )
    b = db_store.create_product(
        db, {"name": "Rice 5kg", "price": Decimal("10.00"), "stock": 5, "category": "Grains", "barcode": "789000222"}
    )
    beans = db_store.create_product(
        db, {"name": "Black Beans 1kg", "price": Decimal("8.50"), "stock": 3, "category": "Grains", "min_stock": 8}
    )
    customer = db_store.create_customer(db, {"name": "João Silva", "phone": "+258 84 123 4567"})
    db.commit()
    return {"a": a, "b": b, "beans": beans, "customer": customer}


@pytest.fixture
def users(db):
    created = {}
    for role in ("admin", "cashier", "viewer"):
        created[role] = db_store.create_user(db, role, get_password_hash(f"{role}-pass"), role, f"{role.title()} User")
    db.commit()
    return created


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(users):
    def _headers(role: str) -> dict:
        user = users[role]
        return {"Authorization": f"Bearer {create_access_token(user['id'], user['role'])}"}

    return _headers
