import uuid
from dataclasses import asdict, fields
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from pdv.core.config import settings as app_settings
from pdv.db.tables import customers, products, sale_items, sales, settings_table, users
from pdv.domain.errors import InsufficientStock
from pdv.domain.models import Product, Sale, SaleDraft, SaleItem, StoreSettings

SALES_HISTORY_LIMIT = 100


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def row_to_product(row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        price=Decimal(str(row["price"])),
        stock=int(row["stock"]),
        category=row["category"] or "",
        barcode=row["barcode"],
        min_stock=row["min_stock"],
    )


# Products


def get_product(db: Session, product_id: str) -> Product | None:
    row = db.execute(select(products).where(products.c.id == product_id)).mappings().first()
    return row_to_product(row) if row else None


def get_product_by_barcode(db: Session, barcode: str) -> Product | None:
    row = db.execute(select(products).where(products.c.barcode == barcode)).mappings().first()
    return row_to_product(row) if row else None


def list_products(db: Session) -> list[Product]:
    rows = db.execute(select(products).order_by(products.c.name)).mappings().all()
    return [row_to_product(row) for row in rows]


def create_product(db: Session, values: dict[str, Any]) -> Product:
    product_id = new_id()
    now = utcnow()
    db.execute(insert(products).values(id=product_id, created_at=now, updated_at=now, **values))
    return get_product(db, product_id)


def update_product(db: Session, product_id: str, values: dict[str, Any]) -> Product | None:
    if values:
        db.execute(update(products).where(products.c.id == product_id).values(updated_at=utcnow(), **values))
    return get_product(db, product_id)


def adjust_stock(db: Session, product_id: str, delta: int) -> Product | None:
    """Apply ``delta`` unless it would take stock below zero."""
    result = db.execute(
        update(products)
        .where(products.c.id == product_id, products.c.stock + delta >= 0)
        .values(stock=products.c.stock + delta, updated_at=utcnow())
    )
    if result.rowcount == 0:
        return None
    return get_product(db, product_id)


# Customers


def list_customers(db: Session) -> list[dict]:
    rows = db.execute(select(customers).order_by(customers.c.name)).mappings().all()
    return [dict(row) for row in rows]


def get_customer(db: Session, customer_id: str) -> dict | None:
    row = db.execute(select(customers).where(customers.c.id == customer_id)).mappings().first()
    return dict(row) if row else None


def create_customer(db: Session, values: dict[str, Any]) -> dict:
    customer_id = new_id()
    db.execute(insert(customers).values(id=customer_id, created_at=utcnow(), **values))
    return get_customer(db, customer_id)


def update_customer(db: Session, customer_id: str, values: dict[str, Any]) -> dict | None:
    if values:
        db.execute(update(customers).where(customers.c.id == customer_id).values(**values))
    return get_customer(db, customer_id)


# Users


def get_user_by_username(db: Session, username: str) -> dict | None:
    row = db.execute(select(users).where(users.c.username == username).limit(1)).mappings().first()
    return dict(row) if row else None


def get_user(db: Session, user_id: str) -> dict | None:
    row = db.execute(select(users).where(users.c.id == user_id)).mappings().first()
    return dict(row) if row else None


def create_user(db: Session, username: str, password_hash: str, role: str, full_name: str | None = None) -> dict:
    user_id = new_id()
    db.execute(
        insert(users).values(
            id=user_id,
            username=username,
            password_hash=password_hash,
            full_name=full_name,
            role=role,
            is_active=True,
        )
    )
    return get_user(db, user_id)


def touch_last_login(db: Session, user_id: str) -> None:
    db.execute(update(users).where(users.c.id == user_id).values(last_login_at=utcnow()))


# Sales


def _load_items(db: Session, sale_ids: list[str]) -> dict[str, list[SaleItem]]:
    items: dict[str, list[SaleItem]] = {sale_id: [] for sale_id in sale_ids}
    if not sale_ids:
        return items
    rows = db.execute(
        select(sale_items, products.c.name.label("product_name"))
        .join(products, products.c.id == sale_items.c.product_id, isouter=True)
        .where(sale_items.c.sale_id.in_(sale_ids))
        .order_by(sale_items.c.sale_id, sale_items.c.position)
    ).mappings().all()
    for row in rows:
        items[row["sale_id"]].append(
            SaleItem(
                product_id=row["product_id"],
                quantity=int(row["quantity"]),
                unit_price=Decimal(str(row["unit_price"])),
                discount_percentage=Decimal(str(row["discount_percentage"])),
                total_price=Decimal(str(row["total_price"])),
                product_name=row["product_name"],
            )
        )
    return items


def _sales_query():
    return select(sales, customers.c.name.label("customer_name")).join(
        customers, customers.c.id == sales.c.customer_id, isouter=True
    )


def _row_to_sale(row, items: list[SaleItem]) -> Sale:
    return Sale(
        id=row["id"],
        cashier_id=row["cashier_id"],
        customer_id=row["customer_id"],
        customer_name=row["customer_name"],
        total_amount=Decimal(str(row["total_amount"])),
        discount_amount=Decimal(str(row["discount_amount"])),
        tax_amount=Decimal(str(row["tax_amount"])),
        payment_method=row["payment_method"],
        notes=row["notes"],
        created_at=row["created_at"],
        items=tuple(items),
    )


def get_sale(db: Session, sale_id: str) -> Sale | None:
    row = db.execute(_sales_query().where(sales.c.id == sale_id)).mappings().first()
    if not row:
        return None
    return _row_to_sale(row, _load_items(db, [sale_id])[sale_id])


def list_sales(
    db: Session,
    start: date | None = None,
    end: date | None = None,
    limit: int | None = SALES_HISTORY_LIMIT,
) -> list[Sale]:
    """Newest first; ``end`` is inclusive of the whole day."""
    query = _sales_query().order_by(sales.c.created_at.desc()).limit(limit)
    if start:
        query = query.where(sales.c.created_at >= datetime.combine(start, time.min))
    if end:
        query = query.where(sales.c.created_at < datetime.combine(end + timedelta(days=1), time.min))
    rows = db.execute(query).mappings().all()
    items = _load_items(db, [row["id"] for row in rows])
    return [_row_to_sale(row, items[row["id"]]) for row in rows]


class SqlSaleStore:
    """Checkout persistence on one SQLAlchemy session, inside one transaction."""

    transactional = True

    def __init__(self, db: Session):
        self.db = db

    def insert_sale(self, draft: SaleDraft) -> Sale:
        sale_id = new_id()
        created_at = utcnow()
        self.db.execute(
            insert(sales).values(
                id=sale_id,
                customer_id=draft.customer_id,
                cashier_id=draft.cashier_id,
                total_amount=draft.total_amount,
                discount_amount=draft.discount_amount,
                tax_amount=draft.tax_amount,
                payment_method=draft.payment_method.value,
                notes=draft.notes,
                created_at=created_at,
            )
        )
        self.db.execute(
            insert(sale_items),
            [
                {
                    "sale_id": sale_id,
                    "product_id": item.product_id,
                    "position": position,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "discount_percentage": item.discount_percentage,
                    "total_price": item.total_price,
                }
                for position, item in enumerate(draft.items)
            ],
        )
        return Sale(
            id=sale_id,
            cashier_id=draft.cashier_id,
            customer_id=draft.customer_id,
            total_amount=draft.total_amount,
            discount_amount=draft.discount_amount,
            tax_amount=draft.tax_amount,
            payment_method=draft.payment_method.value,
            notes=draft.notes,
            created_at=created_at,
            items=tuple(
                SaleItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount_percentage=item.discount_percentage,
                    total_price=item.total_price,
                )
                for item in draft.items
            ),
        )

    def decrement_stock(self, product_id: str, quantity: int) -> None:
        result = self.db.execute(
            update(products)
            .where(products.c.id == product_id, products.c.stock >= quantity)
            .values(stock=products.c.stock - quantity, updated_at=utcnow())
        )
        if result.rowcount == 0:
            current = self.db.execute(
                select(products.c.name, products.c.stock).where(products.c.id == product_id)
            ).mappings().first()
            if current is None:
                raise InsufficientStock(f"Product {product_id} no longer exists", product_id=product_id)
            raise InsufficientStock(
                f"Insufficient stock for {current['name']}: have={current['stock']}, need={quantity}",
                product_id=product_id,
            )

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


# Store settings


def _coerce_setting(name: str, raw: str):
    default = getattr(StoreSettings(), name)
    if isinstance(default, Decimal):
        return Decimal(raw)
    if isinstance(default, int):
        return int(raw)
    return raw


def default_store_settings() -> StoreSettings:
    return StoreSettings(**{f.name: getattr(app_settings, f.name) for f in fields(StoreSettings)})


def load_store_settings(db: Session) -> StoreSettings:
    values = asdict(default_store_settings())
    rows = db.execute(select(settings_table.c.key, settings_table.c.value)).all()
    for key, value in rows:
        if key in values:
            values[key] = _coerce_setting(key, value)
    return StoreSettings(**values)


def save_store_setting(db: Session, key: str, value) -> None:
    existing = db.execute(select(settings_table.c.key).where(settings_table.c.key == key)).first()
    if existing:
        db.execute(
            update(settings_table).where(settings_table.c.key == key).values(value=str(value), updated_at=utcnow())
        )
    else:
        db.execute(insert(settings_table).values(key=key, value=str(value), updated_at=utcnow()))
