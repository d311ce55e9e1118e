from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    true,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(80), nullable=False, unique=True),
    Column("password_hash", String(200), nullable=False),
    Column("full_name", String(200)),
    Column("role", String(20), nullable=False, server_default="cashier"),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("last_login_at", DateTime(timezone=True)),
)

products = Table(
    "products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(250), nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("category", String(120), nullable=False, server_default=""),
    Column("barcode", String(200), unique=True),
    Column("min_stock", Integer),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

customers = Table(
    "customers",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("email", String(200)),
    Column("phone", String(60)),
    Column("address", Text),
    Column("created_at", DateTime(timezone=True)),
)

sales = Table(
    "sales",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_id", String(36), ForeignKey("customers.id")),
    Column("cashier_id", String(36), nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("discount_amount", Numeric(12, 2), nullable=False),
    Column("tax_amount", Numeric(12, 2), nullable=False),
    Column("payment_method", String(20), nullable=False),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

sale_items = Table(
    "sale_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sale_id", String(36), ForeignKey("sales.id"), nullable=False),
    Column("product_id", String(36), ForeignKey("products.id"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("discount_percentage", Numeric(5, 2), nullable=False),
    Column("total_price", Numeric(12, 2), nullable=False),
)

settings_table = Table(
    "settings",
    metadata,
    Column("key", String(60), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True)),
)
