from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MPESA = "mpesa"
    EMOLA = "emola"

    @classmethod
    def parse(cls, value: "str | PaymentMethod | None") -> "PaymentMethod | None":
        if isinstance(value, PaymentMethod):
            return value
        if value is None or not value.strip():
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock: int
    category: str = ""
    barcode: str | None = None
    min_stock: int | None = None


@dataclass(frozen=True, slots=True)
class CartLine:
    product: Product
    quantity: int
    discount_percent: Decimal = Decimal("0")

    @property
    def product_id(self) -> str:
        return self.product.id


@dataclass(frozen=True, slots=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    grand_total: Decimal


@dataclass(frozen=True, slots=True)
class SaleItemDraft:
    """Line snapshot taken at checkout; later price changes never touch it."""

    product_id: str
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    total_price: Decimal


@dataclass(frozen=True, slots=True)
class SaleDraft:
    cashier_id: str
    customer_id: str | None
    total_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    payment_method: PaymentMethod
    notes: str | None
    items: tuple[SaleItemDraft, ...]


@dataclass(frozen=True, slots=True)
class SaleItem:
    product_id: str
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    total_price: Decimal
    product_name: str | None = None


@dataclass(frozen=True, slots=True)
class Sale:
    id: str
    cashier_id: str
    total_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    payment_method: str
    created_at: datetime
    customer_id: str | None = None
    customer_name: str | None = None
    notes: str | None = None
    items: tuple[SaleItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class StoreSettings:
    currency: str = "MZN"
    currency_symbol: str = "MT"
    tax_rate: Decimal = Decimal("17")
    company_name: str = "Minha Empresa"
    receipt_footer: str = "Thank you for your purchase!"
    low_stock_threshold: int = 5
