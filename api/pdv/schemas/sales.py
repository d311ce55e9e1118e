from datetime import datetime

from pydantic import BaseModel, Field


class CartLineInput(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    discount_percent: float = Field(default=0, ge=0, le=100, allow_inf_nan=False)


class CheckoutRequest(BaseModel):
    items: list[CartLineInput]
    payment_method: str | None = None
    discount_amount: float = Field(default=0, allow_inf_nan=False)
    customer_id: str | None = None
    notes: str | None = Field(default=None, max_length=1000)


class SaleItemResponse(BaseModel):
    product_id: str
    product_name: str | None
    quantity: int
    unit_price: float
    discount_percentage: float
    total_price: float


class SaleResponse(BaseModel):
    id: str
    cashier_id: str
    customer_id: str | None
    customer_name: str | None
    total_amount: float
    discount_amount: float
    tax_amount: float
    payment_method: str
    notes: str | None
    created_at: datetime
    items: list[SaleItemResponse]


class CheckoutPreview(BaseModel):
    subtotal: float
    tax_amount: float
    discount_amount: float
    total: float
    currency: str
    item_count: int
    errors: list[dict]


class DashboardSummary(BaseModel):
    total_sales: int
    total_revenue: float
    average_sale: float
    revenue_by_payment_method: dict[str, float]
