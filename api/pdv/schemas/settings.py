from pydantic import BaseModel, Field


class StoreSettingsResponse(BaseModel):
    currency: str
    currency_symbol: str
    tax_rate: float
    company_name: str
    receipt_footer: str
    low_stock_threshold: int


class StoreSettingsUpdate(BaseModel):
    currency: str | None = Field(default=None, min_length=1, max_length=10)
    currency_symbol: str | None = Field(default=None, min_length=1, max_length=10)
    tax_rate: float | None = Field(default=None, ge=0, le=100)
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    receipt_footer: str | None = None
    low_stock_threshold: int | None = Field(default=None, ge=0)
