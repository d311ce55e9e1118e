from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=250)
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    category: str = ""
    barcode: str | None = None
    min_stock: int | None = Field(default=None, ge=0)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=250)
    price: float | None = Field(default=None, ge=0)
    category: str | None = None
    barcode: str | None = None
    min_stock: int | None = Field(default=None, ge=0)


class StockAdjustRequest(BaseModel):
    delta: int
    reason: str | None = None


class ProductResponse(BaseModel):
    id: str
    name: str
    price: float
    stock: int
    category: str
    barcode: str | None
    min_stock: int | None
    low_stock: bool
