from pydantic import BaseModel, Field


class CustomerInput(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class CustomerResponse(BaseModel):
    id: str
    name: str
    email: str | None
    phone: str | None
    address: str | None
