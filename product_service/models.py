from decimal import Decimal

from pydantic import BaseModel, Field


class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: Decimal


class CreateProductRequest(BaseModel):
    id: str | None = None
    name: str
    description: str = ""
    price: Decimal = Field(ge=0)


class ConfigRequest(BaseModel):
    delay_ms: int | None = None
    fail_mode: str | None = None
    fail_code: int | None = None
