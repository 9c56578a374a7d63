from pydantic import BaseModel, Field


class AddItemRequest(BaseModel):
    productId: str
    quantity: int = Field(gt=0)


class RemoveItemRequest(BaseModel):
    productId: str


class ConfigRequest(BaseModel):
    delay_ms: int | None = None
    fail_mode: str | None = None
    fail_code: int | None = None
