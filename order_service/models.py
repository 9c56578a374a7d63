from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from order_service.domain import CheckoutResult, Order


class OrderLine(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal


class OrderDetail(BaseModel):
    order_id: str
    total: Decimal
    items: list[OrderLine]
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderDetail":
        return cls(
            order_id=order.order_id,
            total=order.total,
            items=[
                OrderLine(product_id=item.product_id, quantity=item.quantity, unit_price=item.unit_price)
                for item in order.items
            ],
            created_at=order.created_at,
        )


class OrderResponse(OrderDetail):
    status: str
    replayed: bool = False
    warnings: list[str] = []
    latency_ms: int

    @classmethod
    def from_result(cls, result: CheckoutResult, latency_ms: int) -> "OrderResponse":
        if result.replayed:
            status = "replayed"
        elif result.cart_cleared:
            status = "completed"
        else:
            status = "completed_cart_pending"
        detail = OrderDetail.from_order(result.order)
        return cls(
            **detail.model_dump(),
            status=status,
            replayed=result.replayed,
            warnings=list(result.warnings),
            latency_ms=latency_ms,
        )


class OrderSummary(BaseModel):
    order_id: str
    total: Decimal
    created_at: datetime


class OrderHistory(BaseModel):
    orders: list[OrderSummary]


class ConfigRequest(BaseModel):
    cart_timeout_s: float | None = None
    catalog_timeout_s: float | None = None


class ReconcileResponse(BaseModel):
    resolved: int
    pending: int
