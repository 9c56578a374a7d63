from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class ResolvedLineItem:
    """A cart line joined with the catalog price captured at checkout time."""

    product_id: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class Order:
    order_id: str
    user_id: str
    total: Decimal
    items: Tuple[ResolvedLineItem, ...]
    created_at: datetime


class CheckoutStatus(str, Enum):
    STARTED = "started"
    AUTHENTICATED = "authenticated"
    CART_FETCHED = "cart-fetched"
    PRICED = "priced"
    PERSISTED = "persisted"
    CART_CLEARED = "cart-cleared"
    PERSISTED_CART_CLEAR_FAILED = "persisted-cart-clear-failed"
    FAILED = "failed"


@dataclass(slots=True)
class CheckoutAttempt:
    """
    In-memory record of one checkout request. Never persisted.
    """

    user_id: Optional[str] = None
    snapshot: List[CartLine] = field(default_factory=list)
    resolved_items: List[ResolvedLineItem] = field(default_factory=list)
    status: CheckoutStatus = CheckoutStatus.STARTED


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    order: Order
    cart_cleared: bool
    replayed: bool = False
    warnings: Tuple[str, ...] = ()
