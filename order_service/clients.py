"""HTTP clients for the cart and catalog collaborators.

The orchestrator only depends on the ``CartStore`` and ``Catalog`` protocols,
so tests substitute in-memory fakes for these classes.
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Protocol, TypeVar

import requests

from order_service.domain import CartLine
from order_service.errors import (
    CollaboratorRejected,
    CollaboratorUnavailable,
    ProductNotFound,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CartStore(Protocol):
    def fetch_cart(self, user_id: str, credential: str) -> List[CartLine]: ...

    def clear_cart(self, user_id: str, credential: str) -> None: ...


class Catalog(Protocol):
    def fetch_price(self, product_id: str) -> Decimal: ...


def call_with_retry(fn: Callable[[], T], retries: int = 1, backoff_s: float = 0.2) -> T:
    """Run ``fn``, retrying only on ``CollaboratorUnavailable`` with a linear backoff."""
    attempt = 0
    while True:
        try:
            return fn()
        except CollaboratorUnavailable as exc:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning("%s, retry %d/%d in %.2fs", exc, attempt, retries, backoff_s * attempt)
            time.sleep(backoff_s * attempt)


def _send(collaborator: str, method: str, url: str, timeout: float, **kwargs) -> requests.Response:
    try:
        resp = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise CollaboratorUnavailable(collaborator, f"timeout after {timeout}s") from exc
    except requests.RequestException as exc:
        raise CollaboratorUnavailable(collaborator, f"request failed: {exc}") from exc

    if resp.status_code >= 500:
        raise CollaboratorUnavailable(collaborator, f"status {resp.status_code}")
    return resp


def _quantity(value) -> int:
    """Whole-number quantities only; fractions and booleans are not truncated into one."""
    if isinstance(value, bool):
        raise TypeError(f"quantity {value!r} is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValueError(f"quantity {value!r} is not an integer")


class HttpCartClient:
    name = "cart"

    def __init__(self, base_url: str, timeout_s: float, backoff_s: float = 0.2) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.backoff_s = backoff_s

    def fetch_cart(self, user_id: str, credential: str) -> List[CartLine]:
        resp = call_with_retry(
            lambda: _send(
                self.name,
                "GET",
                f"{self.base_url}/cart",
                self.timeout_s,
                headers={"Authorization": credential},
            ),
            backoff_s=self.backoff_s,
        )
        if resp.status_code != 200:
            raise CollaboratorRejected(self.name, f"fetch for user {user_id} got status {resp.status_code}")

        try:
            raw_lines = resp.json().get("cart") or []
            lines = [CartLine(product_id=str(raw["productId"]), quantity=_quantity(raw["quantity"])) for raw in raw_lines]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise CollaboratorRejected(self.name, f"malformed cart payload: {exc}") from exc

        for line in lines:
            if line.quantity <= 0:
                raise CollaboratorRejected(self.name, f"non-positive quantity for {line.product_id}")
        return lines

    def clear_cart(self, user_id: str, credential: str) -> None:
        # Not retried here: a failed clear goes to reconciliation instead.
        resp = _send(
            self.name,
            "POST",
            f"{self.base_url}/cart/clear",
            self.timeout_s,
            headers={"Authorization": credential},
            json={},
        )
        if resp.status_code != 200:
            raise CollaboratorRejected(self.name, f"clear for user {user_id} got status {resp.status_code}")


class HttpCatalogClient:
    name = "catalog"

    def __init__(self, base_url: str, timeout_s: float, backoff_s: float = 0.2) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.backoff_s = backoff_s

    def fetch_price(self, product_id: str) -> Decimal:
        resp = call_with_retry(
            lambda: _send(self.name, "GET", f"{self.base_url}/products/{product_id}", self.timeout_s),
            backoff_s=self.backoff_s,
        )
        if resp.status_code == 404:
            raise ProductNotFound(product_id)
        if resp.status_code != 200:
            raise CollaboratorRejected(self.name, f"price for {product_id} got status {resp.status_code}")

        try:
            # str() first so a JSON float like 19.99 becomes Decimal("19.99").
            price = Decimal(str(resp.json()["price"]))
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            raise CollaboratorRejected(self.name, f"malformed price for {product_id}: {exc}") from exc

        if not price.is_finite() or price < 0:
            raise CollaboratorRejected(self.name, f"invalid price {price} for {product_id}")
        return price
