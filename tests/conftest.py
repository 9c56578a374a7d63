"""Pytest fixtures: temp sqlite database, in-memory collaborators, signed tokens."""

from decimal import Decimal

import pytest

from common import db as common_db

from order_service.auth import CredentialVerifier, bearer, issue_token
from order_service.checkout import CheckoutOrchestrator
from order_service.config import Settings
from order_service.domain import CartLine
from order_service.errors import ProductNotFound
from order_service.pricing import PriceResolver
from order_service.reconciliation import ReconciliationLog
from order_service.store import OrderStore


class FakeCart:
    def __init__(self) -> None:
        self.carts: dict[str, list[CartLine]] = {}
        self.fetch_calls: list[str] = []
        self.clear_calls: list[str] = []
        self.fetch_error: Exception | None = None
        self.clear_error: Exception | None = None

    def put(self, user_id: str, *lines: tuple[str, int]) -> None:
        self.carts[user_id] = [CartLine(product_id=pid, quantity=qty) for pid, qty in lines]

    def fetch_cart(self, user_id: str, credential: str) -> list[CartLine]:
        self.fetch_calls.append(user_id)
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.carts.get(user_id, []))

    def clear_cart(self, user_id: str, credential: str) -> None:
        self.clear_calls.append(user_id)
        if self.clear_error is not None:
            raise self.clear_error
        self.carts.pop(user_id, None)


class FakeCatalog:
    def __init__(self, prices: dict[str, Decimal] | None = None) -> None:
        self.prices = dict(prices or {})
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def fetch_price(self, product_id: str) -> Decimal:
        self.calls.append(product_id)
        if product_id in self.errors:
            raise self.errors[product_id]
        if product_id not in self.prices:
            raise ProductNotFound(product_id)
        return self.prices[product_id]


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "orders.db")
    common_db.init_db(path)
    return path


@pytest.fixture
def settings(db_path) -> Settings:
    return Settings(jwt_secret="test-secret", db_path=db_path, retry_backoff_s=0.0, reconcile_token="ops-secret")


@pytest.fixture
def cart() -> FakeCart:
    return FakeCart()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog({"p1": Decimal("19.99"), "p2": Decimal("5.00"), "p3": Decimal("0.10")})


@pytest.fixture
def store(db_path) -> OrderStore:
    return OrderStore(db_path)


@pytest.fixture
def reconciliation(db_path) -> ReconciliationLog:
    return ReconciliationLog(db_path)


@pytest.fixture
def token(settings):
    def _token(user_id: str = "u1") -> str:
        return bearer(issue_token(user_id, settings))

    return _token


@pytest.fixture
def orchestrator(settings, cart, catalog, store, reconciliation) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        verifier=CredentialVerifier(settings.jwt_secret),
        cart=cart,
        resolver=PriceResolver(catalog, max_concurrency=4),
        store=store,
        reconciliation=reconciliation,
    )
