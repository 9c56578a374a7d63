"""Tests for checkout orchestration."""

from decimal import Decimal

import pytest

from order_service.checkout import CART_CLEAR_PENDING, CheckoutOrchestrator
from order_service.domain import CartLine, CheckoutResult
from order_service.errors import (
    CartUnavailable,
    CheckoutCancelled,
    CollaboratorUnavailable,
    EmptyCart,
    InvalidCredential,
    MissingCredential,
    OutcomeUnknown,
    PersistFailed,
    PricingFailed,
    ProductNotFound,
)
from order_service.store import OrderStore


class FailingStore(OrderStore):
    def persist(self, *args, **kwargs):
        raise PersistFailed("disk full", step="persist")


class CommitThenTimeoutStore(OrderStore):
    """Commits the order, then reports a timeout the first time round."""

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path)
        self.calls = 0

    def persist(self, *args, **kwargs):
        self.calls += 1
        result = super().persist(*args, **kwargs)
        if self.calls == 1:
            raise OutcomeUnknown("order store timed out", step="persist")
        return result


class LostRaceStore(OrderStore):
    """Another attempt with the same key committed first."""

    def persist(self, user_id, items, total, idempotency_key=None):
        winner, _ = super().persist(user_id, items, total, idempotency_key)
        return winner, False


def test_scenario_a_single_item(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 2))

    result = orchestrator.place_order(token("u1"))

    assert isinstance(result, CheckoutResult)
    assert result.order.total == Decimal("39.98")
    assert len(result.order.items) == 1
    assert result.order.items[0].unit_price == Decimal("19.99")
    assert result.cart_cleared is True
    assert result.replayed is False
    assert cart.carts.get("u1") is None
    assert store.count() == 1


def test_total_equals_sum_of_lines_exactly(orchestrator, cart, catalog, token):
    catalog.prices["p4"] = Decimal("0.01")
    cart.put("u1", ("p3", 3), ("p4", 7), ("p1", 1))

    result = orchestrator.place_order(token("u1"))

    expected = sum((i.unit_price * i.quantity for i in result.order.items), Decimal("0"))
    assert result.order.total == expected == Decimal("20.36")


def test_persisted_order_matches_returned_order(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 2), ("p2", 1))

    result = orchestrator.place_order(token("u1"))

    stored = store.get(result.order.order_id)
    assert stored.total == result.order.total
    assert stored.items == result.order.items
    assert [i.product_id for i in stored.items] == ["p1", "p2"]


def test_scenario_b_pricing_failure_creates_nothing(orchestrator, cart, catalog, store, token):
    cart.put("u1", ("p1", 2), ("p2", 1))
    catalog.errors["p2"] = CollaboratorUnavailable("catalog", "timeout")

    with pytest.raises(PricingFailed) as excinfo:
        orchestrator.place_order(token("u1"))

    assert excinfo.value.category == "pricing_failed"
    assert excinfo.value.product_id == "p2"
    assert excinfo.value.user_id == "u1"
    assert store.count() == 0
    assert cart.clear_calls == []
    assert len(cart.carts["u1"]) == 2


def test_unknown_product_fails_pricing(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 1), ("gone", 1))

    with pytest.raises(PricingFailed) as excinfo:
        orchestrator.place_order(token("u1"))

    assert isinstance(excinfo.value.cause, ProductNotFound)
    assert excinfo.value.status_code == 422
    assert store.count() == 0
    assert cart.clear_calls == []


def test_scenario_c_empty_cart(orchestrator, cart, catalog, store, token):
    with pytest.raises(EmptyCart) as excinfo:
        orchestrator.place_order(token("u1"))

    assert excinfo.value.category == "empty_cart"
    assert cart.fetch_calls == ["u1"]
    assert catalog.calls == []
    assert cart.clear_calls == []
    assert store.count() == 0


def test_scenario_d_cart_clear_timeout_still_succeeds(orchestrator, cart, store, reconciliation, token):
    cart.put("u1", ("p1", 1))
    cart.clear_error = CollaboratorUnavailable("cart", "timeout after 3.0s")

    result = orchestrator.place_order(token("u1"))

    assert result.cart_cleared is False
    assert result.warnings == (CART_CLEAR_PENDING,)
    assert store.get(result.order.order_id) is not None
    pending = reconciliation.pending()
    assert [(p.order_id, p.user_id) for p in pending] == [(result.order.order_id, "u1")]
    assert "timeout" in pending[0].reason


def test_scenario_e_replay_after_persist_timeout(settings, cart, catalog, reconciliation, token, db_path):
    from order_service.auth import CredentialVerifier
    from order_service.pricing import PriceResolver

    store = CommitThenTimeoutStore(db_path)
    orchestrator = CheckoutOrchestrator(
        verifier=CredentialVerifier(settings.jwt_secret),
        cart=cart,
        resolver=PriceResolver(catalog),
        store=store,
        reconciliation=reconciliation,
    )
    cart.put("u1", ("p1", 2))

    with pytest.raises(OutcomeUnknown):
        orchestrator.place_order(token("u1"), idempotency_key="key-1")
    assert cart.clear_calls == []

    result = orchestrator.place_order(token("u1"), idempotency_key="key-1")

    assert result.replayed is True
    assert result.order.total == Decimal("39.98")
    assert store.count() == 1
    assert store.calls == 1
    # The replay reports the stored order and leaves the cart to the user.
    assert cart.clear_calls == []
    assert cart.carts["u1"] == [CartLine("p1", 2)]


def test_same_key_twice_returns_same_order(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 1))
    first = orchestrator.place_order(token("u1"), idempotency_key="abc")

    cart.put("u1", ("p2", 5))
    second = orchestrator.place_order(token("u1"), idempotency_key="abc")

    assert second.order.order_id == first.order.order_id
    assert second.replayed is True
    assert store.count() == 1
    assert second.cart_cleared is False
    assert cart.clear_calls == ["u1"]
    assert cart.carts["u1"] == [CartLine("p2", 5)]


def test_replay_does_not_price_or_fetch(orchestrator, cart, catalog, token):
    cart.put("u1", ("p1", 1))
    orchestrator.place_order(token("u1"), idempotency_key="abc")
    catalog.calls.clear()

    orchestrator.place_order(token("u1"), idempotency_key="abc")

    assert cart.fetch_calls == ["u1"]
    assert catalog.calls == []


def test_empty_idempotency_key_is_ignored(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 1))
    first = orchestrator.place_order(token("u1"), idempotency_key="")
    cart.put("u1", ("p1", 1))
    second = orchestrator.place_order(token("u1"), idempotency_key="")

    assert first.order.order_id != second.order.order_id
    assert second.replayed is False
    assert store.count() == 2
    assert store.find_by_key("u1", "") is None


def test_idempotency_keys_are_scoped_per_user(orchestrator, cart, store, token):
    cart.put("u1", ("p1", 1))
    cart.put("u2", ("p1", 1))

    first = orchestrator.place_order(token("u1"), idempotency_key="shared")
    second = orchestrator.place_order(token("u2"), idempotency_key="shared")

    assert first.order.order_id != second.order.order_id
    assert store.count() == 2


def test_persist_failure_never_clears_cart(settings, cart, catalog, reconciliation, token, db_path):
    from order_service.auth import CredentialVerifier
    from order_service.pricing import PriceResolver

    orchestrator = CheckoutOrchestrator(
        verifier=CredentialVerifier(settings.jwt_secret),
        cart=cart,
        resolver=PriceResolver(catalog),
        store=FailingStore(db_path),
        reconciliation=reconciliation,
    )
    cart.put("u1", ("p1", 1))

    with pytest.raises(PersistFailed):
        orchestrator.place_order(token("u1"))

    assert cart.clear_calls == []
    assert reconciliation.pending() == []


def test_cart_fetch_failure_is_not_an_empty_cart(orchestrator, cart, catalog, token):
    cart.put("u1", ("p1", 1))
    cart.fetch_error = CollaboratorUnavailable("cart", "connection refused")

    with pytest.raises(CartUnavailable) as excinfo:
        orchestrator.place_order(token("u1"))

    assert excinfo.value.collaborator == "cart"
    assert excinfo.value.step == "fetch_cart"
    assert excinfo.value.status_code == 503
    assert catalog.calls == []


def test_missing_credential(orchestrator, cart):
    with pytest.raises(MissingCredential):
        orchestrator.place_order(None)
    assert cart.fetch_calls == []


def test_invalid_credential(orchestrator, cart):
    with pytest.raises(InvalidCredential):
        orchestrator.place_order("Bearer not-a-jwt")
    assert cart.fetch_calls == []


def test_duplicate_lines_are_merged(orchestrator, cart, catalog, token):
    cart.put("u1", ("p1", 1), ("p2", 1), ("p1", 2))

    result = orchestrator.place_order(token("u1"))

    assert [(i.product_id, i.quantity) for i in result.order.items] == [("p1", 3), ("p2", 1)]
    assert sorted(catalog.calls) == ["p1", "p2"]
    assert result.order.total == Decimal("64.97")


def test_cancellation_before_persist_leaves_no_order(orchestrator, cart, catalog, store, token):
    cart.put("u1", ("p1", 1))
    checks = iter([False, False, True])

    with pytest.raises(CheckoutCancelled) as excinfo:
        orchestrator.place_order(token("u1"), is_cancelled=lambda: next(checks))

    assert excinfo.value.step == "persist"
    assert catalog.calls == ["p1"]
    assert store.count() == 0
    assert cart.clear_calls == []


def test_cancellation_before_cart_fetch(orchestrator, cart, token):
    cart.put("u1", ("p1", 1))

    with pytest.raises(CheckoutCancelled):
        orchestrator.place_order(token("u1"), is_cancelled=lambda: True)

    assert cart.fetch_calls == []


def test_losing_a_same_key_race_leaves_cart_to_the_winner(settings, cart, catalog, reconciliation, token, db_path):
    from order_service.auth import CredentialVerifier
    from order_service.pricing import PriceResolver

    orchestrator = CheckoutOrchestrator(
        verifier=CredentialVerifier(settings.jwt_secret),
        cart=cart,
        resolver=PriceResolver(catalog),
        store=LostRaceStore(db_path),
        reconciliation=reconciliation,
    )
    cart.put("u1", ("p1", 1))

    result = orchestrator.place_order(token("u1"), idempotency_key="race")

    assert result.replayed is True
    assert cart.clear_calls == []
    assert reconciliation.pending() == []
