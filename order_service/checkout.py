"""
Checkout orchestration.

Sequence: verify credential -> fetch cart -> price -> total -> persist -> clear cart.
The cart is cleared only after the order is durable; a failed clear leaves a
reconciliation record and the checkout still succeeds.
"""

import logging
from typing import Callable, Optional

from order_service.auth import CredentialVerifier
from order_service.clients import CartStore
from order_service.domain import CheckoutAttempt, CheckoutResult, CheckoutStatus, Order
from order_service.errors import (
    CartUnavailable,
    CheckoutCancelled,
    CheckoutError,
    CollaboratorError,
    EmptyCart,
)
from order_service.pricing import PriceResolver, compute_total
from order_service.reconciliation import ReconciliationLog
from order_service.store import OrderStore

logger = logging.getLogger(__name__)

CART_CLEAR_PENDING = "cart_clear_pending"


class CheckoutOrchestrator:
    def __init__(
        self,
        verifier: CredentialVerifier,
        cart: CartStore,
        resolver: PriceResolver,
        store: OrderStore,
        reconciliation: ReconciliationLog,
    ) -> None:
        self.verifier = verifier
        self.cart = cart
        self.resolver = resolver
        self.store = store
        self.reconciliation = reconciliation

    def place_order(
        self,
        credential: Optional[str],
        idempotency_key: Optional[str] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> CheckoutResult:
        attempt = CheckoutAttempt()
        try:
            return self._run(attempt, credential, idempotency_key, is_cancelled or (lambda: False))
        except CheckoutError as exc:
            if exc.user_id is None:
                exc.user_id = attempt.user_id
            logger.warning(
                "[user=%s] checkout FAILED at %s: %s (%s)",
                attempt.user_id,
                attempt.status.value,
                exc.category,
                exc.message,
            )
            attempt.status = CheckoutStatus.FAILED
            raise

    def _run(
        self,
        attempt: CheckoutAttempt,
        credential: Optional[str],
        idempotency_key: Optional[str],
        is_cancelled: Callable[[], bool],
    ) -> CheckoutResult:
        user_id = self.verifier.verify(credential)
        attempt.user_id = user_id
        _advance(attempt, CheckoutStatus.AUTHENTICATED)

        # An empty header value carries no identity and is treated as absent.
        idempotency_key = idempotency_key or None
        if idempotency_key is not None:
            existing = self.store.find_by_key(user_id, idempotency_key)
            if existing is not None:
                return _replay(attempt, existing, idempotency_key)

        _check_cancelled(is_cancelled, attempt, "fetch_cart")
        try:
            snapshot = self.cart.fetch_cart(user_id, credential)
        except CollaboratorError as exc:
            raise CartUnavailable(
                f"cart fetch failed: {exc}", user_id=user_id, step="fetch_cart", collaborator="cart"
            ) from exc
        attempt.snapshot = list(snapshot)
        _advance(attempt, CheckoutStatus.CART_FETCHED)

        if not attempt.snapshot:
            raise EmptyCart("cart empty", user_id=user_id, step="fetch_cart")

        _check_cancelled(is_cancelled, attempt, "price")
        attempt.resolved_items = self.resolver.resolve(attempt.snapshot)
        _advance(attempt, CheckoutStatus.PRICED)

        total = compute_total(attempt.resolved_items)

        # Last point where cancellation is honoured; a started persist always runs to an outcome.
        _check_cancelled(is_cancelled, attempt, "persist")
        order, created = self.store.persist(user_id, attempt.resolved_items, total, idempotency_key)
        _advance(attempt, CheckoutStatus.PERSISTED)

        if not created:
            # Lost a race on the same key; the winning attempt owns the cart clear.
            return _replay(attempt, order, idempotency_key)
        return self._clear_cart(attempt, order, credential)

    def _clear_cart(self, attempt: CheckoutAttempt, order: Order, credential: Optional[str]) -> CheckoutResult:
        user_id = attempt.user_id
        try:
            self.cart.clear_cart(user_id, credential)
        except CollaboratorError as exc:
            _advance(attempt, CheckoutStatus.PERSISTED_CART_CLEAR_FAILED)
            try:
                self.reconciliation.record(order.order_id, user_id, str(exc))
            except Exception:
                logger.exception("[user=%s] could not record cart clear failure for %s", user_id, order.order_id)
            return CheckoutResult(order=order, cart_cleared=False, warnings=(CART_CLEAR_PENDING,))

        _advance(attempt, CheckoutStatus.CART_CLEARED)
        return CheckoutResult(order=order, cart_cleared=True)


def _advance(attempt: CheckoutAttempt, status: CheckoutStatus) -> None:
    attempt.status = status
    logger.info("[user=%s] checkout %s", attempt.user_id, status.value)


def _check_cancelled(is_cancelled: Callable[[], bool], attempt: CheckoutAttempt, step: str) -> None:
    if is_cancelled():
        raise CheckoutCancelled(f"request cancelled before {step}", user_id=attempt.user_id, step=step)


def _replay(attempt: CheckoutAttempt, order: Order, idempotency_key: str) -> CheckoutResult:
    # The cart is never touched here: it may already hold items for a new order.
    logger.info("[user=%s] replaying order %s for key %s", attempt.user_id, order.order_id, idempotency_key)
    return CheckoutResult(order=order, cart_cleared=False, replayed=True)
