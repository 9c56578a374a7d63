"""Checkout error taxonomy.

Collaborator clients raise the low-level errors; the orchestrator wraps them
into ``CheckoutError`` subclasses. The API layer translates a
``CheckoutError`` into its ``status_code`` and ``category`` only, so internal
detail never reaches the caller.
"""

from __future__ import annotations


class CollaboratorError(Exception):
    """A call to an external collaborator did not succeed."""

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class CollaboratorUnavailable(CollaboratorError):
    """Network error, timeout, or 5xx from a collaborator. Worth one retry."""


class CollaboratorRejected(CollaboratorError):
    """The collaborator answered with a non-retriable error status."""


class ProductNotFound(CollaboratorRejected):
    def __init__(self, product_id: str) -> None:
        super().__init__("catalog", f"product {product_id} not found")
        self.product_id = product_id


class CheckoutError(Exception):
    category = "checkout_failed"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        step: str | None = None,
        collaborator: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.step = step
        self.collaborator = collaborator


class AuthError(CheckoutError):
    category = "unauthorized"
    status_code = 401


class MissingCredential(AuthError):
    pass


class InvalidCredential(AuthError):
    pass


class EmptyCart(CheckoutError):
    category = "empty_cart"
    status_code = 400


class InvalidOrder(CheckoutError):
    category = "invalid_order"
    status_code = 400


class CartUnavailable(CheckoutError):
    category = "cart_unavailable"
    status_code = 503


class PricingFailed(CheckoutError):
    category = "pricing_failed"

    def __init__(self, product_id: str, cause: Exception, **context) -> None:
        super().__init__(f"cannot price {product_id}: {cause}", collaborator="catalog", **context)
        self.product_id = product_id
        self.cause = cause

    @property
    def status_code(self) -> int:
        # A missing product is the caller's cart problem; an unreachable catalog is ours.
        if isinstance(self.cause, CollaboratorUnavailable):
            return 503
        return 422


class PersistFailed(CheckoutError):
    """Nothing was committed; retrying with the same idempotency key is safe."""

    category = "persist_failed"
    status_code = 503


class OutcomeUnknown(CheckoutError):
    """The commit may or may not have landed; check order history before retrying."""

    category = "outcome_unknown"
    status_code = 504


class CheckoutCancelled(CheckoutError):
    category = "cancelled"
    status_code = 499
