import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List

from common import db as common_db

from order_service.clients import CartStore
from order_service.errors import CollaboratorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CartClearFailure:
    id: int
    order_id: str
    user_id: str
    reason: str
    created_at: str


class ReconciliationLog:
    """Carts left uncleared after their order was persisted."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    def record(self, order_id: str, user_id: str, reason: str) -> None:
        conn = common_db.connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO cart_clear_failures (order_id, user_id, reason, created_at) VALUES (?, ?, ?, ?)",
                (order_id, user_id, reason, datetime.now(timezone.utc).isoformat()),
            )
        finally:
            conn.close()
        logger.error("cart clear pending for user=%s order=%s: %s", user_id, order_id, reason)

    def pending(self) -> List[CartClearFailure]:
        conn = common_db.connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT id, order_id, user_id, reason, created_at FROM cart_clear_failures "
                "WHERE resolved_at IS NULL ORDER BY id"
            ).fetchall()
        finally:
            conn.close()
        return [CartClearFailure(*row) for row in rows]

    def mark_resolved(self, failure_id: int) -> None:
        conn = common_db.connect(self.db_path)
        try:
            conn.execute(
                "UPDATE cart_clear_failures SET resolved_at = ? WHERE id = ?",
                (datetime.now(timezone.utc).isoformat(), failure_id),
            )
        finally:
            conn.close()

    def retry_pending(self, cart: CartStore, credential_for: Callable[[str], str]) -> dict:
        resolved, still_pending = 0, 0
        for failure in self.pending():
            try:
                cart.clear_cart(failure.user_id, credential_for(failure.user_id))
            except CollaboratorError as exc:
                still_pending += 1
                logger.warning("reconcile order=%s still failing: %s", failure.order_id, exc)
                continue
            self.mark_resolved(failure.id)
            resolved += 1
            logger.info("reconciled cart for user=%s order=%s", failure.user_id, failure.order_id)
        return {"resolved": resolved, "pending": still_pending}
