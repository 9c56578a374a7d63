import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from common import db as common_db
from common.ids import new_order_id

from order_service.domain import Order, ResolvedLineItem
from order_service.errors import InvalidOrder, OutcomeUnknown, PersistFailed
from order_service.pricing import compute_total

logger = logging.getLogger(__name__)


class OrderStore:
    """
    Durable order storage on the shared sqlite database.

    ``persist`` writes the header, every line item and the idempotency key in
    one transaction, so readers see the whole order or nothing.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        return common_db.connect(self.db_path)

    def persist(
        self,
        user_id: str,
        items: Sequence[ResolvedLineItem],
        total: Decimal,
        idempotency_key: str | None = None,
    ) -> Tuple[Order, bool]:
        """Returns the stored order and whether this call created it."""
        _validate(items, total)

        order_id = new_order_id()
        created_at = datetime.now(timezone.utc)

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistFailed(f"cannot open order store: {exc}", user_id=user_id, step="persist") from exc

        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
                if idempotency_key is not None:
                    existing = self._order_for_key(conn, user_id, idempotency_key)
                    if existing is not None:
                        conn.execute("ROLLBACK")
                        logger.info("order %s already stored for key %s", existing, idempotency_key)
                        return self._load(conn, existing), False
                conn.execute(
                    "INSERT INTO orders (order_id, user_id, total, created_at) VALUES (?, ?, ?, ?)",
                    (order_id, user_id, str(total), created_at.isoformat()),
                )
                for position, item in enumerate(items):
                    self._insert_line(conn, order_id, position, item)
                if idempotency_key is not None:
                    conn.execute(
                        "INSERT INTO idempotency_keys (user_id, idempotency_key, order_id, created_at) "
                        "VALUES (?, ?, ?, ?)",
                        (user_id, idempotency_key, order_id, created_at.isoformat()),
                    )
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise PersistFailed(f"order write failed: {exc}", user_id=user_id, step="persist") from exc
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise OutcomeUnknown(f"commit of {order_id} failed: {exc}", user_id=user_id, step="persist") from exc
        finally:
            conn.close()

        logger.info("order %s persisted for user %s total=%s items=%d", order_id, user_id, total, len(items))
        order = Order(order_id=order_id, user_id=user_id, total=total, items=tuple(items), created_at=created_at)
        return order, True

    def _insert_line(self, conn: sqlite3.Connection, order_id: str, position: int, item: ResolvedLineItem) -> None:
        conn.execute(
            "INSERT INTO order_items (order_id, position, product_id, quantity, price_at_purchase) "
            "VALUES (?, ?, ?, ?, ?)",
            (order_id, position, item.product_id, item.quantity, str(item.unit_price)),
        )

    @staticmethod
    def _order_for_key(conn: sqlite3.Connection, user_id: str, idempotency_key: str) -> Optional[str]:
        row = conn.execute(
            "SELECT order_id FROM idempotency_keys WHERE user_id = ? AND idempotency_key = ?",
            (user_id, idempotency_key),
        ).fetchone()
        return row[0] if row else None

    def find_by_key(self, user_id: str, idempotency_key: str) -> Optional[Order]:
        try:
            conn = self._connect()
            try:
                order_id = self._order_for_key(conn, user_id, idempotency_key)
                return self._load(conn, order_id) if order_id else None
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise PersistFailed(f"idempotency lookup failed: {exc}", user_id=user_id, step="lookup") from exc

    def get(self, order_id: str) -> Optional[Order]:
        conn = self._connect()
        try:
            return self._load(conn, order_id)
        finally:
            conn.close()

    def list_for_user(self, user_id: str) -> List[Order]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT order_id FROM orders WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
            return [self._load(conn, row[0]) for row in rows]
        finally:
            conn.close()

    def count(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0]
        finally:
            conn.close()

    @staticmethod
    def _load(conn: sqlite3.Connection, order_id: str) -> Optional[Order]:
        header = conn.execute(
            "SELECT order_id, user_id, total, created_at FROM orders WHERE order_id = ?",
            (order_id,),
        ).fetchone()
        if not header:
            return None
        lines = conn.execute(
            "SELECT product_id, quantity, price_at_purchase FROM order_items WHERE order_id = ? ORDER BY position",
            (order_id,),
        ).fetchall()
        return Order(
            order_id=header[0],
            user_id=header[1],
            total=Decimal(header[2]),
            items=tuple(
                ResolvedLineItem(product_id=pid, quantity=qty, unit_price=Decimal(price)) for pid, qty, price in lines
            ),
            created_at=datetime.fromisoformat(header[3]),
        )


def _validate(items: Sequence[ResolvedLineItem], total: Decimal) -> None:
    if not items:
        raise InvalidOrder("order has no items", step="persist")
    for item in items:
        if item.quantity <= 0:
            raise InvalidOrder(f"quantity {item.quantity} for {item.product_id}", step="persist")
        if item.unit_price < 0:
            raise InvalidOrder(f"negative price for {item.product_id}", step="persist")
    if compute_total(items) != total:
        raise InvalidOrder(f"total {total} does not match line items", step="persist")
