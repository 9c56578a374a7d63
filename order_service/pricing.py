import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from order_service.clients import Catalog
from order_service.domain import CartLine, ResolvedLineItem
from order_service.errors import CollaboratorError, PricingFailed

logger = logging.getLogger(__name__)


def merge_duplicates(snapshot: Sequence[CartLine]) -> List[CartLine]:
    """Sum quantities of repeated product ids, keeping first-seen order."""
    merged: Dict[str, int] = {}
    for line in snapshot:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [CartLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def compute_total(items: Iterable[ResolvedLineItem]) -> Decimal:
    return sum((item.unit_price * item.quantity for item in items), Decimal("0"))


class PriceResolver:
    """
    Prices every distinct product id in a snapshot with at most
    ``max_concurrency`` catalog lookups in flight.

    Fail-fast: the first lookup error aborts the whole resolution with
    ``PricingFailed`` and lookups not yet started are cancelled.
    """

    def __init__(self, catalog: Catalog, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.catalog = catalog
        self.max_concurrency = max_concurrency

    def resolve(self, snapshot: Sequence[CartLine]) -> List[ResolvedLineItem]:
        lines = merge_duplicates(snapshot)
        if not lines:
            return []

        workers = min(self.max_concurrency, len(lines))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price") as pool:
            futures = {pool.submit(self.catalog.fetch_price, line.product_id): line.product_id for line in lines}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            if any(f.exception() is not None for f in done):
                for future in pending:
                    future.cancel()
                # Lookups already running still finish; report the earliest failing line among them.
                done, _ = wait(futures)
                failed = [f for f in done if not f.cancelled() and f.exception() is not None]
                order = {line.product_id: i for i, line in enumerate(lines)}
                first = min(failed, key=lambda f: order[futures[f]])
                product_id, cause = futures[first], first.exception()
                if not isinstance(cause, CollaboratorError):
                    raise cause
                logger.warning("pricing failed for %s: %s", product_id, cause)
                raise PricingFailed(product_id, cause, step="price")

            prices = {futures[f]: f.result() for f in done}

        return [
            ResolvedLineItem(product_id=line.product_id, quantity=line.quantity, unit_price=prices[line.product_id])
            for line in lines
        ]
