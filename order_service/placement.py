# order_service/placement.py

"""
Order placement.

``place_order`` validates a requested item list against the catalog,
prices it from the stored prices, and writes the order header, its line
items and the stock decrements as one transaction. The caller gets either
a fully persisted order or an exception; no partial order is ever left
behind.

Concurrency is left to the database: the product rows are read under a
write lock and every decrement is conditional on ``stock >= quantity``.
Write conflicts restart the attempt from the read, a bounded number of
times. Business-rule failures are final.
"""
import logging
import os
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import catalog, ledger
from .exceptions import (
    InsufficientStock,
    InvalidRequest,
    OrderCommitFailed,
    ProductNotFound,
)
from .models import Order
from .policy import AccessPolicy, Caller, access_policy

logger = logging.getLogger(__name__)

# At least one attempt, whatever the environment says.
ORDER_MAX_ATTEMPTS = max(1, int(os.getenv("ORDER_MAX_ATTEMPTS", "3")))
ORDER_RETRY_BACKOFF_SECONDS = float(os.getenv("ORDER_RETRY_BACKOFF_SECONDS", "0.05"))
ORDER_COMMIT_TIMEOUT_SECONDS = float(os.getenv("ORDER_COMMIT_TIMEOUT_SECONDS", "10"))

CENT = Decimal("0.01")

# PostgreSQL serialization failure / deadlock
RETRYABLE_PGCODES = {"40001", "40P01"}
RETRYABLE_MESSAGES = (
    "deadlock detected",
    "could not serialize access",
    "database is locked",
)


class StockConflict(Exception):
    """A conditional decrement matched no row: stock moved under us."""

    def __init__(self, product_id):
        super().__init__(f"Stock for product {product_id} changed during placement")
        self.product_id = product_id


def _pgcode_from(exc):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(
        getattr(orig, "__cause__", None), "pgcode", None
    )


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, StockConflict):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if _pgcode_from(exc) in RETRYABLE_PGCODES:
        return True
    msg = str(exc).lower()
    return any(k in msg for k in RETRYABLE_MESSAGES)


def validate_items(requested_items) -> List[Tuple[UUID, int]]:
    """Check the request shape; touches no store."""
    if not requested_items:
        raise InvalidRequest("Cart is empty")

    lines = []
    seen = set()
    for product_id, quantity in requested_items:
        if product_id is None:
            raise InvalidRequest("Every item needs a product_id")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidRequest(
                f"Quantity for product {product_id} must be a positive integer"
            )
        if product_id in seen:
            raise InvalidRequest(f"Product {product_id} appears more than once")
        seen.add(product_id)
        lines.append((product_id, quantity))
    return lines


def compute_total(priced_lines) -> Decimal:
    total = sum(
        (Decimal(price) * quantity for price, quantity in priced_lines), Decimal("0")
    )
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def _apply_commit_timeout(db: Session):
    if db.get_bind().dialect.name != "postgresql":
        # SQLite waits are bounded by the driver's busy timeout.
        return
    ms = int(ORDER_COMMIT_TIMEOUT_SECONDS * 1000)
    db.execute(text(f"SET LOCAL statement_timeout = {ms}"))
    db.execute(text(f"SET LOCAL lock_timeout = {ms}"))


def _place_once(db: Session, customer_id: UUID, lines) -> Order:
    _apply_commit_timeout(db)
    products = catalog.fetch_products_by_ids(
        db, [product_id for product_id, _ in lines], lock=True
    )

    for product_id, _ in lines:
        if product_id not in products:
            raise ProductNotFound(product_id)

    for product_id, quantity in lines:
        product = products[product_id]
        if product.stock < quantity:
            raise InsufficientStock(product.id, product.name, product.stock, quantity)

    priced = [(products[product_id], quantity) for product_id, quantity in lines]
    total = compute_total((product.price, quantity) for product, quantity in priced)

    order = ledger.insert_order(db, customer_id, total)
    ledger.insert_line_items(db, order, priced)
    for product, quantity in priced:
        if not catalog.decrement_stock(db, product.id, quantity):
            raise StockConflict(product.id)
    return order


def place_order(
    db: Session,
    customer_id: UUID,
    requested_items: Sequence[Tuple[UUID, int]],
    caller: Optional[Caller] = None,
    policy: AccessPolicy = access_policy,
    max_attempts: Optional[int] = None,
) -> Order:
    """
    Place an order for ``customer_id``.

    - ``requested_items`` is a sequence of ``(product_id, quantity)`` pairs;
      prices and stock always come from the catalog, never the caller.
    - ``caller`` defaults to the customer acting for themselves.
    - Raises InvalidRequest, Forbidden, ProductNotFound, InsufficientStock
      or OrderCommitFailed. The session is rolled back on every failure.
    - Returns the committed Order; its items load lazily from ``db``.
    """
    lines = validate_items(requested_items)

    if caller is None:
        caller = Caller(id=customer_id)
    policy.require(policy.can_read_product(caller), "read products", caller)
    policy.require(
        policy.can_create_order(caller, customer_id), "create this order", caller
    )
    policy.require(policy.can_reserve_stock(caller), "reserve stock", caller)

    attempts = max(1, max_attempts or ORDER_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        logger.info(
            f"Placing order for {customer_id} with {len(lines)} line(s) (attempt {attempt}/{attempts})."
        )
        try:
            order = _place_once(db, customer_id, lines)
            db.commit()
        except (ProductNotFound, InsufficientStock) as e:
            db.rollback()
            logger.warning(f"Order for {customer_id} rejected: {e}")
            raise
        except (StockConflict, DBAPIError) as e:
            db.rollback()
            if not is_retryable(e):
                logger.error(f"Order commit failed for {customer_id}: {e}", exc_info=True)
                raise OrderCommitFailed("Failed to create order") from e
            if attempt >= attempts:
                logger.error(
                    f"Order for {customer_id} still conflicting after {attempts} attempts: {e}"
                )
                raise OrderCommitFailed(
                    "Failed to create order: too much contention, please retry"
                ) from e
            logger.warning(f"Write conflict placing order for {customer_id}, retrying: {e}")
            time.sleep(ORDER_RETRY_BACKOFF_SECONDS * attempt)
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Order commit failed for {customer_id}: {e}", exc_info=True)
            raise OrderCommitFailed("Failed to create order") from e
        except BaseException:
            # Cancelled or unexpected: leave nothing behind.
            db.rollback()
            raise

        db.refresh(order)
        logger.info(
            f"Order {order.id} placed for {customer_id}: total {order.total_amount}."
        )
        return order
