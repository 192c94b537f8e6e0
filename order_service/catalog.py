# order_service/catalog.py

"""
Catalog Store operations consumed by order placement.
"""
import logging
from typing import Dict, Iterable
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from .models import Product

logger = logging.getLogger(__name__)


def fetch_products_by_ids(
    db: Session, ids: Iterable[UUID], lock: bool = False
) -> Dict[UUID, Product]:
    """
    Fetch the products for a set of ids in a single read.

    With ``lock=True`` the rows are selected FOR UPDATE in id order, so
    concurrent placements touching overlapping products queue up instead
    of deadlocking. Dialects without row locks ignore the clause.
    """
    ids = sorted(set(ids))
    if not ids:
        return {}
    query = db.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    if lock:
        query = query.with_for_update()
    products = query.all()
    logger.info(f"Fetched {len(products)} of {len(ids)} requested products.")
    return {product.id: product for product in products}


def decrement_stock(db: Session, product_id: UUID, amount: int) -> bool:
    """
    Conditionally take ``amount`` units of stock.

    Returns False when the row no longer has enough stock (or is gone), in
    which case nothing was written.
    """
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= amount)
        .values(stock=Product.stock - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
