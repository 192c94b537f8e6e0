# order_service/ledger.py

"""
Order Ledger writes. Both operations join the caller's unit of work and
never commit on their own.
"""
from decimal import Decimal
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from .models import Order, OrderItem, OrderStatus, Product


def insert_order(db: Session, user_id: UUID, total: Decimal) -> Order:
    order = Order(
        user_id=user_id, total_amount=total, status=OrderStatus.PENDING.value
    )
    db.add(order)
    # Flush so the generated id is usable for the line items.
    db.flush()
    return order


def insert_line_items(
    db: Session, order: Order, lines: Sequence[Tuple[Product, int]]
) -> List[OrderItem]:
    """One line item per (product, quantity), priced at the product's current price."""
    items = [
        OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            price=product.price,
        )
        for product, quantity in lines
    ]
    db.add_all(items)
    db.flush()
    return items
