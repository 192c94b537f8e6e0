# order_service/models.py

"""
SQLAlchemy database models for the Order Service.
These classes define the structure of tables in the database.
"""
import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ROLES = ("user", "admin")


def _in_clause(column, values):
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Profile(Base):
    """
    SQLAlchemy model for the 'profiles' table.
    A known caller: who they are and which role they hold. Tokens are
    stored only as SHA-256 digests.
    """

    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint(_in_clause("role", ROLES), name="ck_profiles_role"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Profile(id={self.id}, email='{self.email}', role='{self.role}')>"


class Product(Base):
    """
    SQLAlchemy model for the 'products' table.
    Represents a sellable item with its price and stock count.
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Product name: Required, max 255 chars, indexed for faster lookups.
    name = Column(String(255), nullable=False, index=True)

    description = Column(Text, nullable=False, default="")

    # Product price: numeric with 10 total digits and 2 decimal places.
    price = Column(Numeric(10, 2), nullable=False)

    # Only ever decremented by order placement once the row exists.
    stock = Column(Integer, nullable=False, default=0)

    category = Column(String(100), nullable=False, default="general", index=True)
    image_url = Column(String(1024), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"


class Order(Base):
    """
    SQLAlchemy model for the 'orders' table.
    A confirmed purchase; total_amount always equals the sum of its items.
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint(
            _in_clause("status", [s.value for s in OrderStatus]), name="ck_orders_status"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        String(20), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Order(id={self.id}, user_id={self.user_id}, total={self.total_amount}, status='{self.status}')>"


class OrderItem(Base):
    """
    SQLAlchemy model for the 'order_items' table.
    One product's quantity within an order, priced at purchase time.
    """

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
        UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="items")
    product = relationship("Product", viewonly=True)

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
