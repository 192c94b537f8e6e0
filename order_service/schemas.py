# order_service/schemas.py

"""
Pydantic schemas for the Order Service API.
These define the data structures for incoming requests and outgoing responses,
ensuring data validation and clear API contracts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, StrictInt

from .models import OrderStatus

# Decimal in Python, a plain number in JSON responses.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# Schema for creating a new product.
# Used in POST /products/ endpoint (admin only).
class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the product.")
    description: str = Field("", max_length=2000, description="Detailed description of the product.")
    price: Money = Field(..., ge=0, max_digits=10, decimal_places=2, description="Unit price. Must be non-negative.")
    stock: int = Field(..., ge=0, description="Initial stock count. Must be non-negative.")
    category: str = Field("general", min_length=1, max_length=100, description="Catalog category.")
    image_url: str = Field("", max_length=1024, description="Image reference.")


# Schema for updating an existing product.
# No stock field: only order placement changes stock.
# Used in PUT /products/{product_id} endpoint (admin only).
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="New name of the product.")
    description: Optional[str] = Field(None, max_length=2000, description="New description of the product.")
    price: Optional[Money] = Field(None, ge=0, max_digits=10, decimal_places=2, description="New unit price.")
    category: Optional[str] = Field(None, min_length=1, max_length=100, description="New category.")
    image_url: Optional[str] = Field(None, max_length=1024, description="New image reference.")


# Schema for representing a product in API responses.
class ProductResponse(ProductCreate):
    id: UUID = Field(..., description="Unique identifier of the product.")
    created_at: Optional[datetime] = Field(None, description="Timestamp when the product was created.")
    updated_at: Optional[datetime] = Field(None, description="Timestamp when the product was last updated.")

    model_config = ConfigDict(from_attributes=True)


# One requested line in POST /orders. Only ids and quantities are taken from
# the client; price and stock always come from the catalog.
class OrderItemRequest(BaseModel):
    product_id: UUID = Field(..., description="Product to order.")
    quantity: StrictInt = Field(..., gt=0, description="Units to order. Must be a positive integer.")


# Body of POST /orders. Emptiness is checked by order placement itself.
class PlaceOrderRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., description="Requested line items.")


# Enough of the product to render an order line without another request.
class ProductSummary(BaseModel):
    id: UUID
    name: str
    image_url: str = ""

    model_config = ConfigDict(from_attributes=True)


class OrderItemResponse(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    price: Money = Field(..., description="Unit price captured at purchase time.")
    product: Optional[ProductSummary] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: UUID
    user_id: UUID
    total_amount: Money
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PlaceOrderResponse(BaseModel):
    success: bool = True
    order: OrderResponse


# Body of PATCH /orders/{order_id}/status (admin only).
class OrderStatusUpdate(BaseModel):
    status: OrderStatus = Field(..., description="New order status.")


# Schema for representing the caller's own profile.
# Used in GET/PATCH /profile.
class ProfileResponse(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Body of PATCH /profile. Only the display name is editable; role and email
# are rejected as unknown fields.
class ProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255, description="New full name.")

    model_config = ConfigDict(extra="forbid")
