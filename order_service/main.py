# order_service/main.py

"""
FastAPI Order Service API.
Places orders against finite product stock, and serves the surrounding
storefront: catalog browsing, admin catalog management, order history,
admin order-status changes and the caller's own profile.
"""
import logging
import os
import sys
import time
from typing import List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from .auth import get_current_caller
from .db import Base, engine, get_db
from .exceptions import OrderNotFound, OrderServiceError, ProductInUse, ProductNotFound
from .models import Order, OrderItem, Product, Profile
from .placement import place_order
from .policy import Caller, access_policy
from .schemas import (
    OrderResponse,
    OrderStatusUpdate,
    PlaceOrderRequest,
    PlaceOrderResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    ProfileResponse,
    ProfileUpdate,
)

# -----------------------------
# Configure Logging
# -----------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)

DB_STARTUP_MAX_RETRIES = int(os.getenv("DB_STARTUP_MAX_RETRIES", "10"))
DB_STARTUP_RETRY_DELAY_SECONDS = float(os.getenv("DB_STARTUP_RETRY_DELAY_SECONDS", "5"))


# -----------------------------
# FastAPI App Initialization
# -----------------------------
app = FastAPI(
    title="Order Service API",
    description="Places orders against product stock for the storefront",
    version="1.0.0",
)

# Enable CORS (for frontend dev/testing)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Use specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error rendering ---
@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    logger.info(f"Rejected malformed request to {request.url.path}: {problems}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"Invalid request: {problems}"},
    )


# --- FastAPI Event Handlers ---
@app.on_event("startup")
async def startup_event():
    """
    Ensures database tables exist, retrying while the database comes up.
    """
    for i in range(DB_STARTUP_MAX_RETRIES):
        try:
            logger.info(
                f"Attempting to connect to the database and create tables (attempt {i+1}/{DB_STARTUP_MAX_RETRIES})..."
            )
            Base.metadata.create_all(bind=engine)
            logger.info("Successfully connected to the database and ensured tables exist.")
            break
        except OperationalError as e:
            logger.warning(f"Failed to connect to the database: {e}")
            if i < DB_STARTUP_MAX_RETRIES - 1:
                logger.info(f"Retrying in {DB_STARTUP_RETRY_DELAY_SECONDS} seconds...")
                time.sleep(DB_STARTUP_RETRY_DELAY_SECONDS)
            else:
                logger.critical(
                    f"Failed to connect to the database after {DB_STARTUP_MAX_RETRIES} attempts. Exiting application."
                )
                sys.exit(1)
        except Exception as e:
            logger.critical(
                f"An unexpected error occurred during database startup: {e}",
                exc_info=True,
            )
            sys.exit(1)


# --- Root Endpoint ---
@app.get("/", status_code=status.HTTP_200_OK, summary="Root endpoint")
async def read_root():
    return {"message": "Welcome to the Order Service!"}


# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK, summary="Health check endpoint")
async def health_check():
    """
    A simple health check endpoint to verify the service is running.
    """
    return {"status": "ok", "service": "order-service"}


def _require_admin(caller: Caller):
    access_policy.require(access_policy.can_manage_catalog(caller), "manage the catalog", caller)


def _get_product_or_404(db: Session, product_id: UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        logger.warning(f"Product with ID: {product_id} not found.")
        raise ProductNotFound(product_id)
    return product


# -----------------------------
# Catalog Endpoints
# -----------------------------


@app.get(
    "/products/",
    response_model=List[ProductResponse],
    summary="List products with pagination, search and category filter",
)
def list_products(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0, description="Number of items to skip (for pagination)."),
    limit: int = Query(
        100,
        ge=1,
        le=100,
        description="Maximum number of items to return (for pagination).",
    ),
    search: Optional[str] = Query(
        None,
        max_length=255,
        description="Search term for product name or description (case-insensitive).",
    ),
    category: Optional[str] = Query(None, max_length=100, description="Exact category."),
):
    """
    Retrieves products. Readable by anyone, including anonymous callers.
    """
    access_policy.require(access_policy.can_read_product(None), "read products")
    logger.info(
        f"Listing products with skip={skip}, limit={limit}, search='{search}', category='{category}'"
    )
    query = db.query(Product)
    if search:
        search_pattern = f"%{search}%"
        query = query.filter(
            (Product.name.ilike(search_pattern))
            | (Product.description.ilike(search_pattern))
        )
    if category:
        query = query.filter(Product.category == category)
    products = query.order_by(Product.name).offset(skip).limit(limit).all()
    logger.info(f"Retrieved {len(products)} products (skip={skip}, limit={limit}).")
    return products


@app.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    summary="Retrieve a product by ID",
)
def get_product(product_id: UUID, db: Session = Depends(get_db)):
    access_policy.require(access_policy.can_read_product(None), "read products")
    return _get_product_or_404(db, product_id)


@app.post(
    "/products/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
)
def create_product(
    product: ProductCreate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Creates a new product. Admin only. This is the only place a stock
    figure is ever set directly.
    """
    _require_admin(caller)
    logger.info(f"Creating product: {product.name}")
    try:
        db_product = Product(**product.model_dump())
        db.add(db_product)
        db.commit()
        db.refresh(db_product)
        logger.info(f"Product '{db_product.name}' (ID: {db_product.id}) created successfully.")
        return db_product
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating product: {e}", exc_info=True)
        raise OrderServiceError("Could not create product.")


@app.put(
    "/products/{product_id}",
    response_model=ProductResponse,
    summary="Update an existing product",
)
def update_product(
    product_id: UUID,
    updated: ProductUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Updates catalog fields of a product. Admin only; stock is not editable.
    """
    _require_admin(caller)
    changes = updated.model_dump(exclude_unset=True, exclude_none=True)
    logger.info(f"Updating product with ID: {product_id} with data: {changes}")
    product = _get_product_or_404(db, product_id)

    for field, value in changes.items():
        setattr(product, field, value)
    try:
        db.commit()
        db.refresh(product)
        logger.info(f"Product '{product.name}' (ID: {product_id}) updated successfully.")
        return product
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating product {product_id}: {e}", exc_info=True)
        raise OrderServiceError("Could not update product.")


@app.delete(
    "/products/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a product by ID",
)
def delete_product(
    product_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Deletes a product. Admin only. Products that appear on any order are
    kept, since order history references them.
    """
    _require_admin(caller)
    logger.info(f"Attempting to delete product with ID: {product_id}")
    product = _get_product_or_404(db, product_id)

    try:
        db.delete(product)
        db.commit()
        logger.info(f"Product (ID: {product_id}) deleted successfully.")
    except IntegrityError:
        db.rollback()
        logger.warning(f"Product {product_id} is referenced by orders; not deleted.")
        raise ProductInUse("Product is referenced by existing orders")
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting product {product_id}: {e}", exc_info=True)
        raise OrderServiceError("An error occurred while deleting the product.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Order Endpoints
# -----------------------------


@app.post(
    "/orders",
    response_model=PlaceOrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Place an order",
)
def create_order(
    request: PlaceOrderRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Places an order for the authenticated caller.

    - Prices and stock are read from the catalog at placement time.
    - Either the whole order is created and stock decremented, or nothing is.
    """
    order = place_order(
        db,
        caller.id,
        [(item.product_id, item.quantity) for item in request.items],
        caller=caller,
    )
    return PlaceOrderResponse(order=OrderResponse.model_validate(order))


@app.get(
    "/orders",
    response_model=List[OrderResponse],
    summary="List orders visible to the caller",
)
def list_orders(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
):
    """
    Customers see their own orders; admins see every order. Newest first.
    """
    query = db.query(Order).options(selectinload(Order.items).selectinload(OrderItem.product))
    if not caller.is_admin:
        query = query.filter(Order.user_id == caller.id)
    return query.order_by(Order.created_at.desc()).offset(skip).limit(limit).all()


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Retrieve one order with its items",
)
def get_order(
    order_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    order = (
        db.query(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .filter(Order.id == order_id)
        .first()
    )
    # Orders the caller may not read are indistinguishable from missing ones.
    if order is None or not access_policy.can_read_order(caller, order.user_id):
        raise OrderNotFound(order_id)
    return order


@app.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Change an order's status",
)
def update_order_status(
    order_id: UUID,
    update: OrderStatusUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    access_policy.require(access_policy.can_update_order(caller), "update orders", caller)
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFound(order_id)

    logger.info(f"Order {order_id}: status {order.status} -> {update.status.value}")
    order.status = update.status.value
    try:
        db.commit()
        db.refresh(order)
        return order
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating order {order_id}: {e}", exc_info=True)
        raise OrderServiceError("Could not update order.")


# -----------------------------
# Profile Endpoints
# -----------------------------


def _get_own_profile(db: Session, caller: Caller) -> Profile:
    # The caller was resolved from this row, so it exists.
    return db.query(Profile).filter(Profile.id == caller.id).one()


@app.get("/profile", response_model=ProfileResponse, summary="Retrieve the caller's profile")
def get_profile(caller: Caller = Depends(get_current_caller), db: Session = Depends(get_db)):
    access_policy.require(access_policy.can_read_profile(caller, caller.id), "read this profile", caller)
    return _get_own_profile(db, caller)


@app.patch("/profile", response_model=ProfileResponse, summary="Update the caller's profile")
def update_profile(
    update: ProfileUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Updates the caller's display name. Role and email are not editable here.
    """
    access_policy.require(
        access_policy.can_update_profile(caller, caller.id), "update this profile", caller
    )
    profile = _get_own_profile(db, caller)
    logger.info(f"Updating profile {profile.id}: full_name -> '{update.full_name}'")
    profile.full_name = update.full_name
    try:
        db.commit()
        db.refresh(profile)
        return profile
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating profile {profile.id}: {e}", exc_info=True)
        raise OrderServiceError("Could not update profile.")
