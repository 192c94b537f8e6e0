# tests/conftest.py

"""
Shared fixtures for the Order Service tests.

The service is pointed at a throwaway SQLite file before it is imported.
Every helper opens its own short-lived session and closes it again: SQLite
transactions here start with BEGIN IMMEDIATE, so a session left open would
hold the database lock and stall the code under test.
"""

import logging
import os
import tempfile
import uuid
from decimal import Decimal
from types import SimpleNamespace

TEST_DB_PATH = os.path.join(
    tempfile.gettempdir(), f"order_service_test_{os.getpid()}.db"
)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("ORDER_RETRY_BACKOFF_SECONDS", "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from order_service.auth import hash_token  # noqa: E402
from order_service.db import Base, SessionLocal, engine  # noqa: E402
from order_service.main import app  # noqa: E402
from order_service.models import Product, Profile  # noqa: E402

# Suppress noisy logs during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)


# --- Pytest Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def setup_database_for_tests():
    # Start from a clean slate in case a previous run left tables behind
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def clean_tables():
    """Empties every table after each test, children first."""
    yield
    with SessionLocal() as db:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()


@pytest.fixture(scope="module")  # Client is created once per test module
def client():
    with TestClient(app) as test_client:
        yield test_client


def _create_profile(role):
    token = uuid.uuid4().hex
    with SessionLocal() as db:
        profile = Profile(
            email=f"{uuid.uuid4().hex[:12]}@example.com",
            full_name=f"Test {role}",
            role=role,
            token_hash=hash_token(token),
        )
        db.add(profile)
        db.commit()
        profile_id = profile.id
    return SimpleNamespace(
        id=profile_id,
        role=role,
        token=token,
        headers={"Authorization": f"Bearer {token}"},
    )


@pytest.fixture
def make_customer():
    return lambda: _create_profile("user")


@pytest.fixture
def make_admin():
    return lambda: _create_profile("admin")


@pytest.fixture
def make_product():
    def _make(name="Widget", price="10.00", stock=10, category="general", description=""):
        with SessionLocal() as db:
            product = Product(
                name=name,
                description=description,
                price=Decimal(price),
                stock=stock,
                category=category,
            )
            db.add(product)
            db.commit()
            return product.id

    return _make


@pytest.fixture
def read_stock():
    def _read(product_id):
        with SessionLocal() as db:
            return db.get(Product, product_id).stock

    return _read


@pytest.fixture
def count_rows():
    def _count(model):
        with SessionLocal() as db:
            return db.query(model).count()

    return _count
