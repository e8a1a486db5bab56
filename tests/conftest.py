"""
Pytest configuration for the storefront API tests.

Every test runs against a fresh in-memory SQLite database shared by the app
(through a get_db override) and the test itself (the `db` fixture), and a
fresh in-process response cache.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taphoa import models  # noqa: F401
from taphoa.auth import create_access_token, hash_password
from taphoa.cache import MemoryResponseCache, get_response_cache
from taphoa.database import Base, build_engine, get_db
from taphoa.main import app
from taphoa.models import CartItem, Category, Product, User

# One connection for the whole process so every session sees the same in-memory database
engine = build_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# 
# Test Fixtures
# 

@pytest.fixture(scope="function", autouse=True)
def setup_database():
    """Create fresh tables for each test so tests don't interfere with each other."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def cache():
    response_cache = MemoryResponseCache(ttl_seconds=60)
    app.dependency_overrides[get_response_cache] = lambda: response_cache
    yield response_cache
    app.dependency_overrides.pop(get_response_cache, None)


@pytest.fixture
def client(cache):
    return TestClient(app)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email, password, role, **extra):
    user = User(email=email, password=hash_password(password), role=role, **extra)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(db):
    return _make_user(db, "khach@example.com", "matkhau1", "customer", full_name="Khách Hàng", phone="0900000001")


@pytest.fixture
def other_customer(db):
    return _make_user(db, "hangxom@example.com", "matkhau2", "customer", full_name="Hàng Xóm")


@pytest.fixture
def admin(db):
    return _make_user(db, "quanly@example.com", "quanly123", "admin", full_name="Quản Lý")


@pytest.fixture
def customer_headers(customer):
    return auth_header(create_access_token(customer.id, customer.email, customer.role))


@pytest.fixture
def other_headers(other_customer):
    return auth_header(create_access_token(other_customer.id, other_customer.email, other_customer.role))


@pytest.fixture
def admin_headers(admin):
    return auth_header(create_access_token(admin.id, admin.email, admin.role))


@pytest.fixture
def category(db):
    cat = Category(name="Đồ uống", description="Nước ngọt, trà, cà phê")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def make_product(db):
    """Factory: make_product(name=..., price=..., **columns) -> committed Product."""

    def _make(name="Sữa tươi", price=10000, **fields):
        product = Product(name=name, price=price, **fields)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def add_to_cart(db):
    """Factory: put quantity of product straight into user's cart."""

    def _add(user, product, quantity):
        item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        db.add(item)
        db.commit()
        return item

    return _add
