"""
Pytest fixtures for storefront backend tests.

Provides the application on an in-memory database, a per-test table wipe,
model factories, and auth headers backed by real session tokens.
"""

from datetime import timedelta

import pytest

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.models import Category, Coupon, Product, ProductSku, UserCoupon
from storefront.models.auth import ROLE_ADMIN
from storefront.services import session_service
from storefront.services.auth_service import create_user
from storefront.services.inventory_service import adjust_stock
from storefront.time_utils import utcnow


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Create fresh database for each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.remove()

    yield db.session

    db.session.rollback()


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture
def customer(db_session):
    return create_user("alice", "alice@example.com", PASSWORD)


@pytest.fixture
def other_customer(db_session):
    return create_user("bob", "bob@example.com", PASSWORD)


@pytest.fixture
def admin(db_session):
    return create_user("admin", "admin@example.com", PASSWORD, role=ROLE_ADMIN)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture
def other_customer_headers(other_customer):
    return headers_for(other_customer)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


# =============================================================================
# CATALOG
# =============================================================================


@pytest.fixture
def category(db_session):
    category = Category(name="Electronics", level=1)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def make_product(db_session, admin):
    """
    Factory: make_product(name, price_cents=1000, stock=0).

    Opening stock is booked through adjust_stock so the ledger matches the
    counter from the start.
    """
    def _make(name="Widget", price_cents=1000, stock=0, category_id=None):
        product = Product(name=name, price_cents=price_cents, stock=0, category_id=category_id)
        db_session.add(product)
        db_session.commit()
        if stock:
            adjust_stock(
                product_id=product.id,
                change_type="in",
                quantity=stock,
                reason="opening",
                operator_id=admin.id,
            )
        return product

    return _make


@pytest.fixture
def make_sku(db_session, admin):
    def _make(product, sku_code="SKU-1", stock=0, price_cents=None):
        sku = ProductSku(product_id=product.id, sku_code=sku_code, stock=0, price_cents=price_cents)
        db_session.add(sku)
        db_session.commit()
        if stock:
            adjust_stock(
                product_id=product.id,
                change_type="in",
                quantity=stock,
                sku_id=sku.id,
                reason="opening",
                operator_id=admin.id,
            )
        return sku

    return _make


# =============================================================================
# COUPONS
# =============================================================================


@pytest.fixture
def make_coupon(db_session):
    def _make(code="SAVE10", type="fixed", value=1000, **overrides):
        now = utcnow()
        fields = dict(
            code=code,
            name=f"Coupon {code}",
            type=type,
            value=value,
            total_quantity=100,
            quantity=100,
            used_count=0,
            status="active",
            start_at=now - timedelta(days=1),
            end_at=now + timedelta(days=30),
        )
        fields.update(overrides)
        coupon = Coupon(**fields)
        db_session.add(coupon)
        db_session.commit()
        return coupon

    return _make


@pytest.fixture
def claimed_coupon(db_session, customer, make_coupon):
    coupon = make_coupon()
    db_session.add(UserCoupon(user_id=customer.id, coupon_id=coupon.id, status="unused", claimed_at=utcnow()))
    db_session.commit()
    return coupon


def stock_of(model, row_id: int) -> int:
    """Current counter straight from the database."""
    db.session.expire_all()
    return db.session.get(model, row_id).stock


def address() -> dict:
    return {
        "receiver_name": "Alice",
        "phone": "13800000000",
        "province": "Zhejiang",
        "city": "Hangzhou",
        "address": "1 Main Street",
    }
