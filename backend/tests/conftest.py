"""
Pytest fixtures for opsdesk backend tests.

Provides the application on an in-memory database, a per-test clean
slate, row factories and signed-in headers for each role.
"""

import pytest

from opsdesk import create_app
from opsdesk.extensions import db, change_feed
from opsdesk.models import Location, Order, OrderItem, Product
from opsdesk.roles import ADMIN, MANAGER, DRIVER, CUSTOMER, PORTAL_STORE, resolve_capabilities
from opsdesk.services import session_service
from opsdesk.services.auth_service import create_profile
from opsdesk.services.session_service import SessionContext
from opsdesk.services.transactions import commit


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'SUPER_ADMIN_EMAIL': 'root@opsdesk.test',
        'CHANGE_STREAM_HEARTBEAT': 0.01,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()
    # Drop any change events left over from the previous test
    change_feed.dispatch(db.session())

    yield db.session

    # Cleanup after test
    db.session.rollback()


# =============================================================================
# ROW FACTORIES
# =============================================================================


@pytest.fixture
def make_location(db_session):
    def _make(name="Main Store", type="store", address=None):
        location = Location(name=name, type=type, address=address, is_active=True)
        db_session.add(location)
        commit()
        return location
    return _make


@pytest.fixture
def make_profile(db_session):
    counter = {"n": 0}

    def _make(role, location=None, email=None, password=PASSWORD, **kwargs):
        counter["n"] += 1
        profile = create_profile(
            email or f"{role}{counter['n']}@opsdesk.test",
            password,
            role=role,
            assigned_location_id=location.id if location is not None else None,
            **kwargs,
        )
        commit()
        return profile
    return _make


@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(name="Linen Shirt", category=None, sizes=None, **kwargs):
        counter["n"] += 1
        product = Product(
            name=name,
            sku=kwargs.pop("sku", f"SKU-{counter['n']:04d}"),
            category=category if category is not None else ["Shirts"],
            sizes=sizes,
            weight_grams=kwargs.pop("weight_grams", 250),
            **kwargs,
        )
        db_session.add(product)
        commit()
        return product
    return _make


@pytest.fixture
def make_order(db_session):
    def _make(fulfillment_type="pickup", status="paid", location=None, customer=None,
              total_amount=100.0, delivery_address=None, product=None, created_at=None):
        order = Order(
            fulfillment_type=fulfillment_type,
            status=status,
            pickup_location_id=location.id if location is not None else None,
            customer_id=customer.id if customer is not None else None,
            total_amount=total_amount,
            delivery_address=delivery_address,
        )
        if created_at is not None:
            order.created_at = created_at
        if product is not None:
            order.items.append(OrderItem(product_id=product.id, quantity=1))
        db_session.add(order)
        commit()
        return order
    return _make


def context_for(profile):
    """SessionContext without a database session row, for service-level tests."""
    return SessionContext(profile=profile, session=None, capabilities=resolve_capabilities(profile))


# =============================================================================
# LOCATIONS AND SIGNED-IN PROFILES
# =============================================================================


@pytest.fixture
def store(make_location):
    return make_location("Downtown Store", "store")


@pytest.fixture
def other_store(make_location):
    return make_location("Uptown Store", "store")


@pytest.fixture
def warehouse(make_location):
    return make_location("Central Warehouse", "warehouse")


@pytest.fixture
def admin(make_profile):
    return make_profile(ADMIN)


@pytest.fixture
def manager(make_profile, store):
    return make_profile(MANAGER, location=store)


@pytest.fixture
def driver(make_profile):
    return make_profile(DRIVER)


@pytest.fixture
def customer(make_profile):
    return make_profile(CUSTOMER)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(profile, portal=PORTAL_STORE) -> dict:
    _session, token = session_service.create_session(profile.id, portal=portal)
    return auth_headers(token)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def manager_headers(manager):
    return headers_for(manager)


@pytest.fixture
def driver_headers(driver):
    return headers_for(driver)


def get_auth_token(client, email: str, password: str = PASSWORD, portal: str = PORTAL_STORE) -> str:
    """Helper to get auth token for a profile."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password,
        'portal': portal,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None
