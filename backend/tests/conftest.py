"""
Pytest fixtures for repairdesk backend tests.

Provides the test database, a test client, one employee per role, and
small catalog / customer / service category fixtures.
"""

import pytest

from repairdesk import create_app
from repairdesk.extensions import db, query_cache
from repairdesk.models import Customer, Inventory, Product, ProductCategory, ServiceCategory, User


@pytest.fixture(scope='session')
def upload_dir(tmp_path_factory):
    return tmp_path_factory.mktemp("uploads")


@pytest.fixture(scope='session')
def app(upload_dir):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(upload_dir),
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
    """Empty every table and the query cache before each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.remove()
        query_cache.clear()

        yield db.session

        db.session.rollback()
        query_cache.clear()


def _make_user(session, *, full_name, email, staff_id, role, is_active=True):
    user = User(full_name=full_name, email=email, staff_id=staff_id, role=role, is_active=is_active)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, full_name="Alice Admin", email="alice@shop.test", staff_id="ADM-1", role="admin")


@pytest.fixture(scope='function')
def sales_user(db_session):
    return _make_user(db_session, full_name="Sam Sales", email="sam@shop.test", staff_id="SAL-1", role="sales")


@pytest.fixture(scope='function')
def other_sales_user(db_session):
    return _make_user(db_session, full_name="Sue Seller", email="sue@shop.test", staff_id="SAL-2", role="sales")


@pytest.fixture(scope='function')
def technician_user(db_session):
    return _make_user(db_session, full_name="Tom Tech", email="tom@shop.test", staff_id="TEC-1", role="technician")


@pytest.fixture(scope='function')
def other_technician(db_session):
    return _make_user(db_session, full_name="Tina Tech", email="tina@shop.test", staff_id="TEC-2", role="technician")


@pytest.fixture(scope='function')
def inactive_user(db_session):
    return _make_user(
        db_session, full_name="Ivan Inactive", email="ivan@shop.test", staff_id="SAL-9", role="sales", is_active=False
    )


def headers_for(user) -> dict:
    """Identity header the upstream proxy would send for this user."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def sales_headers(sales_user):
    return headers_for(sales_user)


@pytest.fixture(scope='function')
def technician_headers(technician_user):
    return headers_for(technician_user)


@pytest.fixture(scope='function')
def category(db_session):
    cat = ProductCategory(name="Components")
    db_session.add(cat)
    db_session.commit()
    return cat


def make_product(session, *, sku, name, price_cents, cost_cents=0, rate_bps=0, quantity=0, category=None,
                 reorder_level=10):
    product = Product(
        sku=sku,
        name=name,
        selling_price_cents=price_cents,
        cost_price_cents=cost_cents,
        commission_rate_bps=rate_bps,
        category_id=category.id if category else None,
    )
    session.add(product)
    session.flush()
    session.add(Inventory(product_id=product.id, quantity=quantity, reorder_level=reorder_level))
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_factory(db_session):
    """make_product bound to the test session."""
    def _make(**kwargs):
        return make_product(db_session, **kwargs)
    return _make


@pytest.fixture(scope='function')
def ssd(db_session, category):
    """$100.00 SSD, 10% commission, 20 in stock."""
    return make_product(
        db_session, sku="SSD-1", name="SSD 1TB", price_cents=10000, cost_cents=6000, rate_bps=1000,
        quantity=20, category=category,
    )


@pytest.fixture(scope='function')
def cable(db_session, category):
    """$5.00 cable, 5% commission, 50 in stock."""
    return make_product(
        db_session, sku="CBL-1", name="USB-C Cable", price_cents=500, cost_cents=100, rate_bps=500,
        quantity=50, category=category,
    )


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Carol Customer", email="carol@example.com", phone="555-0100")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def service_category(db_session):
    c = ServiceCategory(name="Screen Repair", description="Displays")
    db_session.add(c)
    db_session.commit()
    return c
