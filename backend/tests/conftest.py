"""
Pytest fixtures for shopledger backend tests.

Provides an in-memory application, a clean database per test, seeded master
data (shops, products, supplier, customer, users) and bearer-token headers.
"""

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Customer, Product, Shop, Supplier, User
from shopledger.services import inventory_service, session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shop(db_session):
    shop = Shop(name="Main Shop", code="MAIN")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    shop = Shop(name="Branch Shop", code="BRANCH")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(sku="P-001", name="Maize Flour 2kg", unit="bag", min_stock=5)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session):
    product = Product(sku="P-002", name="Cooking Oil 1L", unit="bottle", min_stock=3)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Lakeside Wholesale", contact="orders@lakeside.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Grace Banda", phone="0999000111")
    db_session.add(customer)
    db_session.commit()
    return customer


def _make_user(db_session, username: str, role: str) -> User:
    user = User(username=username, email=f"{username}@shopledger.test", role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def inventory(db_session, product, shop, admin_user):
    """InventoryRecord(product, shop) holding 10 units (posted as Initial stock)."""
    return inventory_service.create_inventory_record(
        product_id=product.id,
        shop_id=shop.id,
        quantity=10,
        cost_price_cents=500,
        selling_price_cents=800,
        user_id=admin_user.id,
    )


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    _, token = session_service.create_session(manager_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    _, token = session_service.create_session(cashier_user.id)
    return auth_headers(token)
