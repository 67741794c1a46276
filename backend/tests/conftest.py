"""
Pytest fixtures for ledger backend tests.

Provides the test app, a fresh database per test, a fake Redis behind the
read-through cache, and tenant/outlet/user/catalog fixtures.
"""

import fakeredis
import pytest

from backoffice import create_app
from backoffice.context import RequestContext
from backoffice.extensions import db, cache
from backoffice.models import Outlet, Tenant, User
from backoffice.services import pin_service, stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PIN_BCRYPT_ROUNDS': 4,
        'DEFAULT_VARIANCE_THRESHOLD_CENTS': 1000,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def fake_redis():
    return fakeredis.FakeRedis()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, fake_redis):
    """Fresh database and empty cache for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        fake_redis.flushall()
        cache.client = fake_redis

        yield db.session

        db.session.rollback()
        cache.client = None


@pytest.fixture(scope='function')
def tenant(db_session):
    tenant = Tenant(name="Acme Bakery", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    tenant = Tenant(name="Beta Cafe", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def outlet(db_session, tenant):
    outlet = Outlet(tenant_id=tenant.id, name="Main Street", code="MAIN")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def second_outlet(db_session, tenant):
    outlet = Outlet(tenant_id=tenant.id, name="Harbour", code="HARB")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def staff(db_session, tenant, outlet):
    user = User(tenant_id=tenant.id, outlet_id=outlet.id, name="Sam Staff", role="STAFF", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session, tenant, outlet):
    """Manager with approval PIN 2468."""
    user = User(tenant_id=tenant.id, outlet_id=outlet.id, name="Mia Manager", role="MANAGER", is_active=True)
    db_session.add(user)
    db_session.commit()
    pin_service.set_user_pin(user.id, "2468")
    return user


@pytest.fixture(scope='function')
def ctx(tenant, outlet, staff):
    return RequestContext(tenant_id=tenant.id, outlet_id=outlet.id, actor_id=staff.id, role="STAFF")


@pytest.fixture(scope='function')
def manager_ctx(tenant, outlet, manager):
    return RequestContext(tenant_id=tenant.id, outlet_id=outlet.id, actor_id=manager.id, role="MANAGER")


@pytest.fixture(scope='function')
def flour(ctx):
    """Ingredient with 100 units on hand."""
    return stock_service.create_ingredient(ctx, name="Flour", unit="kg", opening_stock=100)


@pytest.fixture(scope='function')
def bread(ctx, flour):
    """Recipe-backed product: one bread consumes 0.5 kg of flour."""
    product = stock_service.create_product(ctx, name="Bread", price_cents=20000, sku="BRD-1")
    stock_service.set_recipe(ctx, product.id, [{"ingredient_id": flour.id, "quantity": "0.5"}])
    return product


@pytest.fixture(scope='function')
def cola(ctx):
    """Direct-stock product with 20 units on hand."""
    return stock_service.create_product(ctx, name="Cola", price_cents=1500, sku="COLA", opening_stock=20)


def scope_headers(ctx: RequestContext) -> dict:
    """Gateway headers for a request context."""
    headers = {
        'X-Tenant-Id': str(ctx.tenant_id),
        'X-Outlet-Id': str(ctx.outlet_id),
        'X-Actor-Role': ctx.role,
    }
    if ctx.actor_id is not None:
        headers['X-Actor-Id'] = str(ctx.actor_id)
    return headers


def reload(instance):
    """Re-read a row from the database."""
    db.session.expire_all()
    return db.session.get(type(instance), instance.id)


