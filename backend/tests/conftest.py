"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, tenant fixtures (two organizations, branches,
admin and staff actors, items) and ledger row helpers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import (
    Organization, Branch, User, Item,
    OpeningStock, ClosingStock, Restocking, Sale, WasteSpoilage,
)
from stockledger.models.inventory import SOURCE_AUTO
from stockledger.models.users import ROLE_ADMIN, ROLE_STAFF
from stockledger.services.scope_service import Scope
from stockledger.time_utils import business_today


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_DEFAULT_TIMEZONE': 'UTC',
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


@pytest.fixture
def today():
    """Organization calendar 'today' (test organizations run on UTC)."""
    return business_today("UTC")


@pytest.fixture
def days_ago(today):
    def _days_ago(n: int):
        return today - timedelta(days=n)
    return _days_ago


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Foods", code="ACME", timezone="UTC", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Bakery", code="BETA", timezone="UTC", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def branch_a1(db_session, org_a):
    branch = Branch(org_id=org_a.id, name="Branch A1", code="A1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, org_a):
    branch = Branch(org_id=org_a.id, name="Branch A2", code="A2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b1(db_session, org_b):
    branch = Branch(org_id=org_b.id, name="Branch B1", code="B1")
    db_session.add(branch)
    db_session.commit()
    return branch


def _user(db_session, org, email, role, branch=None):
    user = User(
        org_id=org.id,
        branch_id=branch.id if branch is not None else None,
        email=email,
        full_name=email.split("@")[0],
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    """Tenant admin of Organization A (no branch)."""
    return _user(db_session, org_a, "admin@acme.com", ROLE_ADMIN)


@pytest.fixture(scope='function')
def staff_a1(db_session, org_a, branch_a1):
    """Staff member fixed to Branch A1."""
    return _user(db_session, org_a, "staff@acme.com", ROLE_STAFF, branch_a1)


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    """Tenant admin of Organization B."""
    return _user(db_session, org_b, "admin@beta.com", ROLE_ADMIN)


@pytest.fixture
def scope_a(org_a):
    """Organization-level partition of Organization A."""
    return Scope(organization_id=org_a.id, branch_id=None)


@pytest.fixture
def scope_a1(org_a, branch_a1):
    return Scope(organization_id=org_a.id, branch_id=branch_a1.id)


@pytest.fixture
def scope_b(org_b):
    return Scope(organization_id=org_b.id, branch_id=None)


def make_item(db_session, org, name="Rice", branch=None, cost_price="100.00", selling_price="150.00"):
    item = Item(
        organization_id=org.id,
        branch_id=branch.id if branch is not None else None,
        name=name,
        unit="kg",
        cost_price=Decimal(cost_price) if cost_price is not None else None,
        selling_price=Decimal(selling_price) if selling_price is not None else None,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_a(db_session, org_a):
    """Organization-wide item of Organization A."""
    return make_item(db_session, org_a, "Rice")


@pytest.fixture(scope='function')
def item_b(db_session, org_b):
    return make_item(db_session, org_b, "Flour")


# ---------------------------------------------------------------------------
# Ledger row helpers (write facts directly, bypassing services)
# ---------------------------------------------------------------------------

def _scoped(model, item, scope, day, quantity, **extra):
    row = model(
        item_id=item.id,
        organization_id=scope.organization_id,
        branch_id=scope.branch_id,
        date=day,
        quantity=Decimal(str(quantity)),
        **extra,
    )
    db.session.add(row)
    db.session.commit()
    return row


def add_opening(item, scope, day, quantity, source=SOURCE_AUTO):
    return _scoped(OpeningStock, item, scope, day, quantity, source=source)


def add_closing(item, scope, day, quantity, source=SOURCE_AUTO):
    return _scoped(ClosingStock, item, scope, day, quantity, source=source)


def add_restocking(item, scope, day, quantity, **extra):
    return _scoped(Restocking, item, scope, day, quantity, **extra)


def add_sale(item, scope, day, quantity, **extra):
    extra.setdefault("price_per_unit", Decimal("0"))
    extra.setdefault("total_price", Decimal("0"))
    return _scoped(Sale, item, scope, day, quantity, **extra)


def add_waste(item, scope, day, quantity, **extra):
    return _scoped(WasteSpoilage, item, scope, day, quantity, **extra)


def actor_headers(user) -> dict:
    """Helper to create actor headers for a user."""
    return {'X-User-Id': str(user.id)}
