"""
Shared fixtures: in-memory SQLite store, seeded branches/users, API client.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_AUTO_CREATE"] = "False"
os.environ["SECRET_KEY"] = "test-secret-key"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from dawacare.database import Base, engine, SessionLocal  # noqa: E402
from dawacare.main import app  # noqa: E402
from dawacare.models import Branch, User, Supplier, Customer, Medicine  # noqa: E402
from dawacare.permissions import Actor  # noqa: E402
from dawacare.utils.auth_internal import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def main_branch(db):
    branch = Branch(name="Main Branch", code="MAIN", is_main_branch=True)
    db.add(branch)
    db.commit()
    return branch


@pytest.fixture
def town_branch(db):
    branch = Branch(name="Town Branch", code="TWN")
    db.add(branch)
    db.commit()
    return branch


def _user(db, name, email, role, branch):
    user = User(name=name, email=email, role=role, branch_id=branch.id)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db, main_branch):
    return _user(db, "Amina Admin", "admin@dawacare.test", "ADMIN", main_branch)


@pytest.fixture
def pharmacist(db, main_branch):
    return _user(db, "Peter Pharmacist", "p1@dawacare.test", "PHARMACIST", main_branch)


@pytest.fixture
def second_pharmacist(db, main_branch):
    return _user(db, "Grace Pharmacist", "p2@dawacare.test", "PHARMACIST", main_branch)


@pytest.fixture
def cashier(db, main_branch):
    return _user(db, "Carl Cashier", "cashier@dawacare.test", "CASHIER", main_branch)


@pytest.fixture
def supplier(db):
    supplier = Supplier(name="Kilimanjaro Pharma", license_number="PPB-2231")
    db.add(supplier)
    db.commit()
    return supplier


@pytest.fixture
def customer(db):
    customer = Customer(name="Mary Wanjiku", phone="0711000111", credit_limit=Decimal("1000"))
    db.add(customer)
    db.commit()
    return customer


def actor_for(user):
    return Actor(id=user.id, name=user.name, role=user.role, branch_id=user.branch_id)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.email)}"}


@pytest.fixture
def make_medicine(db, main_branch):
    """Insert a stock row directly (test setup only; services go through the ledger)."""
    def _make(name="Amoxicillin 500mg", batch_number="B100", quantity=50, branch=None, **fields):
        fields.setdefault("unit_price", Decimal("150"))
        fields.setdefault("cost_price", Decimal("100"))
        medicine = Medicine(
            name=name,
            batch_number=batch_number,
            quantity=quantity,
            branch_id=(branch or main_branch).id,
            **fields,
        )
        db.add(medicine)
        db.commit()
        return medicine
    return _make
