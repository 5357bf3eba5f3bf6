"""
Pytest configuration and fixtures for the POS API.

Every test gets a fresh in-memory SQLite database (foreign keys enforced)
and the app's session dependency is pointed at it.
"""
import os

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEMO_MODE"] = "0"
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from database.session import build_engine, get_session
from database.models import User, Supplier, Customer, Product
from services.auth_service import AuthService
from main import app

PASSWORD = "secret123"


@pytest.fixture
def session():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def client(session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(session, role: str, email: str) -> dict:
    user = User(name=f"Test {role.title()}", email=email, password_hash=AuthService.get_password_hash(PASSWORD), role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return {"Authorization": f"Bearer {AuthService.create_access_token(user.id)}"}


@pytest.fixture
def admin_headers(session):
    return auth_headers(session, "ADMIN", "admin@test.com")


@pytest.fixture
def manager_headers(session):
    return auth_headers(session, "MANAGER", "manager@test.com")


@pytest.fixture
def user_headers(session):
    return auth_headers(session, "USER", "cashier@test.com")


@pytest.fixture
def shop(session):
    """A supplier, a customer and two products."""
    supplier = Supplier(name="Fresh Farms", phone="+254 700 111 222", email="orders@fresh.example")
    customer = Customer(name="Jane Doe", phone="0712345678", email="jane@example.com")
    session.add(supplier)
    session.add(customer)
    session.commit()

    rice = Product(name="Rice 1kg", category="Grains", barcode="123456789012", quantity=20,
                   buy_price=6.0, sell_price=10.0, supplier_id=supplier.id)
    soap = Product(name="Soap", category="Household", quantity=5, buy_price=1.0,
                   sell_price=5.5, low_stock_threshold=5)
    session.add(rice)
    session.add(soap)
    session.commit()
    for obj in (supplier, customer, rice, soap):
        session.refresh(obj)

    return {"supplier": supplier, "customer": customer, "rice": rice, "soap": soap}
