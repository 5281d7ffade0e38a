import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from estore.main import app as fastapi_app
from estore.database import Base, get_db
from estore.auth import verify_token
from estore.models import Address, Product, User

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


def override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    fastapi_app.dependency_overrides[get_db] = override_get_db
    # Bypass token verification, every request acts as USER_ID
    fastapi_app.dependency_overrides[verify_token] = lambda: USER_ID
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def catalog(db):
    """Seed two users, two products and one address per user."""
    db.add_all([
        User(id=USER_ID, first_name="Ada", last_name="Lovelace", email="ada@example.com"),
        User(id=OTHER_USER_ID, first_name="Alan", last_name="Turing", email="alan@example.com"),
        Product(id="prod-a", name="Product A", price=10, images=["https://img.example.com/a.png"]),
        Product(id="prod-b", name="Product B", price=5, images=[]),
        Address(id="addr-1", user_id=USER_ID, street="1 Main St", city="Springfield",
                state="IL", postal_code="62701", country="US"),
        Address(id="addr-2", user_id=OTHER_USER_ID, street="2 Side St", city="Shelbyville",
                state="IL", postal_code="62565", country="US"),
    ])
    db.commit()
    return {
        "user_id": USER_ID,
        "products": ["prod-a", "prod-b"],
        "address_id": "addr-1",
        "other_address_id": "addr-2",
    }


@pytest.fixture
def order_payload(catalog):
    return {
        "items": [
            {"product": "prod-a", "quantity": 2, "price": 10},
            {"product": "prod-b", "quantity": 1, "price": 5},
        ],
        "shippingAddress": catalog["address_id"],
    }


@pytest.fixture
def checkout_session(mocker):
    """Mock stripe.checkout.Session.create with a fixed session."""
    mock_session = mocker.Mock()
    mock_session.id = "cs_test_123"
    mock_session.url = "https://checkout.stripe.com/c/pay/cs_test_123"
    return mocker.patch("stripe.checkout.Session.create", return_value=mock_session)
