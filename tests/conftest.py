from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from models.enums import OrderStatus
from models.order import Order
from models.order_item import OrderItem
from models.product import Product, ProductVariant
from schemas.order import OrderCreate
from schemas.users import CurrentUser
from services import email as email_service
from services import orders as order_service

from helpers import ADDRESS, KEY_SECRET, FakeGateway, headers_for


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.RAZORPAY_KEY_ID = "rzp_test_key"
    core_config.settings.RAZORPAY_KEY_SECRET = KEY_SECRET
    core_config.settings.PAYMENT_CURRENCY = "INR"
    core_config.settings.SHIPPING_COST = Decimal("10.00")
    core_config.settings.TESTING = True
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def fake_gateway():
    return FakeGateway()


@pytest.fixture()
def patched_gateway(monkeypatch, fake_gateway):
    """Route the real gateway module through the fake, for tests going over HTTP."""
    from services import razorpay

    monkeypatch.setattr(razorpay, "create_order", fake_gateway.create_order)
    monkeypatch.setattr(razorpay, "fetch_order", fake_gateway.fetch_order)
    return fake_gateway


@pytest.fixture()
def customer():
    return CurrentUser(id="user-1", email="asha@example.com")


@pytest.fixture()
def other_customer():
    return CurrentUser(id="user-2", email="ravi@example.com")


@pytest.fixture()
def admin():
    return CurrentUser(id="admin-1", email="ops@example.com", role="admin")


@pytest.fixture()
def auth_headers(customer):
    return headers_for(customer)


@pytest.fixture()
def other_headers(other_customer):
    return headers_for(other_customer)


@pytest.fixture()
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture()
def tshirt(db):
    """A product with two variants: M/black (5 in stock) and L/white (2 in stock, +2.00)."""
    product = Product(name="Classic Tee", base_price=Decimal("19.99"), is_active=True)
    product.variants.append(ProductVariant(size="M", color="black", stock_quantity=5, price_adjustment=Decimal("0")))
    product.variants.append(ProductVariant(size="L", color="white", stock_quantity=2, price_adjustment=Decimal("2.00")))
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture()
def medium(tshirt):
    return next(v for v in tshirt.variants if v.size == "M")


@pytest.fixture()
def large(tshirt):
    return next(v for v in tshirt.variants if v.size == "L")


@pytest.fixture()
def place_order(db, customer):
    def _place(items, user=None):
        data = OrderCreate(
            items=[{"variant_id": v.id, "quantity": q} for v, q in items],
            shipping_address=ADDRESS,
        )
        return order_service.create_order(db, user or customer, data)

    return _place


@pytest.fixture()
def scenario_order(db, customer, medium):
    """Order of 59.99 (49.99 + 10.00 shipping) with one line of qty 2."""
    order = Order(
        user_id=customer.id,
        email=customer.email,
        status=OrderStatus.PENDING.value,
        currency="INR",
        subtotal=Decimal("49.99"),
        shipping_cost=Decimal("10.00"),
        total=Decimal("59.99"),
        shipping_address=ADDRESS,
        payment_method="razorpay",
    )
    order.items.append(
        OrderItem(
            position=0,
            product_id=medium.product_id,
            variant_id=medium.id,
            product_name="Classic Tee",
            variant_details={"size": "M", "color": "black"},
            quantity=2,
            unit_price=Decimal("24.995"),
            total_price=Decimal("49.99"),
        )
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order
