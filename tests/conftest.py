from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core.db import Base, build_engine, get_db
from models.booking import Booking, BookingKind
from models.cart import Cart
from models.status import PaymentStatus
from routes.payments import get_gateway, get_sleep
from security import jwt as jwt_utils
from fakes import FakeGateway


@pytest.fixture()
def db_session_override():
    engine = build_engine("sqlite+pysqlite:///:memory:")
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


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_gateway] = lambda: fake
    return fake


@pytest.fixture()
def sleeps():
    recorded = []
    app.dependency_overrides[get_sleep] = lambda: recorded.append
    return recorded


@pytest.fixture()
def client(db_session_override, gateway, sleeps):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user_id():
    return "5b0c1f0e-user"


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {jwt_utils.create_access_token(user_id)}"}


@pytest.fixture
def make_booking(db, user_id):
    def _make(slug="T-1", kind=BookingKind.TEE, amount="500", **kwargs):
        booking_id = int(slug.split("-", 1)[1])
        booking = Booking(
            id=booking_id,
            slug=slug,
            user_id=user_id,
            kind=kind,
            item_id="tee-1",
            amount=Decimal(amount),
            status=kwargs.pop("status", PaymentStatus.PENDING),
            **kwargs,
        )
        db.add(booking)
        db.commit()
        return booking
    return _make


@pytest.fixture
def make_cart(db, user_id):
    def _make(slug="C-1", total="1200"):
        cart = Cart(id=int(slug.split("-", 1)[1]), slug=slug, user_id=user_id, total=Decimal(total))
        db.add(cart)
        db.commit()
        return cart
    return _make
