from datetime import date, datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from config import Settings, get_settings
from database import get_session
from dependencies import get_clock, get_notification_service, get_payment_gateway
from main import app
from services.payment_gateway import PaymentGateway, compute_signature
from services.slot_resolver import seed_default_schedule
from utils.clock import FixedClock
from utils.rate_limit import limiter

ADMIN_KEY = "test-admin-key"
RAZORPAY_KEY_ID = "rzp_test_key"
RAZORPAY_KEY_SECRET = "rzp_test_secret"

# Tuesday 7 January 2025, 08:00 clinic time
NOW = datetime(2025, 1, 7, 8, 0)
TODAY = NOW.date()


class StubGateway(PaymentGateway):
    """Hands out sequential order ids instead of calling Razorpay"""

    def __init__(self):
        super().__init__(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET)
        self.orders = []

    def create_order(self, amount, currency, receipt, notes=None):
        order = {
            "id": f"order_test_{len(self.orders) + 1}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        self.orders.append(order)
        return order

    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(self.key_secret, order_id, payment_id)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_notification(self, to_phone, message, notification_type="whatsapp"):
        self.sent.append((notification_type, to_phone, message))
        return True, "test_sid"


@pytest.fixture(autouse=True)
def disable_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_default_schedule(session)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(
        admin_key=ADMIN_KEY,
        razorpay_key_id=RAZORPAY_KEY_ID,
        razorpay_key_secret=RAZORPAY_KEY_SECRET,
        doctor_phone="9000000000",
        rate_limit_enabled=False,
    )


@pytest.fixture(name="clock")
def clock_fixture():
    return FixedClock(NOW)


@pytest.fixture(name="gateway")
def gateway_fixture():
    return StubGateway()


@pytest.fixture(name="notifier")
def notifier_fixture():
    return RecordingNotifier()


@pytest.fixture(name="app")
def app_fixture(engine, settings, clock, gateway, notifier):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_service] = lambda: notifier
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(app):
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"x-admin-key": ADMIN_KEY}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def http_client(app, anyio_backend):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


def day(offset: int) -> date:
    return TODAY + timedelta(days=offset)


def booking_payload(**overrides) -> dict:
    payload = {
        "date": day(1).isoformat(),
        "time": "10:00",
        "patientName": "Asha",
        "patientPhone": "9876543210",
        "age": 30,
        "gender": "female",
        "consultType": "offline",
    }
    payload.update(overrides)
    return payload
