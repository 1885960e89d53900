import hashlib
import hmac
import json
import time
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_booking_service, get_catalog_service
from app.core.errors import PersistenceError
from app.main import app
from app.models.db_models import Booking
from app.services.booking_service import BookingService
from app.services.catalog_service import CatalogService
from app.services.payment_gateway import StripeGateway
from app.services.rate_limiter import RateLimiter

WEBHOOK_SECRET = "whsec_test_secret"

VALID_BOOKING = {
    "firstName": "Jo",
    "lastName": "Li",
    "email": "jo@x.com",
    "phone": "5551234567",
    "serviceId": "s1",
    "serviceName": "Fix",
    "preferredDate": "2099-01-01",
}


class FakeKV:
    """In-memory stand-in for RedisKVStore; records TTLs instead of expiring."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def put(self, key, value, ttl=None):
        self.data[key] = value
        self.ttls[key] = ttl

    async def exists(self, key):
        return key in self.data

    async def close(self):
        pass


class FakeStore:
    """Booking store kept in dicts, same contract as DBService."""

    def __init__(self):
        self.customers = {}
        self.bookings = {}
        self.fail_writes = False
        self.calls = []

    async def upsert_customer(self, email, fields):
        self.calls.append("upsert_customer")
        if self.fail_writes:
            raise PersistenceError("Failed to save customer")
        for customer in self.customers.values():
            if customer["email"] == email:
                customer.update(fields)
                customer["updated_at"] = datetime.now().isoformat()
                return customer["id"]
        customer_id = len(self.customers) + 1
        self.customers[customer_id] = {"id": customer_id, "email": email, **fields}
        return customer_id

    async def create_booking(self, customer_id, fields, booking_id, status="pending", payment_status="unpaid"):
        self.calls.append("create_booking")
        if self.fail_writes:
            raise PersistenceError("Failed to create booking in database")
        row = {
            "id": len(self.bookings) + 1,
            "booking_id": booking_id,
            "customer_id": customer_id,
            "status": status,
            "payment_status": payment_status,
            "payment_intent_id": None,
            **fields,
        }
        self.bookings[booking_id] = row
        return Booking(**row)

    async def get_booking(self, booking_id):
        row = self.bookings.get(booking_id)
        if not row:
            return None
        customer = self.customers[row["customer_id"]]
        return {
            **row,
            "first_name": customer.get("first_name"),
            "last_name": customer.get("last_name"),
            "email": customer["email"],
            "phone": customer.get("phone"),
            "business_name": customer.get("business_name"),
        }

    async def update_payment_status(self, booking_id, payment_status, payment_intent_id):
        self.calls.append("update_payment_status")
        if self.fail_writes:
            raise PersistenceError("Failed to update payment status")
        row = self.bookings.get(booking_id)
        if not row:
            return False
        row["payment_status"] = payment_status
        row["payment_intent_id"] = payment_intent_id
        return True

    async def update_booking_status(self, booking_id, status):
        row = self.bookings.get(booking_id)
        if not row:
            return False
        row["status"] = status
        return True

    async def list_bookings_by_customer(self, email):
        ids = [c["id"] for c in self.customers.values() if c["email"] == email]
        return [b for b in reversed(list(self.bookings.values())) if b["customer_id"] in ids]


class RecordingTask:
    """Stands in for the Celery notification task; records .delay() calls instead of queueing."""

    def __init__(self):
        self.jobs = []

    def delay(self, *args):
        self.jobs.append(args)

    def kinds(self):
        return [args[0] for args in self.jobs]


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Builds a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, booking_id: str = None, event_id: str = "evt_1", **intent_fields) -> str:
    intent = {
        "id": "pi_123",
        "object": "payment_intent",
        "amount": 17500,
        "currency": "usd",
        "metadata": {
            "bookingId": booking_id or "",
            "customerEmail": "jo@x.com",
            "serviceName": "Fix",
            "serviceId": "s1",
        },
        **intent_fields,
    }
    return json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": intent}})


@pytest.fixture
def kv():
    return FakeKV()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifications():
    return RecordingTask()


@pytest.fixture
def gateway():
    return StripeGateway("sk_test_123", WEBHOOK_SECRET)


@pytest.fixture
def booking_service(store, kv, gateway, notifications):
    return BookingService(
        store=store,
        rate_limiter=RateLimiter(kv, max_requests=10, window_seconds=900),
        gateway=gateway,
        notification_task=notifications,
        kv=kv,
    )


@pytest.fixture
def catalog_service(kv, tmp_path):
    path = tmp_path / "services.json"
    path.write_text(json.dumps([
        {"id": "s1", "category": "restaurants", "name": "Fix", "price": "175-600", "deliverables": ["Menu"]},
    ]))
    return CatalogService(kv, str(path), ttl=3600)


@pytest.fixture
def client(booking_service, catalog_service):
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_catalog_service] = lambda: catalog_service
    yield TestClient(app)
    app.dependency_overrides.clear()
