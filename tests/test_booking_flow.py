import json
import re
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from kombu.exceptions import OperationalError

from app.core.errors import (
    NotFound, PersistenceError, RateLimitExceeded, SignatureInvalid, UpstreamProviderError, ValidationError,
)
from app.models.api_models import PaymentIntentRequest
from app.models.db_models import BookingStatus
from app.services.db_service import DuplicateBookingId
from conftest import VALID_BOOKING, sign_payload, stripe_event

BOOKING_ID_RE = re.compile(r"^BOOK-\d{13}-[A-Z0-9]{9}$")


async def submit(service, **overrides):
    return await service.submit_booking(dict(VALID_BOOKING, **overrides), "10.0.0.1")


@pytest.mark.asyncio
async def test_submit_creates_pending_unpaid_booking(booking_service, store, notifications):
    summary = await submit(booking_service)

    assert BOOKING_ID_RE.match(summary["bookingId"])
    assert summary["status"] == "pending"
    assert summary["serviceName"] == "Fix"
    assert summary["preferredDate"] == "2099-01-01"

    row = store.bookings[summary["bookingId"]]
    assert row["payment_status"] == "unpaid"
    assert row["payment_intent_id"] is None
    assert notifications.kinds() == ["booking_confirmation"]


@pytest.mark.asyncio
async def test_submit_queues_notification_job(booking_service, notifications):
    summary = await submit(booking_service)

    kind, payload = notifications.jobs[0]
    assert kind == "booking_confirmation"
    assert payload["bookingId"] == summary["bookingId"]
    assert payload["email"] == "jo@x.com"
    assert payload["firstName"] == "Jo"


@pytest.mark.asyncio
async def test_round_trip_preferred_date(booking_service):
    summary = await submit(booking_service, preferredDate="2099-03-07", preferredTime="14:00")
    booking = await booking_service.get_booking(summary["bookingId"])

    assert booking["preferred_date"] == "2099-03-07"
    assert booking["preferred_time"] == "14:00"
    assert booking["first_name"] == "Jo"
    assert booking["email"] == "jo@x.com"


@pytest.mark.asyncio
async def test_validation_failure_has_no_side_effects(booking_service, store, kv, notifications):
    with pytest.raises(ValidationError) as exc:
        await submit(booking_service, email="not-an-email")

    assert any("email" in e for e in exc.value.errors)
    assert store.calls == []
    assert kv.data == {}
    assert notifications.jobs == []


@pytest.mark.asyncio
async def test_rate_limited_submission_has_no_side_effects(booking_service, store, kv, notifications):
    kv.data["ratelimit:10.0.0.1"] = "10"

    with pytest.raises(RateLimitExceeded):
        await submit(booking_service)

    assert store.calls == []
    assert notifications.jobs == []


@pytest.mark.asyncio
async def test_persistence_failure_surfaces_and_skips_notifications(booking_service, store, notifications):
    store.fail_writes = True

    with pytest.raises(PersistenceError):
        await submit(booking_service)

    assert store.bookings == {}
    assert notifications.jobs == []


@pytest.mark.asyncio
async def test_booking_id_collision_retries_with_fresh_id(booking_service, store):
    real_create = store.create_booking
    calls = []

    async def flaky_create(customer_id, fields, booking_id, **kwargs):
        calls.append(booking_id)
        if len(calls) == 1:
            raise DuplicateBookingId()
        return await real_create(customer_id, fields, booking_id, **kwargs)

    store.create_booking = flaky_create
    summary = await submit(booking_service)

    assert len(calls) == 2
    assert calls[0] != calls[1]
    assert summary["bookingId"] == calls[1]


@pytest.mark.asyncio
async def test_repeat_customer_is_overwritten_not_duplicated(booking_service, store):
    await submit(booking_service, phone="5551234567")
    await submit(booking_service, firstName="Joanne", phone="5559999999")

    assert len(store.customers) == 1
    customer = store.customers[1]
    assert customer["first_name"] == "Joanne"
    assert customer["phone"] == "5559999999"
    assert len(store.bookings) == 2


@pytest.mark.asyncio
async def test_create_payment_intent_converts_amount_and_sets_metadata(booking_service, gateway):
    gateway.create_intent = AsyncMock(return_value=MagicMock(client_secret="cs_1", intent_id="pi_1"))

    result = await booking_service.create_payment_intent({
        "amount": "175.50", "serviceId": "s1", "serviceName": "Fix",
        "customerEmail": "jo@x.com", "bookingId": "BOOK-1-ABC",
    })

    assert result.client_secret == "cs_1"
    amount, currency, metadata = gateway.create_intent.call_args.args
    assert amount == 17550
    assert currency == "usd"
    assert metadata == {"serviceId": "s1", "serviceName": "Fix", "customerEmail": "jo@x.com", "bookingId": "BOOK-1-ABC"}


@pytest.mark.asyncio
async def test_create_payment_intent_validation(booking_service, gateway):
    gateway.create_intent = AsyncMock()
    with pytest.raises(ValidationError):
        await booking_service.create_payment_intent({"amount": 0, "serviceId": "s1", "customerEmail": "jo@x.com"})
    gateway.create_intent.assert_not_called()


@pytest.mark.asyncio
async def test_create_payment_intent_gateway_failure(booking_service, gateway):
    gateway.create_intent = AsyncMock(side_effect=UpstreamProviderError("Failed to create payment intent"))
    with pytest.raises(UpstreamProviderError):
        await booking_service.create_payment_intent({"amount": 10, "serviceId": "s1", "customerEmail": "jo@x.com"})


@pytest.mark.asyncio
async def test_webhook_success_marks_booking_paid(booking_service, store, notifications):
    summary = await submit(booking_service)
    body = stripe_event("payment_intent.succeeded", summary["bookingId"])

    response = await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert response == {"received": True}
    row = store.bookings[summary["bookingId"]]
    assert row["payment_status"] == "paid"
    assert row["payment_intent_id"] == "pi_123"
    assert notifications.kinds() == ["booking_confirmation", "payment_confirmation"]
    _, payload = notifications.jobs[-1]
    assert payload["amount"] == 175.0
    assert payload["email"] == "jo@x.com"


@pytest.mark.asyncio
async def test_update_payment_status_is_idempotent(booking_service, store):
    summary = await submit(booking_service)
    booking_id = summary["bookingId"]

    await store.update_payment_status(booking_id, "paid", "pi_123")
    first = dict(store.bookings[booking_id])
    await store.update_payment_status(booking_id, "paid", "pi_123")

    assert store.bookings[booking_id] == first
    assert store.bookings[booking_id]["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_redelivered_event_not_notified_twice(booking_service, store, notifications):
    summary = await submit(booking_service)
    body = stripe_event("payment_intent.succeeded", summary["bookingId"], event_id="evt_dup")

    await booking_service.handle_webhook(body.encode(), sign_payload(body))
    await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert notifications.kinds().count("payment_confirmation") == 1
    assert store.calls.count("update_payment_status") == 1


@pytest.mark.asyncio
async def test_webhook_payment_failed_notifies_without_mutation(booking_service, store, notifications):
    summary = await submit(booking_service)
    body = stripe_event(
        "payment_intent.payment_failed", summary["bookingId"],
        last_payment_error={"message": "Your card was declined."},
    )

    await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert store.bookings[summary["bookingId"]]["payment_status"] == "unpaid"
    assert "update_payment_status" not in store.calls
    kind, payload = notifications.jobs[-1]
    assert kind == "payment_failed"
    assert payload["reason"] == "Your card was declined."


@pytest.mark.asyncio
async def test_unhandled_event_is_acknowledged(booking_service, store, notifications):
    body = stripe_event("charge.refunded")
    response = await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert response == {"received": True}
    assert notifications.jobs == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_invalid_signature_leaves_booking_untouched(booking_service, store, notifications, kv):
    summary = await submit(booking_service)
    body = stripe_event("payment_intent.succeeded", summary["bookingId"])

    with pytest.raises(SignatureInvalid):
        await booking_service.handle_webhook(body.encode(), sign_payload(body, secret="whsec_wrong"))

    assert store.bookings[summary["bookingId"]]["payment_status"] == "unpaid"
    assert notifications.kinds() == ["booking_confirmation"]
    assert not any(k.startswith("stripe_event:") for k in kv.data)


@pytest.mark.asyncio
async def test_store_failure_on_paid_update_propagates_for_retry(booking_service, store, kv):
    summary = await submit(booking_service)
    store.fail_writes = True
    body = stripe_event("payment_intent.succeeded", summary["bookingId"])

    with pytest.raises(PersistenceError):
        await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert "stripe_event:evt_1" not in kv.data


@pytest.mark.asyncio
async def test_success_without_booking_id_still_notifies(booking_service, store, notifications):
    body = stripe_event("payment_intent.succeeded", booking_id="")
    await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert "update_payment_status" not in store.calls
    assert notifications.kinds() == ["payment_confirmation"]


@pytest.mark.asyncio
async def test_get_unknown_booking_raises_not_found(booking_service):
    with pytest.raises(NotFound):
        await booking_service.get_booking("BOOK-0-NOPE")


@pytest.mark.asyncio
async def test_update_booking_status(booking_service):
    summary = await submit(booking_service)
    booking = await booking_service.update_booking_status(summary["bookingId"], BookingStatus.CONFIRMED)
    assert booking["status"] == "confirmed"

    with pytest.raises(NotFound):
        await booking_service.update_booking_status("BOOK-0-NOPE", BookingStatus.CONFIRMED)


@pytest.mark.asyncio
async def test_list_customer_bookings_normalizes_email(booking_service):
    await submit(booking_service)
    await submit(booking_service, serviceName="Second")

    bookings = await booking_service.list_customer_bookings("  JO@X.COM ")
    assert [b["service_name"] for b in bookings] == ["Second", "Fix"]


def test_payment_request_metadata_is_stringly_typed():
    request = PaymentIntentRequest.from_payload({"amount": 12.5, "serviceId": 7, "customerEmail": "a@b.co"})
    assert request.amount == Decimal("12.5")
    assert request.metadata()["serviceId"] == "7"
    assert request.metadata()["bookingId"] == ""


@pytest.mark.asyncio
async def test_broker_outage_does_not_fail_submission(booking_service, store, notifications):
    notifications.delay = MagicMock(side_effect=OperationalError("Error 111 connecting to localhost:6379"))

    summary = await submit(booking_service)

    assert summary["bookingId"] in store.bookings
    notifications.delay.assert_called_once()


@pytest.mark.asyncio
async def test_webhook_with_non_dict_metadata_is_acknowledged(booking_service, store, notifications):
    body = json.dumps({
        "id": "evt_meta", "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123", "amount": 100, "currency": "usd", "metadata": "oops"}},
    })

    response = await booking_service.handle_webhook(body.encode(), sign_payload(body))

    assert response == {"received": True}
    assert "update_payment_status" not in store.calls
    assert notifications.kinds() == ["payment_confirmation"]
