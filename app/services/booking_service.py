from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.errors import NotFound, PersistenceError, RateLimitExceeded, ValidationError
from app.core.logger import logger
from app.models.api_models import BookingSubmission, PaymentIntentRequest, PaymentIntentResult, WebhookEvent
from app.models.db_models import BookingStatus, PaymentStatus
from app.services.db_service import DuplicateBookingId, generate_booking_id
from app.services.email_templates import BOOKING_CONFIRMATION, PAYMENT_CONFIRMATION, PAYMENT_FAILED
from app.services.payment_gateway import PAYMENT_FAILED as EVENT_PAYMENT_FAILED
from app.services.payment_gateway import PAYMENT_SUCCEEDED as EVENT_PAYMENT_SUCCEEDED
from app.services.validation import to_minor_units, validate_booking, validate_payment

PROCESSED_EVENT_PREFIX = "stripe_event:"
PROCESSED_EVENT_TTL = 60 * 60 * 24
BOOKING_ID_ATTEMPTS = 3


class BookingService:
    """
    Booking lifecycle: submission, payment intent, webhook reconciliation.

    State per booking is pending/unpaid until a verified payment_intent.succeeded
    event flips it to pending/paid. A failed payment only notifies. Every
    notification is queued as a Celery job and never awaited here.
    """

    def __init__(self, store, rate_limiter, gateway, notification_task, kv=None, default_currency: str = "usd"):
        self.store = store
        self.rate_limiter = rate_limiter
        self.gateway = gateway
        self.notification_task = notification_task
        self.kv = kv
        self.default_currency = default_currency

    # --- Submission ---

    async def submit_booking(self, data: Dict[str, Any], client_key: str) -> Dict[str, Any]:
        validation = validate_booking(data)
        if not validation.valid:
            logger.info(f"📥 Booking rejected by validation: {validation.errors}")
            raise ValidationError(validation.errors)

        if not await self.rate_limiter.check_and_increment(client_key):
            raise RateLimitExceeded()

        submission = BookingSubmission.from_payload(data)
        start = datetime.now()
        logger.info(f"📥 Booking request for {submission.service_name} on {submission.preferred_date}")

        customer_id = await self.store.upsert_customer(submission.email, {
            'first_name': submission.first_name,
            'last_name': submission.last_name,
            'phone': submission.phone,
            'business_name': submission.business_name,
        })
        booking = await self._insert_booking(customer_id, submission)

        payload = {**submission.model_dump(by_alias=True), "bookingId": booking.booking_id}
        self._notify(BOOKING_CONFIRMATION, payload)

        duration = (datetime.now() - start).total_seconds()
        logger.info(f"🏁 Booking {booking.booking_id} created in {duration:.2f}s")

        return {
            "id": booking.id,
            "bookingId": booking.booking_id,
            "status": booking.status.value,
            "serviceName": booking.service_name,
            "preferredDate": booking.preferred_date,
        }

    async def _insert_booking(self, customer_id: int, submission: BookingSubmission):
        fields = submission.model_dump(include={
            'service_id', 'service_name', 'service_price', 'preferred_date', 'preferred_time', 'message',
        })
        for attempt in range(1, BOOKING_ID_ATTEMPTS + 1):
            try:
                return await self.store.create_booking(
                    customer_id,
                    fields,
                    generate_booking_id(),
                    status=BookingStatus.PENDING.value,
                    payment_status=PaymentStatus.UNPAID.value,
                )
            except DuplicateBookingId:
                logger.warning(f"⚠️ Booking id collision, retrying ({attempt}/{BOOKING_ID_ATTEMPTS})")
        raise PersistenceError("Failed to create booking in database")

    # --- Payments ---

    async def create_payment_intent(self, data: Dict[str, Any]) -> PaymentIntentResult:
        validation = validate_payment(data)
        if not validation.valid:
            raise ValidationError(validation.errors)

        request = PaymentIntentRequest.from_payload(data, self.default_currency)
        return await self.gateway.create_intent(
            to_minor_units(request.amount),
            request.currency,
            request.metadata(),
        )

    async def get_payment(self, intent_id: str) -> Dict[str, Any]:
        return await self.gateway.retrieve_intent(intent_id)

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verifies and applies one gateway event. Signature or parse failures raise
        before anything is touched. A store failure while marking a booking paid
        propagates so the gateway redelivers; the update is idempotent.
        """
        event = self.gateway.parse_webhook(raw_body, signature)

        if await self._already_processed(event.id):
            logger.info(f"🔁 Webhook event {event.id} already processed, skipping")
            return {"received": True}

        if event.type == EVENT_PAYMENT_SUCCEEDED:
            await self._on_payment_succeeded(event)
        elif event.type == EVENT_PAYMENT_FAILED:
            self._on_payment_failed(event)
        else:
            logger.info(f"ℹ️ Unhandled event type: {event.type}")

        await self._mark_processed(event.id)
        return {"received": True}

    async def _on_payment_succeeded(self, event: WebhookEvent):
        intent = event.data
        metadata = event.metadata
        booking_id = metadata.get("bookingId")

        if booking_id:
            matched = await self.store.update_payment_status(booking_id, PaymentStatus.PAID.value, intent.get("id"))
            if matched:
                logger.info(f"💰 Booking {booking_id} marked as paid ({intent.get('id')})")
            else:
                logger.warning(f"⚠️ Payment {intent.get('id')} references unknown booking {booking_id}")
        else:
            logger.warning(f"⚠️ Payment {intent.get('id')} has no bookingId in metadata")

        amount = intent.get("amount")
        self._notify(PAYMENT_CONFIRMATION, {
            "type": PAYMENT_CONFIRMATION,
            "email": metadata.get("customerEmail"),
            "bookingId": booking_id,
            "amount": amount / 100 if isinstance(amount, (int, float)) else None,
            "currency": intent.get("currency"),
            "serviceName": metadata.get("serviceName"),
        })

    def _on_payment_failed(self, event: WebhookEvent):
        intent = event.data
        metadata = event.metadata
        last_error = intent.get("last_payment_error") or {}
        logger.info(f"💸 Payment failed for booking {metadata.get('bookingId') or '-'}: {last_error.get('message')}")

        self._notify(PAYMENT_FAILED, {
            "type": PAYMENT_FAILED,
            "email": metadata.get("customerEmail"),
            "bookingId": metadata.get("bookingId"),
            "serviceName": metadata.get("serviceName"),
            "reason": last_error.get("message"),
        })

    def _notify(self, kind: str, payload: Dict[str, Any]):
        """Queues the notification job; a broker outage loses it but never fails the request."""
        try:
            self.notification_task.delay(kind, payload)
        except Exception as e:
            logger.error(f"❌ Could not queue {kind} notification for {payload.get('bookingId') or '-'}: {e}")

    async def _already_processed(self, event_id: str) -> bool:
        if self.kv is None:
            return False
        try:
            return await self.kv.exists(f"{PROCESSED_EVENT_PREFIX}{event_id}")
        except Exception as e:
            logger.warning(f"⚠️ Could not check processed marker for {event_id}: {e}")
            return False

    async def _mark_processed(self, event_id: str):
        if self.kv is None:
            return
        try:
            await self.kv.put(f"{PROCESSED_EVENT_PREFIX}{event_id}", "processed", ttl=PROCESSED_EVENT_TTL)
        except Exception as e:
            logger.warning(f"⚠️ Could not store processed marker for {event_id}: {e}")

    # --- Lookups & back office ---

    async def get_booking(self, booking_id: str) -> Dict[str, Any]:
        booking = await self.store.get_booking(booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    async def update_booking_status(self, booking_id: str, status: BookingStatus) -> Dict[str, Any]:
        if not await self.store.update_booking_status(booking_id, status.value):
            raise NotFound("Booking not found")
        logger.info(f"📝 Booking {booking_id} status set to {status.value}")
        return await self.get_booking(booking_id)

    async def list_customer_bookings(self, email: str) -> List[Dict[str, Any]]:
        return await self.store.list_bookings_by_customer(email.strip().lower())
