import asyncio
import json
from typing import Any, Dict, Optional

import stripe

from app.core.errors import MalformedPayload, NotFound, SignatureInvalid, UpstreamProviderError
from app.core.logger import logger
from app.models.api_models import PaymentIntentResult, WebhookEvent

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class StripeGateway:
    """
    Creates payment intents and authenticates Stripe webhook deliveries.

    The booking id travels in the intent metadata; that round trip is the only
    link between a Stripe event and a booking row.
    """

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    async def create_intent(self, amount_minor_units: int, currency: str, metadata: Dict[str, str]) -> PaymentIntentResult:
        if not self.api_key:
            logger.error("❌ STRIPE_SECRET_KEY is not configured")
            raise UpstreamProviderError("Failed to create payment intent")

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.api_key,
                amount=amount_minor_units,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe payment intent error: {e}")
            raise UpstreamProviderError("Failed to create payment intent") from e

        logger.info(f"💳 Payment intent {intent.id} created for booking {metadata.get('bookingId') or '-'}")
        return PaymentIntentResult(client_secret=intent.client_secret, intent_id=intent.id)

    async def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("❌ STRIPE_SECRET_KEY is not configured")
            raise UpstreamProviderError("Failed to retrieve payment intent")

        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                raise NotFound("Payment intent not found") from e
            logger.error(f"❌ Stripe retrieve error: {e}")
            raise UpstreamProviderError("Failed to retrieve payment intent") from e
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe retrieve error: {e}")
            raise UpstreamProviderError("Failed to retrieve payment intent") from e

        return {
            "id": intent.id,
            "status": intent.status,
            "amount": intent.amount,
            "currency": intent.currency,
            "metadata": dict(intent.metadata or {}),
        }

    def parse_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """
        Verifies the Stripe-Signature header (HMAC-SHA256 over "<t>.<body>",
        timestamp within the tolerance window) and only then decodes the event.
        """
        if not signature_header:
            raise SignatureInvalid("Missing signature")

        if not self.webhook_secret:
            logger.error("❌ STRIPE_WEBHOOK_SECRET is not configured, rejecting webhook")
            raise SignatureInvalid("Webhook secret not configured")

        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError as e:
            raise MalformedPayload("Webhook body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(payload, signature_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"⚠️ Webhook signature rejected: {e}")
            raise SignatureInvalid("Invalid signature") from e

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise MalformedPayload("Invalid payload") from e

        if not isinstance(body, dict) or not body.get("id") or not body.get("type"):
            raise MalformedPayload("Invalid payload")

        data = body.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None
        return WebhookEvent(id=body["id"], type=body["type"], data=obj if isinstance(obj, dict) else {})
