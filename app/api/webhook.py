from fastapi import APIRouter, Depends, Request
from typing import Dict, Any

from app.api.deps import get_booking_service
from app.core.logger import logger
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    """
    Stripe delivery endpoint. The raw body is needed untouched for signature
    verification, so it is read as bytes rather than parsed by FastAPI.
    Responds {"received": true} once the event is verified and applied;
    notifications it triggers run later on the Celery workers.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    logger.info(f"🔔 Stripe webhook received ({len(payload)} bytes)")
    return await service.handle_webhook(payload, signature)
