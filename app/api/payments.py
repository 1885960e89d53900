from typing import Dict, Any

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_booking_service, read_json
from app.core.security import verify_admin_token
from app.models.api_models import PaymentIntentResponse
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(request: Request, service: BookingService = Depends(get_booking_service)):
    data = await read_json(request)
    intent = await service.create_payment_intent(data)
    return PaymentIntentResponse(clientSecret=intent.client_secret, paymentIntentId=intent.intent_id)


@router.get("/payments/{intent_id}", dependencies=[Depends(verify_admin_token)])
async def get_payment(intent_id: str, service: BookingService = Depends(get_booking_service)) -> Dict[str, Any]:
    payment = await service.get_payment(intent_id)
    return {"success": True, "data": payment}
