from typing import Dict, Any

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_booking_service, read_json
from app.core.security import verify_admin_token
from app.models.api_models import BookingCreatedResponse, BookingStatusUpdate, BookingSummary
from app.services.booking_service import BookingService
from app.services.rate_limiter import client_key_from_request

router = APIRouter()


@router.post("/bookings", status_code=201, response_model=BookingCreatedResponse)
async def create_booking(request: Request, service: BookingService = Depends(get_booking_service)):
    data = await read_json(request)
    summary = await service.submit_booking(data, client_key_from_request(request))
    return BookingCreatedResponse(bookingId=summary["bookingId"], data=BookingSummary(**summary))


@router.get("/bookings/{booking_id}")
async def get_booking(booking_id: str, service: BookingService = Depends(get_booking_service)) -> Dict[str, Any]:
    booking = await service.get_booking(booking_id)
    return {"success": True, "data": booking}


@router.patch("/bookings/{booking_id}/status", dependencies=[Depends(verify_admin_token)])
async def update_booking_status(
    booking_id: str,
    update: BookingStatusUpdate,
    service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    booking = await service.update_booking_status(booking_id, update.status)
    return {"success": True, "data": booking}


@router.get("/customers/{email}/bookings", dependencies=[Depends(verify_admin_token)])
async def list_customer_bookings(email: str, service: BookingService = Depends(get_booking_service)) -> Dict[str, Any]:
    bookings = await service.list_customer_bookings(email)
    return {"success": True, "data": bookings}
