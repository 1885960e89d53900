from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

from app.models.db_models import BookingStatus

# --- Incoming Request Models ---
# Bodies arrive as raw dicts and go through app.services.validation first,
# these models are built only from payloads that already passed validation.

class BookingSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    phone: str
    business_name: Optional[str] = Field(default=None, alias="businessName")
    service_id: str = Field(alias="serviceId")
    service_name: str = Field(alias="serviceName")
    service_price: Optional[str] = Field(default=None, alias="servicePrice")
    preferred_date: str = Field(alias="preferredDate")
    preferred_time: Optional[str] = Field(default=None, alias="preferredTime")
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "BookingSubmission":
        price = data.get("servicePrice")
        return cls(
            firstName=data["firstName"].strip(),
            lastName=data["lastName"].strip(),
            email=data["email"].strip().lower(),
            phone=data["phone"].strip(),
            businessName=data.get("businessName") or None,
            serviceId=str(data["serviceId"]),
            serviceName=data["serviceName"],
            servicePrice=str(price) if price is not None else None,
            preferredDate=data["preferredDate"],
            preferredTime=data.get("preferredTime") or None,
            message=data.get("message") or None,
        )


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    currency: str = "usd"
    service_id: str = Field(alias="serviceId")
    service_name: Optional[str] = Field(default=None, alias="serviceName")
    customer_email: str = Field(alias="customerEmail")
    booking_id: Optional[str] = Field(default=None, alias="bookingId")

    @classmethod
    def from_payload(cls, data: Dict[str, Any], default_currency: str = "usd") -> "PaymentIntentRequest":
        return cls(
            amount=Decimal(str(data["amount"]).strip()),
            currency=(data.get("currency") or default_currency).lower(),
            serviceId=str(data["serviceId"]),
            serviceName=str(data["serviceName"]) if data.get("serviceName") else None,
            customerEmail=data["customerEmail"].strip(),
            bookingId=str(data["bookingId"]) if data.get("bookingId") else None,
        )

    def metadata(self) -> Dict[str, str]:
        return {
            "serviceId": self.service_id,
            "serviceName": self.service_name or "",
            "customerEmail": self.customer_email,
            "bookingId": self.booking_id or "",
        }


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


# --- Payment Gateway Models ---

class PaymentIntentResult(BaseModel):
    client_secret: str
    intent_id: str


class WebhookEvent(BaseModel):
    """A verified Stripe event; `data` is the event's `data.object`."""
    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self.data.get("metadata")
        return metadata if isinstance(metadata, dict) else {}


# --- Outgoing Response Models ---

class BookingSummary(BaseModel):
    id: Optional[int] = None
    bookingId: str
    status: str
    serviceName: str
    preferredDate: str


class BookingCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Booking created successfully"
    bookingId: str
    data: BookingSummary


class PaymentIntentResponse(BaseModel):
    success: bool = True
    clientSecret: str
    paymentIntentId: str


class ServiceDescriptor(BaseModel):
    id: str
    category: str
    name: str
    price: str
    deliverables: List[str] = Field(default_factory=list)
