from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class Customer(BaseModel):
    id: Optional[int] = None
    email: str
    first_name: str
    last_name: str
    phone: str
    business_name: Optional[str] = None


class Booking(BaseModel):
    id: Optional[int] = None
    booking_id: str
    customer_id: int
    service_id: str
    service_name: str
    service_price: Optional[str] = None
    preferred_date: str
    preferred_time: Optional[str] = None
    message: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_intent_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
