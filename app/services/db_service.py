import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import create_async_client, AsyncClient

from app.core.errors import PersistenceError
from app.core.logger import logger
from app.models.db_models import Booking, BookingStatus, Customer, PaymentStatus

CUSTOMER_CONTACT_FIELDS = ("first_name", "last_name", "email", "phone", "business_name")
UNIQUE_VIOLATION = "23505"
_ID_ALPHABET = string.ascii_uppercase + string.digits


class DuplicateBookingId(PersistenceError):
    default_message = "Booking identifier already exists"


def generate_booking_id() -> str:
    """BOOK-<epoch ms>-<9 random base36 chars>, e.g. BOOK-1718000000000-K3J9QX0AB."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"BOOK-{time.time_ns() // 1_000_000}-{suffix}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DBService:
    """
    Customer and booking records in Supabase (Postgres).

    Each call is a single statement, so it is atomic per row. The customer upsert
    and the booking insert are separate calls: a crash between the two leaves a
    customer without bookings, which is harmless.
    """

    def __init__(self, url: str, key: str, client: Optional[AsyncClient] = None):
        self.url = url
        self.key = key
        self._client = client

    async def get_client(self) -> AsyncClient:
        if not self._client:
            if not self.url or not self.key:
                logger.error("❌ Supabase credentials missing (SUPABASE_URL / SUPABASE_KEY)")
                raise PersistenceError("Database is not configured")
            try:
                self._client = await create_async_client(self.url, self.key)
                logger.info("✅ Supabase Async client initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
                raise PersistenceError() from e
        return self._client

    async def upsert_customer(self, email: str, fields: Dict[str, Any]) -> int:
        """
        Finds a customer by email and overwrites the contact fields, or creates one.
        Returns the customer id.
        """
        client = await self.get_client()

        try:
            customer = Customer(
                email=email,
                first_name=fields.get('first_name'),
                last_name=fields.get('last_name'),
                phone=fields.get('phone'),
                business_name=fields.get('business_name') or None,
            )
            values = customer.model_dump(exclude={'id', 'email'})

            response = await client.table('customers').select("id").eq('email', email).execute()

            if response.data:
                customer_id = response.data[0]['id']
                await client.table('customers')\
                    .update({**values, 'updated_at': _now()})\
                    .eq('id', customer_id)\
                    .execute()
                logger.info(f"✨ Customer {customer_id} updated with latest contact details")
                return customer_id

            response = await client.table('customers').insert({**values, 'email': email}).execute()
            customer_id = response.data[0]['id']
            logger.info(f"🆕 New customer created: {customer_id}")
            return customer_id

        except Exception as e:
            logger.error(f"❌ DB Error (upsert_customer): {e}")
            raise PersistenceError("Failed to save customer") from e

    async def create_booking(
        self,
        customer_id: int,
        fields: Dict[str, Any],
        booking_id: str,
        status: str = BookingStatus.PENDING.value,
        payment_status: str = PaymentStatus.UNPAID.value,
    ) -> Booking:
        client = await self.get_client()
        row = {
            'booking_id': booking_id,
            'customer_id': customer_id,
            'service_id': fields.get('service_id'),
            'service_name': fields.get('service_name'),
            'service_price': fields.get('service_price'),
            'preferred_date': fields.get('preferred_date'),
            'preferred_time': fields.get('preferred_time'),
            'message': fields.get('message'),
            'status': status,
            'payment_status': payment_status,
        }

        try:
            response = await client.table('bookings').insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"⚠️ Booking id collision on {booking_id}")
                raise DuplicateBookingId() from e
            logger.error(f"❌ DB Error (create_booking): {e}")
            raise PersistenceError("Failed to create booking in database") from e
        except Exception as e:
            logger.error(f"❌ DB Error (create_booking): {e}")
            raise PersistenceError("Failed to create booking in database") from e

        if not response.data:
            raise PersistenceError("Failed to create booking in database")

        logger.info(f"✅ Booking {booking_id} stored for customer {customer_id}")
        return Booking(**response.data[0])

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        """
        Returns the booking row with the customer's contact fields merged in,
        or None when no booking has that identifier.
        """
        client = await self.get_client()
        columns = ", ".join(CUSTOMER_CONTACT_FIELDS)

        try:
            response = await client.table('bookings')\
                .select(f"*, customers({columns})")\
                .eq('booking_id', booking_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (get_booking): {e}")
            raise PersistenceError("Failed to retrieve booking") from e

        if not response.data:
            return None

        booking = dict(response.data[0])
        customer = booking.pop('customers', None) or {}
        for field in CUSTOMER_CONTACT_FIELDS:
            booking[field] = customer.get(field)
        return booking

    async def update_payment_status(self, booking_id: str, payment_status: str, payment_intent_id: Optional[str]) -> bool:
        """
        Sets payment status and the correlated intent id. Re-applying the same
        values leaves the row unchanged apart from updated_at.
        Returns False when no booking matched.
        """
        client = await self.get_client()
        try:
            response = await client.table('bookings')\
                .update({
                    'payment_status': payment_status,
                    'payment_intent_id': payment_intent_id,
                    'updated_at': _now(),
                })\
                .eq('booking_id', booking_id)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (update_payment_status): {e}")
            raise PersistenceError("Failed to update payment status") from e

        return bool(response.data)

    async def update_booking_status(self, booking_id: str, status: str) -> bool:
        client = await self.get_client()
        try:
            response = await client.table('bookings')\
                .update({'status': status, 'updated_at': _now()})\
                .eq('booking_id', booking_id)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (update_booking_status): {e}")
            raise PersistenceError("Failed to update booking status") from e

        return bool(response.data)

    async def list_bookings_by_customer(self, email: str) -> List[Dict[str, Any]]:
        """Newest first. Unknown email yields an empty list."""
        client = await self.get_client()
        try:
            customer = await client.table('customers').select("id").eq('email', email).execute()
            if not customer.data:
                return []

            response = await client.table('bookings')\
                .select("*")\
                .eq('customer_id', customer.data[0]['id'])\
                .order('created_at', desc=True)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (list_bookings_by_customer): {e}")
            raise PersistenceError("Failed to retrieve customer bookings") from e

        return response.data or []
