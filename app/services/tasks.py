from functools import lru_cache
from typing import Any, Dict

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.logger import logger
from app.services.crm_service import build_crm_provider
from app.services.notification_service import Notifier, build_email_provider


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    """One Notifier per worker process, wired from settings."""
    return Notifier(
        email_provider=build_email_provider(settings),
        crm_provider=build_crm_provider(settings),
        admin_email=settings.ADMIN_EMAIL,
        company_name=settings.FROM_NAME,
    )


@celery_app.task(name="notifications.send_notification")
def send_notification(kind: str, payload: Dict[str, Any]) -> None:
    """Emails (and, for new bookings, the CRM lead) for one booking or payment event."""
    logger.info(f"📨 Notification job {kind} for booking {payload.get('bookingId') or '-'}")
    get_notifier().notify(kind, payload)
