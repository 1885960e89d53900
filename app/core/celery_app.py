"""
Celery application for the booking API.

Notification jobs (emails, CRM leads) run on Celery workers so requests never
wait on a provider. Redis from REDIS_URL is both broker and result backend
unless CELERY_BROKER_URL / CELERY_RESULT_BACKEND say otherwise.

Start a worker with:  celery -A app.core.celery_app worker --loglevel=info
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from app.core.config import settings
from app.core.logger import setup_logging

celery_app = Celery(
    "booking_api",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
    include=["app.services.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_ignore_result=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    broker_connection_retry_on_startup=True,
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log through loguru like the API instead of Celery's own handlers."""
    setup_logging()


app = celery_app
