import hmac

from fastapi import Header
from app.core.config import settings
from app.core.errors import Forbidden

async def verify_admin_token(x_admin_token: str = Header(None)):
    """
    Guards the back-office endpoints (status changes, customer lookups).
    With no ADMIN_API_TOKEN configured the endpoints stay closed.
    """
    if not settings.ADMIN_API_TOKEN:
        raise Forbidden("Admin API is disabled")

    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise Forbidden("Invalid admin token")
    return True
