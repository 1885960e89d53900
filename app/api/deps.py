import json
from typing import Any, Dict

from fastapi import Request

from app.core.errors import ValidationError


def get_booking_service(request: Request):
    return request.app.state.booking_service


def get_catalog_service(request: Request):
    return request.app.state.catalog_service


async def read_json(request: Request) -> Dict[str, Any]:
    """Raw JSON body; field-level checks are left to app.services.validation."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError(["Request body must be valid JSON"])
